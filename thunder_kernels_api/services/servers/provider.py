"""Jupyter server provider backed by Thunder Compute GPU instances."""

import asyncio
import typing as t

from traitlets import Any, Bool, Float, Instance, default
from traitlets.config import LoggingConfigurable

from ...errors import (
    AlreadyProvisioning,
    ManualEntryNotSupported,
    ProviderDisposed,
    SessionEnded,
    ThunderComputeError,
    Unauthorized,
)
from ...host import Notifier
from .lifecycle import SessionLifecycleTracker
from .models import (
    ComputeTier,
    ConnectionInfo,
    ConnectionOptions,
    ServerDescriptor,
    ServerState,
    SessionHandle,
)
from .registry import ServerCollectionRegistry

STATUS_TIMEOUT = 3.0


class ThunderServerProvider(LoggingConfigurable):
    """Lists Thunder Compute tiers as servers and provisions them on demand.

    Discovery is two-phase: ``list_servers`` returns descriptors without
    connection information and never touches the network;
    ``resolve_server`` provisions an instance and fills it in.

    Only one provisioning attempt runs per provider at a time. A resolve
    issued while an attempt is pending waits for that attempt, whatever
    server it was started for, and gets the same result or exception.
    """

    credentials = Instance("thunder_kernels_api.auth.credentials.CredentialStore")

    gateway = Instance("thunder_kernels_api.gateway.client.ThunderGatewayClient")

    tracker = Instance(SessionLifecycleTracker)

    @default("tracker")
    def _tracker_default(self):
        return SessionLifecycleTracker(parent=self, credentials=self.credentials, gateway=self.gateway)

    registry = Instance(ServerCollectionRegistry)

    @default("registry")
    def _registry_default(self):
        return ServerCollectionRegistry.instance(config=self.config)

    notifier = Any(help="""Receives user-visible status and error messages.""")

    @default("notifier")
    def _notifier_default(self):
        return Notifier()

    startup_delay = Float(
        6.0,
        config=True,
        help="""Seconds to wait after a session starts so the remote Jupyter server can come up.""",
    )

    append_token = Bool(True, config=True, help="""Append the token to server URLs.""")

    disable_websocket_compression = Bool(
        True,
        config=True,
        help="""Disable websocket compression on kernel connections.""",
    )

    websocket_timeout = Float(
        180.0,
        config=True,
        help="""Seconds before a kernel websocket connection attempt times out.""",
    )

    # Free-text server entry is offered to the host only to reject it.
    supports_quick_pick = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._resolved: t.Dict[str, ServerDescriptor] = {}
        self._failed: t.Set[str] = set()
        self._pending: t.Optional[asyncio.Future] = None
        self._pending_id: t.Optional[str] = None
        self._provisioning = False
        self._current_collection: t.Optional[str] = None
        self._listeners: t.List[t.Callable[[], t.Any]] = []
        self._disposed = False
        self.tracker.on_cleaned(self._session_cleaned)

    # -- discovery ---------------------------------------------------------

    @property
    def current_collection(self) -> t.Optional[str]:
        return self._current_collection

    def set_current_collection(self, collection_id: str) -> None:
        self.registry.get(collection_id)
        if collection_id != self._current_collection:
            self._current_collection = collection_id
            self._fire_did_change_servers()

    def _tiers(self) -> t.List[ComputeTier]:
        collection_id = self._current_collection or self.registry.default_collection
        if not collection_id:
            return self.registry.tiers()
        return list(self.registry.get(collection_id).tiers)

    def list_servers(self) -> t.List[ServerDescriptor]:
        """Descriptors for the active collection, without connection info."""
        return [ServerDescriptor.from_tier(tier) for tier in self._tiers()]

    def state_of(self, server_id: str) -> ServerState:
        if server_id in self._resolved:
            return ServerState.RESOLVED
        if self._pending is not None and self._pending_id == server_id:
            return ServerState.RESOLVING
        if server_id in self._failed:
            return ServerState.FAILED
        return ServerState.UNRESOLVED

    def handle_quick_pick(self, *args: t.Any, **kwargs: t.Any) -> t.NoReturn:
        raise ManualEntryNotSupported()

    # -- resolution --------------------------------------------------------

    async def resolve_server(self, server: ServerDescriptor) -> ServerDescriptor:
        """Return ``server`` with connection information, provisioning it if needed."""
        if server.connection_info is not None:
            return server
        if self._disposed:
            raise ProviderDisposed()

        cached = self._resolved.get(server.id)
        if cached is not None:
            return cached

        if self._pending is None:
            self._pending_id = server.id
            self._pending = asyncio.ensure_future(self._provision(server))
        else:
            self.log.debug(f"Waiting on pending provisioning of {self._pending_id} for {server.id}")

        pending = self._pending
        try:
            # shielded so a cancelled caller leaves the attempt running for the others
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if self._disposed and pending.cancelled():
                raise ProviderDisposed() from None
            raise

    async def _provision(self, server: ServerDescriptor) -> ServerDescriptor:
        if self._provisioning:
            raise AlreadyProvisioning()

        self._provisioning = True
        try:
            tier = self._tier_for(server.id)
            self.log.info(f"Initiating connection to {tier.gpu_type.upper()} server...")
            self.notifier.show_status(
                f"Connecting to Thunder Compute {tier.gpu_type.upper()}...", STATUS_TIMEOUT
            )

            credential = await self.credentials.get_credential()
            self.log.debug("Auth token retrieved")
            if self._disposed:
                raise ProviderDisposed()

            try:
                session = await self.gateway.start_session(credential, tier)
            except asyncio.CancelledError:
                if self._disposed:
                    # the instance may be up even though the request was cut short
                    await self._end_abandoned_session(credential)
                raise

            info = ConnectionInfo(
                base_url=session.base_url,
                token=session.token,
                options=ConnectionOptions(
                    append_token=self.append_token,
                    websocket_disable_compression=self.disable_websocket_compression,
                    websocket_timeout=self.websocket_timeout,
                ),
            )
            resolved = server.with_connection(info)

            handle = SessionHandle(server_id=server.id, base_url=session.base_url, token=session.token)
            self.tracker.register(server.id, handle)

            self.log.info("Waiting for Jupyter server to start...")
            await asyncio.sleep(self.startup_delay)
            if self._disposed:
                raise ProviderDisposed()
            if self.tracker.sessions.get(server.id) is not handle:
                raise SessionEnded()

            self._resolved[server.id] = resolved
            self._failed.discard(server.id)
            self.notifier.show_status(
                f"Connected to Thunder Compute {tier.gpu_type.upper()} server", STATUS_TIMEOUT
            )
            return resolved

        except asyncio.CancelledError:
            if not self._disposed:
                raise
            self.log.info(f"Provisioning of {server.id} stopped by shutdown")
            raise ProviderDisposed() from None

        except ProviderDisposed:
            self.log.info(f"Provisioning of {server.id} stopped by shutdown")
            raise

        except Exception as e:
            self._failed.add(server.id)
            if isinstance(e, Unauthorized):
                self.credentials.invalidate()
            self.log.error(f"Thunder Compute connection failed: {e}")
            self.notifier.show_error(f"Thunder Compute connection failed: {e}")
            raise

        finally:
            self._provisioning = False
            self._pending = None
            self._pending_id = None

    async def _end_abandoned_session(self, credential: str) -> None:
        try:
            await self.gateway.end_session(credential)
        except ThunderComputeError as e:
            self.log.warning(f"Could not end abandoned Thunder Compute session: {e}")

    def _tier_for(self, server_id: str) -> ComputeTier:
        tier = self.registry.find_tier(server_id)
        if tier is None:
            raise KeyError(f"Unknown Thunder Compute server: {server_id}")
        return tier

    def _session_cleaned(self, server_id: str) -> None:
        if self._resolved.pop(server_id, None) is not None:
            self._fire_did_change_servers()

    # -- change notification -----------------------------------------------

    def add_listener(self, callback: t.Callable[[], t.Any]) -> t.Callable[[], None]:
        """Call ``callback()`` whenever the known servers change."""
        self._listeners.append(callback)
        return lambda: self.remove_listener(callback)

    def remove_listener(self, callback: t.Callable[[], t.Any]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _fire_did_change_servers(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                self.log.exception("Server change listener failed")

    # -- teardown ----------------------------------------------------------

    async def dispose(self) -> None:
        """Stop provisioning, end all sessions and release listeners. Safe to call twice."""
        if self._disposed:
            return
        self._disposed = True

        pending = self._pending
        if pending is not None:
            self.log.info(f"Stopping provisioning of {self._pending_id}")
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
            self._pending = None
            self._pending_id = None

        await self.tracker.unregister_all()
        self.tracker.detach()
        self._listeners.clear()
        self._resolved.clear()
