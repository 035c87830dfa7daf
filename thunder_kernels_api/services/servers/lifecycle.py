"""Tracks live Thunder Compute sessions and ends them when notebooks close."""

import asyncio
import typing as t

from traitlets import Instance
from traitlets.config import LoggingConfigurable

from ...errors import NoActiveSession, ThunderComputeError, Unauthorized
from ...host import is_notebook_document
from .models import SessionHandle


class SessionLifecycleTracker(LoggingConfigurable):
    """Session handles keyed by server id.

    Teardown is best effort: failures are logged and never raised to the
    caller. A handle is dropped once its session is known to be gone.
    """

    credentials = Instance("thunder_kernels_api.auth.credentials.CredentialStore")

    gateway = Instance("thunder_kernels_api.gateway.client.ThunderGatewayClient")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._sessions: t.Dict[str, SessionHandle] = {}
        self._cleaned_callbacks: t.List[t.Callable[[str], None]] = []
        self._documents = None
        self._unsubscribe: t.Optional[t.Callable[[], None]] = None

    @property
    def sessions(self) -> t.Dict[str, SessionHandle]:
        return dict(self._sessions)

    def register(self, server_id: str, handle: SessionHandle) -> None:
        self.log.debug(f"Tracking session for {server_id} at {handle.base_url}")
        self._sessions[server_id] = handle

    def on_cleaned(self, callback: t.Callable[[str], None]) -> None:
        """Call ``callback(server_id)`` whenever a session handle is dropped."""
        self._cleaned_callbacks.append(callback)

    async def cleanup_one(self, server_id: str) -> bool:
        """End the session tracked under ``server_id``.

        Returns True when the handle was dropped, False when the session may
        still be alive (or was not tracked).
        """
        if server_id not in self._sessions:
            return False

        try:
            credential = await self.credentials.get_credential()
            await self.gateway.end_session(credential)
        except NoActiveSession:
            self.log.info(f"No active Jupyter session for {server_id}; treating as cleaned up")
        except Unauthorized as e:
            self.credentials.invalidate()
            self.log.error(f"Failed to cleanup Jupyter session for {server_id}: {e}")
            return False
        except ThunderComputeError as e:
            self.log.error(f"Failed to cleanup Jupyter session for {server_id}: {e}")
            return False
        except Exception:
            self.log.exception(f"Failed to cleanup Jupyter session for {server_id}")
            return False

        self._sessions.pop(server_id, None)
        for callback in list(self._cleaned_callbacks):
            try:
                callback(server_id)
            except Exception:
                self.log.exception("Session cleanup callback failed")
        return True

    async def unregister_all(self) -> None:
        """End every tracked session concurrently and wait for all of them."""
        server_ids = list(self._sessions)
        if not server_ids:
            return
        self.log.info(f"Cleaning up {len(server_ids)} Thunder Compute session(s)")
        await asyncio.gather(*(self.cleanup_one(server_id) for server_id in server_ids))

    def attach(self, documents) -> None:
        """Listen for document close events from the host."""
        self.detach()
        self._documents = documents
        self._unsubscribe = documents.on_did_close(self.document_closed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._documents = None

    async def document_closed(self, document) -> None:
        """Tear down all sessions once the last notebook document is closed."""
        if not is_notebook_document(document):
            return
        if self._documents is not None:
            still_open = [d for d in self._documents.open_documents() if is_notebook_document(d)]
            if still_open:
                self.log.debug(f"{len(still_open)} notebook(s) still open; keeping sessions")
                return
        await self.unregister_all()
