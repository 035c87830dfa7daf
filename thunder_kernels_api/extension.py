"""Wires the Thunder Compute provider into a host's Jupyter server API."""

import logging
import typing as t

from traitlets.config import Config

from .auth.credentials import CredentialStore
from .gateway.client import ThunderGatewayClient
from .host import Notifier
from .services.kernels.preferred import PreferredRemoteKernelIdStore
from .services.servers.provider import ThunderServerProvider
from .services.servers.registry import ServerCollectionRegistry

logger = logging.getLogger(__name__)

JUPYTER_EXTENSION_ID = "ms-toolsai.jupyter"


class ThunderExtension:
    """What activation hands back to the host: the provider and its collections."""

    def __init__(self, provider, preferred_kernels, collections):
        self.provider = provider
        self.preferred_kernels = preferred_kernels
        self.collections = collections

    async def dispose(self) -> None:
        await self.provider.dispose()
        for collection in self.collections:
            dispose = getattr(collection, "dispose", None)
            if dispose is not None:
                dispose()
        self.collections = []


def activate(
    jupyter_api,
    documents=None,
    notifier: t.Optional[Notifier] = None,
    prompt=None,
    config: t.Optional[Config] = None,
) -> ThunderExtension:
    """Register one Jupyter server collection per Thunder Compute collection.

    ``jupyter_api`` must provide
    ``create_jupyter_server_collection(id, label, provider)``; ``documents``
    is the host's ``DocumentEvents`` and drives session teardown.
    """
    if jupyter_api is None:
        raise RuntimeError(
            f"The Jupyter extension ({JUPYTER_EXTENSION_ID}) is required but not installed. "
            "Please install it from the VS Code marketplace."
        )

    config = config or Config()
    credentials = CredentialStore(config=config)
    if prompt is not None:
        credentials.prompt = prompt
    gateway = ThunderGatewayClient(config=config)
    registry = ServerCollectionRegistry.instance(config=config)

    provider = ThunderServerProvider(
        config=config,
        credentials=credentials,
        gateway=gateway,
        registry=registry,
        notifier=notifier or Notifier(),
    )
    if documents is not None:
        provider.tracker.attach(documents)

    collections = []
    for collection in registry.collections():
        provider.set_current_collection(collection.id)
        created = jupyter_api.create_jupyter_server_collection(collection.id, collection.label, provider)
        if collection.documentation:
            created.documentation = collection.documentation
        collections.append(created)
        logger.info(f"Registered Jupyter server collection {collection.id}")

    preferred_kernels = PreferredRemoteKernelIdStore(config=config)
    return ThunderExtension(provider, preferred_kernels, collections)
