"""Registry of server collections offered to the host.

This module provides a central registry that maps collection ids to the
compute tiers they expose. This enables:
- The built-in T4 and A100 collections to be listed without any network I/O
- External packages to register their own collections via entry points
- Configuration of the collection that is active by default
"""

import importlib
import logging
import typing as t
from importlib.metadata import entry_points

from traitlets import Unicode
from traitlets.config import SingletonConfigurable

from .models import BUILTIN_COLLECTIONS, ComputeTier, ServerCollection, T4_COLLECTION

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "thunder_server_collections"


class ServerCollectionRegistry(SingletonConfigurable):
    """Central registry (singleton) of server collections.

    Collections can be registered in three ways:

    1. Built-in collections, registered on construction
    2. Programmatic registration via register()
    3. Entry point discovery via auto_discover_registrations()

    Example usage:
        ServerCollectionRegistry.register(MY_COLLECTION)

        registry = ServerCollectionRegistry.instance()
        tiers = registry.get("thunder-compute-t4").tiers
    """

    default_collection = Unicode(
        T4_COLLECTION.id,
        config=True,
        help="""
        The collection whose tiers are listed when the provider has no
        active collection selected.

        Can be configured in jupyter_config.py:
            c.ServerCollectionRegistry.default_collection = "thunder-compute-a100"
        """,
    )

    # Class-level registry, insertion ordered
    _registry: t.Dict[str, ServerCollection] = {}

    def __init__(self, **kwargs: t.Any) -> None:
        """Initialize the registry with the built-in collections and entry points."""
        super().__init__(**kwargs)
        for collection in BUILTIN_COLLECTIONS:
            if collection.id not in self._registry:
                self.register(collection)

        self.auto_discover_registrations()

    @classmethod
    def register(cls, collection: ServerCollection) -> None:
        """Register a collection, replacing any previous one with the same id.

        Parameters
        ----------
        collection : ServerCollection
            The collection to register
        """
        if not isinstance(collection, ServerCollection):
            raise TypeError(f"Expected a ServerCollection, got {type(collection).__name__}")
        cls._registry[collection.id] = collection
        logger.info(f"Registered server collection {collection.id} with {len(collection.tiers)} tier(s)")

    @classmethod
    def register_from_string(cls, object_ref: str) -> None:
        """Register a collection from a 'module:OBJECT' or 'module.OBJECT' reference.

        Raises
        ------
        ImportError
            If the module cannot be imported
        AttributeError
            If the object is not found in the module
        """
        try:
            if ":" in object_ref:
                module_name, attr_name = object_ref.rsplit(":", 1)
            else:
                module_name, attr_name = object_ref.rsplit(".", 1)

            module = importlib.import_module(module_name)
            collection = getattr(module, attr_name)
            cls.register(collection)

        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to register server collection {object_ref}: {e}")
            raise

    def get(self, collection_id: str) -> ServerCollection:
        """Return the collection registered under ``collection_id``.

        Raises
        ------
        KeyError
            If no such collection is registered
        """
        try:
            return self._registry[collection_id]
        except KeyError:
            raise KeyError(f"Unknown server collection: {collection_id}") from None

    def collections(self) -> t.List[ServerCollection]:
        return list(self._registry.values())

    def tiers(self) -> t.List[ComputeTier]:
        """Every registered tier once, in registration order."""
        seen: t.Dict[str, ComputeTier] = {}
        for collection in self._registry.values():
            for tier in collection.tiers:
                seen.setdefault(tier.id, tier)
        return list(seen.values())

    def find_tier(self, server_id: str) -> t.Optional[ComputeTier]:
        for tier in self.tiers():
            if tier.id == server_id:
                return tier
        return None

    @classmethod
    def get_registered_collections(cls) -> t.Dict[str, t.List[str]]:
        """Collection ids mapped to the ids of their tiers."""
        return {cid: [tier.id for tier in c.tiers] for cid, c in cls._registry.items()}

    @classmethod
    def clear_registry(cls) -> None:
        """Clear all registered collections. Primarily useful for testing."""
        cls._registry.clear()
        logger.info("Cleared server collection registry")

    def auto_discover_registrations(self) -> None:
        """Auto-discover and register collections from entry points.

        Entry points live in the 'thunder_server_collections' group. The name
        is informational; the value references a ServerCollection object:

        ```toml
        [project.entry-points.thunder_server_collections]
        "acme-h100" = "acme_thunder.collections:H100_COLLECTION"
        ```
        """
        try:
            eps = entry_points(group=ENTRY_POINT_GROUP)

            if not eps:
                self.log.debug(f"No entry points found for '{ENTRY_POINT_GROUP}'")
                return

            self.log.info(f"Discovering server collections from {len(eps)} entry points")

            for entry_point in eps:
                try:
                    collection = entry_point.load()
                    self.register(collection)
                    self.log.info(f"Successfully registered from entry point: {entry_point.name}")

                except Exception as e:
                    self.log.warning(
                        f"Failed to load entry point '{entry_point.name}' "
                        f"with value '{entry_point.value}': {e}"
                    )

        except Exception as e:
            logger.warning(f"Error during entry point discovery: {e}")


def get_registry(config: t.Optional[t.Any] = None) -> ServerCollectionRegistry:
    """Get the global server collection registry singleton instance.

    Parameters
    ----------
    config : Optional[Any]
        Traitlets configuration object to apply to the registry.
        Only used on first call when creating the singleton instance.
    """
    return ServerCollectionRegistry.instance(config=config)
