"""Tests for ServerCollectionRegistry."""

import pytest
from unittest.mock import Mock, patch, MagicMock
from traitlets.config import Config

from thunder_kernels_api.services.servers.models import (
    A100_COLLECTION,
    A100_TIER,
    ComputeTier,
    ServerCollection,
    T4_COLLECTION,
    T4_TIER,
)
from thunder_kernels_api.services.servers.registry import (
    ServerCollectionRegistry,
    get_registry,
)


H100_TIER = ComputeTier(id="acme-h100", label="Acme (H100)", gpu_type="h100")
H100_COLLECTION = ServerCollection(id="acme-h100", label="Acme H100 Server", tiers=(H100_TIER,))
MIXED_COLLECTION = ServerCollection(id="acme-mixed", label="Acme Mixed", tiers=(T4_TIER, H100_TIER))


class TestServerCollectionRegistrySingleton:
    """Test singleton behavior."""

    def test_singleton_same_instance(self):
        """Verify that instance() returns the same object."""
        registry1 = ServerCollectionRegistry.instance()
        registry2 = ServerCollectionRegistry.instance()
        assert registry1 is registry2

    def test_get_registry_helper(self):
        """Verify get_registry() returns the singleton instance."""
        registry1 = get_registry()
        registry2 = ServerCollectionRegistry.instance()
        assert registry1 is registry2

    def test_singleton_with_config(self):
        """Verify singleton with configuration."""
        config = Config()
        config.ServerCollectionRegistry.default_collection = A100_COLLECTION.id

        registry = ServerCollectionRegistry.instance(config=config)
        assert registry.default_collection == A100_COLLECTION.id


class TestServerCollectionRegistryRegistration:
    """Test registration methods."""

    def test_builtin_collections_registered(self):
        registry = ServerCollectionRegistry.instance()
        assert [c.id for c in registry.collections()] == [A100_COLLECTION.id, T4_COLLECTION.id]

    def test_register_collection(self):
        ServerCollectionRegistry.register(H100_COLLECTION)
        assert ServerCollectionRegistry._registry[H100_COLLECTION.id] == H100_COLLECTION

    def test_register_rejects_other_types(self):
        with pytest.raises(TypeError):
            ServerCollectionRegistry.register({"id": "nope"})

    def test_register_from_string_with_colon(self):
        """Test registration from string with colon notation."""
        with patch("importlib.import_module") as mock_import:
            mock_module = Mock()
            mock_module.H100_COLLECTION = H100_COLLECTION
            mock_import.return_value = mock_module

            ServerCollectionRegistry.register_from_string("acme_collections:H100_COLLECTION")

            mock_import.assert_called_once_with("acme_collections")
            assert H100_COLLECTION.id in ServerCollectionRegistry._registry

    def test_register_from_string_with_dot(self):
        """Test registration from string with dot notation."""
        with patch("importlib.import_module") as mock_import:
            mock_module = Mock()
            mock_module.H100_COLLECTION = H100_COLLECTION
            mock_import.return_value = mock_module

            ServerCollectionRegistry.register_from_string("acme.collections.H100_COLLECTION")

            mock_import.assert_called_once_with("acme.collections")
            assert H100_COLLECTION.id in ServerCollectionRegistry._registry

    def test_register_from_string_real_module(self):
        ServerCollectionRegistry.register_from_string(
            "thunder_kernels_api.services.servers.models:T4_COLLECTION"
        )
        assert ServerCollectionRegistry._registry[T4_COLLECTION.id] == T4_COLLECTION

    def test_register_from_string_invalid(self):
        """Test that invalid registration raises error."""
        with pytest.raises(ImportError):
            ServerCollectionRegistry.register_from_string("nonexistent.module:COLLECTION")

    def test_register_from_string_missing_attribute(self):
        with pytest.raises(AttributeError):
            ServerCollectionRegistry.register_from_string(
                "thunder_kernels_api.services.servers.models:NO_SUCH_COLLECTION"
            )


class TestServerCollectionRegistryLookup:
    """Test lookup methods."""

    def test_get_known_collection(self):
        registry = ServerCollectionRegistry.instance()
        assert registry.get(T4_COLLECTION.id) == T4_COLLECTION

    def test_get_unknown_collection(self):
        registry = ServerCollectionRegistry.instance()
        with pytest.raises(KeyError):
            registry.get("nope")

    def test_tiers_are_unique_and_ordered(self):
        registry = ServerCollectionRegistry.instance()
        ServerCollectionRegistry.register(MIXED_COLLECTION)
        assert registry.tiers() == [A100_TIER, T4_TIER, H100_TIER]

    def test_find_tier(self):
        registry = ServerCollectionRegistry.instance()
        assert registry.find_tier(A100_TIER.id) == A100_TIER
        assert registry.find_tier("nope") is None

    def test_reregistration_replaces(self):
        registry = ServerCollectionRegistry.instance()
        replacement = ServerCollection(id=T4_COLLECTION.id, label="Renamed", tiers=(T4_TIER,))
        ServerCollectionRegistry.register(replacement)
        assert registry.get(T4_COLLECTION.id).label == "Renamed"


class TestServerCollectionRegistryUtilities:
    """Test utility methods."""

    def test_get_registered_collections(self):
        ServerCollectionRegistry.instance()
        ServerCollectionRegistry.register(MIXED_COLLECTION)

        mappings = ServerCollectionRegistry.get_registered_collections()

        assert mappings[T4_COLLECTION.id] == [T4_TIER.id]
        assert mappings[MIXED_COLLECTION.id] == [T4_TIER.id, H100_TIER.id]

    def test_clear_registry(self):
        ServerCollectionRegistry.instance()
        assert len(ServerCollectionRegistry._registry) == 2

        ServerCollectionRegistry.clear_registry()
        assert len(ServerCollectionRegistry._registry) == 0

    def test_get_registered_collections_empty(self):
        assert ServerCollectionRegistry.get_registered_collections() == {}


class TestServerCollectionRegistryAutoDiscovery:
    """Test entry point auto-discovery."""

    def test_auto_discover_with_no_entry_points(self):
        with patch("thunder_kernels_api.services.servers.registry.entry_points") as mock_eps:
            mock_eps.return_value = []

            ServerCollectionRegistry.instance()
            mock_eps.assert_called_once_with(group="thunder_server_collections")
            assert len(ServerCollectionRegistry._registry) == 2

    def test_auto_discover_with_entry_points(self):
        with patch("thunder_kernels_api.services.servers.registry.entry_points") as mock_eps:
            mock_ep = MagicMock()
            mock_ep.name = "acme-h100"
            mock_ep.value = "acme_collections:H100_COLLECTION"
            mock_ep.load.return_value = H100_COLLECTION
            mock_eps.return_value = [mock_ep]

            registry = ServerCollectionRegistry.instance()

            assert registry.get("acme-h100") == H100_COLLECTION

    def test_auto_discover_handles_failed_entry_point(self):
        """Test that failed entry points don't break auto-discovery."""
        with patch("thunder_kernels_api.services.servers.registry.entry_points") as mock_eps:
            mock_ep_bad = MagicMock()
            mock_ep_bad.name = "bad"
            mock_ep_bad.value = "bad:COLLECTION"
            mock_ep_bad.load.side_effect = ImportError("Module not found")

            mock_ep_wrong_type = MagicMock()
            mock_ep_wrong_type.name = "wrong"
            mock_ep_wrong_type.value = "wrong:THING"
            mock_ep_wrong_type.load.return_value = object()

            mock_ep_good = MagicMock()
            mock_ep_good.name = "acme-h100"
            mock_ep_good.value = "acme_collections:H100_COLLECTION"
            mock_ep_good.load.return_value = H100_COLLECTION

            mock_eps.return_value = [mock_ep_bad, mock_ep_wrong_type, mock_ep_good]

            ServerCollectionRegistry.instance()

            assert H100_COLLECTION.id in ServerCollectionRegistry._registry
            assert "bad" not in ServerCollectionRegistry._registry
            assert "wrong" not in ServerCollectionRegistry._registry
