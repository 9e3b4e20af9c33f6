"""
Tests for adapter selection in StorageAdapterFactory.
"""

import pytest

from logserver_storage.adapters import (
    FileStorageAdapter,
    MemoryStorageAdapter,
    RedisStorageAdapter,
    StorageAdapterFactory,
)
from logserver_storage.config import RemoteOptions, StorageOptions, StorageType


class TestAdapterSelection:
    """Tests for the resolution order."""

    def test_default_is_memory(self):
        """No options selects the memory backend."""
        adapter = StorageAdapterFactory().create_adapter("ns")

        assert isinstance(adapter, MemoryStorageAdapter)
        assert adapter.namespace == "ns"

    def test_unknown_type_falls_back_to_memory(self):
        """An unrecognised type name selects the memory backend."""
        adapter = StorageAdapterFactory(StorageOptions(type="postgres")).create_adapter("ns")

        assert isinstance(adapter, MemoryStorageAdapter)

    def test_remote_wins(self, tmp_path):
        """The remote type wins over every other option."""
        options = StorageOptions(
            type=StorageType.REMOTE,
            in_memory_only=True,
            db_path=str(tmp_path),
            remote=RemoteOptions(host="cache"),
        )

        adapter = StorageAdapterFactory(options).create_adapter("ns")

        assert isinstance(adapter, RedisStorageAdapter)
        assert adapter.options.host == "cache"

    def test_in_memory_only_beats_file(self, tmp_path):
        """in_memory_only forces memory even with a file type."""
        options = StorageOptions(type=StorageType.FILE, db_path=str(tmp_path), in_memory_only=True)

        adapter = StorageAdapterFactory(options).create_adapter("ns")

        assert isinstance(adapter, MemoryStorageAdapter)

    def test_file_with_path(self, tmp_path):
        """File type with a path creates the namespace directory."""
        options = StorageOptions(type="nedb", db_path=str(tmp_path), tenant_id="T9")

        adapter = StorageAdapterFactory(options).create_adapter("tenant-a")

        assert isinstance(adapter, FileStorageAdapter)
        assert adapter.tenant_id == "T9"
        assert (tmp_path / "logserver" / "tenant-a").is_dir()

    def test_file_without_path_is_memory(self):
        """File type without db_path falls through to memory."""
        options = StorageOptions(type=StorageType.FILE)

        adapter = StorageAdapterFactory(options).create_adapter("ns")

        assert isinstance(adapter, MemoryStorageAdapter)

    def test_uncreatable_directory_falls_back_to_memory(self, tmp_path):
        """A db_path that cannot hold directories falls back to memory."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        options = StorageOptions(type=StorageType.FILE, db_path=str(blocker))

        adapter = StorageAdapterFactory(options).create_adapter("ns")

        assert isinstance(adapter, MemoryStorageAdapter)


class TestAdapterCache:
    """Tests for per-namespace caching."""

    def test_get_adapter_caches_per_namespace(self):
        """The same namespace yields the same instance."""
        factory = StorageAdapterFactory()

        first = factory.get_adapter("a")

        assert factory.get_adapter("a") is first
        assert factory.get_adapter("b") is not first
        assert factory.create_adapter("a") is not first

    @pytest.mark.asyncio
    async def test_close_all(self):
        """close_all closes and forgets cached adapters."""
        factory = StorageAdapterFactory()
        adapter = factory.get_adapter("a")
        await adapter.initialize()

        await factory.close_all()

        assert adapter.initialized is False
        assert factory.get_adapter("a") is not adapter

    @pytest.mark.asyncio
    async def test_remote_adapter_uses_client_factory(self, redis_client_factory):
        """An injected client factory is handed to Redis adapters."""
        factory = StorageAdapterFactory(
            StorageOptions(type="redis"), redis_client_factory=redis_client_factory
        )
        adapter = factory.get_adapter("ns")

        await adapter.store_log_entry("e1", "app", "x")

        assert (await adapter.get_log_entry_by_id("app", "e1")).data == "x"
        await factory.close_all()
