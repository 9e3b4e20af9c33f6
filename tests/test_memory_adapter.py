"""
Tests for the in-memory storage adapter.
"""

import pytest

from logserver_storage.adapters.memory import MemoryStorageAdapter
from logserver_storage.models import Log, LogEntry


class TestMemoryAdapter:
    """Memory-specific behavior."""

    @pytest.mark.asyncio
    async def test_close_keeps_data(self):
        """Close only clears the initialized flag."""
        adapter = MemoryStorageAdapter("ns")
        await adapter.store_log_entry("e1", "app", "x")

        await adapter.close()

        assert adapter.initialized is False
        assert (await adapter.get_log_entry_by_id("app", "e1")).data == "x"

    @pytest.mark.asyncio
    async def test_structured_listing_in_insertion_order(self):
        """Entries are listed oldest first."""
        adapter = MemoryStorageAdapter("ns")
        await adapter.create_log(Log(name="orders"))
        ids = [await adapter.append_log_entry("orders", LogEntry(data=n)) for n in range(3)]

        page = await adapter.get_log_entries("orders", limit=10)

        assert [entry.id for entry in page.items] == ids

    @pytest.mark.asyncio
    async def test_returned_entries_are_copies(self):
        """Mutating a returned entry does not change the stored one."""
        adapter = MemoryStorageAdapter("ns")
        await adapter.store_log_entry("e1", "app", {"tags": ["a"]})

        entry = await adapter.get_log_entry_by_id("app", "e1")
        entry.data["tags"].append("b")
        entry.data = "changed"

        assert (await adapter.get_log_entry_by_id("app", "e1")).data == {"tags": ["a"]}

    @pytest.mark.asyncio
    async def test_default_tenant(self):
        """Adapters default to the default tenant."""
        adapter = MemoryStorageAdapter("ns")

        created = await adapter.create_log(Log(name="orders"))

        assert adapter.tenant_id == "default-tenant"
        assert created.tenant_id == "default-tenant"
