"""
Tests for the embedded file storage adapter.

Uses real SQLite files under pytest's tmp_path.
"""

import asyncio
import sqlite3

import aiosqlite
import pytest

from logserver_storage.adapters.file import FileStorageAdapter
from logserver_storage.exceptions import StorageConnectionError, StorageIOError
from logserver_storage.models import Log, LogEntry


@pytest.fixture
async def file_adapter(tmp_path):
    adapter = FileStorageAdapter("tenant-a", db_path=tmp_path)
    await adapter.initialize()
    yield adapter
    await adapter.close()


class TestFileLayout:
    """Tests for on-disk layout."""

    @pytest.mark.asyncio
    async def test_database_path_is_namespaced(self, file_adapter, tmp_path):
        """The database lives at <db_path>/logserver/<namespace>/logs.db."""
        assert file_adapter.database_file == tmp_path / "logserver" / "tenant-a" / "logs.db"
        assert file_adapter.database_file.exists()

    @pytest.mark.asyncio
    async def test_schema_has_collections_and_indexes(self, file_adapter):
        """Entries, log metadata and token tables exist with their indexes."""
        conn = sqlite3.connect(file_adapter.database_file)
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
            indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
        finally:
            conn.close()

        assert {"entries", "logs_meta", "entry_tokens"} <= tables
        assert {"idx_entries_log", "idx_entries_created", "idx_logs_meta_tenant"} <= indexes


class TestFilePersistence:
    """Tests for durability across connections."""

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path):
        """A new adapter on the same path sees earlier writes."""
        writer = FileStorageAdapter("ns", db_path=tmp_path)
        await writer.create_log(Log(name="orders", description="kept"))
        entry_id = await writer.append_log_entry("orders", LogEntry(data={"amount": 10}))
        await writer.store_log_entry("raw-1", "legacy", "blob", search_tokens=["tok"])
        await writer.close()

        reader = FileStorageAdapter("ns", db_path=tmp_path)
        try:
            assert (await reader.get_log("orders")).description == "kept"
            assert (await reader.get_log_entry("orders", entry_id)).data == {"amount": 10}
            hits = await reader.search_logs_by_token("tok")
            assert [hit.entry.id for hit in hits] == ["raw-1"]
        finally:
            await reader.close()

    @pytest.mark.asyncio
    async def test_close_releases_connection(self, file_adapter):
        """Close drops the connection and the initialized flag."""
        await file_adapter.close()

        assert file_adapter.conn is None
        assert file_adapter.initialized is False

    @pytest.mark.asyncio
    async def test_concurrent_first_use_opens_one_connection(self, tmp_path, monkeypatch):
        """Interleaved first calls share a single connection, also after a close."""
        connect = aiosqlite.connect
        opened = []

        def counting_connect(*args, **kwargs):
            conn = connect(*args, **kwargs)
            opened.append(conn)
            return conn

        monkeypatch.setattr(aiosqlite, "connect", counting_connect)
        adapter = FileStorageAdapter("ns", db_path=tmp_path)

        await asyncio.gather(*(adapter.get_log("orders") for _ in range(5)))
        assert len(opened) == 1

        await adapter.close()
        await asyncio.gather(*(adapter.get_log("orders") for _ in range(5)))
        assert len(opened) == 2
        await adapter.close()

    @pytest.mark.asyncio
    async def test_rewritten_entry_moves_to_end(self, file_adapter):
        """Replacing an entry gives it a new insertion position."""
        await file_adapter.store_log_entry("e1", "app", 1)
        await file_adapter.store_log_entry("e2", "app", 2)
        await file_adapter.store_log_entry("e1", "app", 3)

        entries = await file_adapter.get_logs_by_name("app")

        assert [entry.id for entry in entries] == ["e2", "e1"]


class TestFileErrors:
    """Tests for error translation."""

    @pytest.mark.asyncio
    async def test_uncreatable_directory_raises_io_error(self, tmp_path):
        """A db_path below a regular file cannot be created."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        adapter = FileStorageAdapter("ns", db_path=blocker)

        with pytest.raises(StorageIOError):
            await adapter.initialize()

    @pytest.mark.asyncio
    async def test_unopenable_database_raises_connection_error(self, tmp_path):
        """A directory where the database file should be fails to open."""
        adapter = FileStorageAdapter("ns", db_path=tmp_path)
        adapter.database_file.mkdir(parents=True)

        with pytest.raises(StorageConnectionError):
            await adapter.initialize()

        assert adapter.initialized is False
        assert adapter.conn is None
