"""
Embedded file storage adapter.

One SQLite database per namespace at ``<db_path>/logserver/<namespace>/logs.db``,
accessed through aiosqlite so every driver call is awaitable. Entry documents
are stored as JSON text next to the indexed columns the queries need.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import LogExistsError, LogNotFoundError, StorageConnectionError
from ..file_ops import ensure_directory, namespace_directory
from ..models import (
    DEFAULT_ENTRY_PAGE_SIZE,
    DEFAULT_LOG_NAMES_LIMIT,
    DEFAULT_PURGE_BATCH_SIZE,
    DEFAULT_RAW_LIMIT,
    BatchAppendItem,
    BatchAppendResult,
    EntrySearchOptions,
    Log,
    LogEntry,
    PaginatedResult,
    PurgeResult,
    SearchHit,
    utc_now_iso,
)
from .base import StorageAdapter, filter_entries, validate_pagination

DB_FILENAME = "logs.db"

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    log_name TEXT NOT NULL,
    entry_id TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    doc TEXT NOT NULL,
    UNIQUE (log_name, entry_id)
);
CREATE INDEX IF NOT EXISTS idx_entries_log ON entries (log_name, seq);
CREATE INDEX IF NOT EXISTS idx_entries_created ON entries (created_at);

CREATE TABLE IF NOT EXISTS logs_meta (
    id TEXT NOT NULL UNIQUE,
    tenant_id TEXT NOT NULL,
    name TEXT NOT NULL,
    doc TEXT NOT NULL,
    UNIQUE (tenant_id, name)
);
CREATE INDEX IF NOT EXISTS idx_logs_meta_tenant ON logs_meta (tenant_id);

CREATE TABLE IF NOT EXISTS entry_tokens (
    token TEXT NOT NULL,
    log_name TEXT NOT NULL,
    entry_id TEXT NOT NULL,
    PRIMARY KEY (token, log_name, entry_id)
);
CREATE INDEX IF NOT EXISTS idx_entry_tokens_entry ON entry_tokens (log_name, entry_id);
"""


def _dumps(doc: dict[str, Any]) -> str:
    return json.dumps(doc, separators=(",", ":"))


class FileStorageAdapter(StorageAdapter):
    """
    Storage adapter backed by an embedded SQLite file.

    Features:
    - One database file per namespace
    - Unique (log name, entry id) and (tenant, log name) constraints
    - Indexed creation time for retention purges
    - Listings ordered by an insertion sequence
    """

    backend_name = "file"

    def __init__(self, namespace: str = "default", db_path: str | Path = "./data", **kwargs: Any):
        super().__init__(namespace, **kwargs)
        self.directory = namespace_directory(db_path, namespace)
        self.conn: aiosqlite.Connection | None = None

    @property
    def database_file(self) -> Path:
        return self.directory / DB_FILENAME

    async def initialize(self) -> None:
        """Create the namespace directory, open the database and create the schema."""
        async with self._init_lock:
            if self._initialized:
                return

            await ensure_directory(self.directory)

            try:
                self.conn = await aiosqlite.connect(str(self.database_file))
                await self.conn.executescript(_SCHEMA_SQL)
                await self.conn.commit()
            except Exception as e:
                if self.conn is not None:
                    await self.conn.close()
                    self.conn = None
                raise StorageConnectionError(str(self.database_file), e) from e

            self._initialized = True
        self.logger.info(f"File storage adapter initialized: {self.database_file}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    # =========================================================================
    # Internal entry bookkeeping
    # =========================================================================

    async def _write(self, log_name: str, entry: LogEntry) -> LogEntry:
        """Insert a prepared entry, replacing an existing one with the same id.

        Does not commit.
        """
        await self.conn.execute(
            "DELETE FROM entry_tokens WHERE log_name = ? AND entry_id = ?",
            (log_name, entry.id),
        )
        # REPLACE deletes the conflicting row, so a rewritten entry gets a new seq
        await self.conn.execute(
            "INSERT OR REPLACE INTO entries (log_name, entry_id, created_at, doc) "
            "VALUES (?, ?, ?, ?)",
            (log_name, entry.id, entry.created_at, _dumps(entry.to_dict())),
        )
        if entry.search_tokens:
            await self.conn.executemany(
                "INSERT OR IGNORE INTO entry_tokens (token, log_name, entry_id) VALUES (?, ?, ?)",
                [(token, log_name, entry.id) for token in entry.search_tokens],
            )
        return entry

    async def _fetch_entries(self, query: str, params: tuple[Any, ...]) -> list[LogEntry]:
        async with self.conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [LogEntry.from_dict(json.loads(row[0])) for row in rows]

    async def _all_entries(self, log_name: str) -> list[LogEntry]:
        await self._ensure_initialized()
        return await self._fetch_entries(
            "SELECT doc FROM entries WHERE log_name = ? ORDER BY seq",
            (log_name,),
        )

    # =========================================================================
    # Raw Entry Operations
    # =========================================================================

    async def store_log_entry(
        self,
        entry_id: str,
        log_name: str,
        data: Any,
        search_tokens: list[str] | None = None,
    ) -> None:
        await self._ensure_initialized()
        entry = LogEntry(data=data, id=entry_id, search_tokens=search_tokens)
        await self._write(log_name, entry.prepared(log_name, self._clock()))
        await self.conn.commit()
        self.logger.info(f"Stored log entry: {log_name}, ID: {entry_id}")

    async def get_log_entry_by_id(self, log_name: str, entry_id: str) -> LogEntry | None:
        await self._ensure_initialized()
        entries = await self._fetch_entries(
            "SELECT doc FROM entries WHERE log_name = ? AND entry_id = ?",
            (log_name, entry_id),
        )
        if not entries:
            self.logger.debug(f"Log entry not found: {log_name}, ID: {entry_id}")
            return None
        return entries[0]

    async def update_log_entry_by_id(self, log_name: str, entry_id: str, data: Any) -> bool:
        await self._ensure_initialized()
        entry = await self.get_log_entry_by_id(log_name, entry_id)
        if entry is None:
            self.logger.info(f"Log entry not found for update: {log_name}, ID: {entry_id}")
            return False

        entry.data = data
        entry.timestamp = utc_now_iso()
        await self.conn.execute(
            "UPDATE entries SET doc = ? WHERE log_name = ? AND entry_id = ?",
            (_dumps(entry.to_dict()), log_name, entry_id),
        )
        await self.conn.commit()
        self.logger.info(f"Updated log entry: {log_name}, ID: {entry_id}")
        return True

    async def delete_log_entry_by_id(self, log_name: str, entry_id: str) -> bool:
        await self._ensure_initialized()
        cursor = await self.conn.execute(
            "DELETE FROM entries WHERE log_name = ? AND entry_id = ?",
            (log_name, entry_id),
        )
        deleted = cursor.rowcount > 0
        await self.conn.execute(
            "DELETE FROM entry_tokens WHERE log_name = ? AND entry_id = ?",
            (log_name, entry_id),
        )
        await self.conn.commit()
        if deleted:
            self.logger.info(f"Deleted log entry: {log_name}, ID: {entry_id}")
        return deleted

    async def get_logs_by_name(self, log_name: str, limit: int = DEFAULT_RAW_LIMIT) -> list[LogEntry]:
        validate_pagination(limit)
        await self._ensure_initialized()
        return await self._fetch_entries(
            "SELECT doc FROM entries WHERE log_name = ? ORDER BY seq LIMIT ?",
            (log_name, limit),
        )

    async def get_log_names(self, limit: int = DEFAULT_LOG_NAMES_LIMIT) -> list[str]:
        validate_pagination(limit)
        await self._ensure_initialized()
        async with self.conn.execute(
            "SELECT log_name FROM entries GROUP BY log_name ORDER BY MIN(seq) LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def clear_log(self, log_name: str) -> bool:
        await self._ensure_initialized()
        cursor = await self.conn.execute("DELETE FROM entries WHERE log_name = ?", (log_name,))
        cleared = cursor.rowcount > 0
        await self.conn.execute("DELETE FROM entry_tokens WHERE log_name = ?", (log_name,))
        await self.conn.commit()
        if not cleared:
            self.logger.info(f"Log not found: {log_name}")
            return False
        self.logger.info(f"Cleared log: {log_name}")
        return True

    # =========================================================================
    # Structured Log Operations
    # =========================================================================

    async def create_log(self, log: Log) -> Log:
        await self._ensure_initialized()
        new_log = log.with_defaults(self.tenant_id)
        try:
            await self.conn.execute(
                "INSERT INTO logs_meta (id, tenant_id, name, doc) VALUES (?, ?, ?, ?)",
                (new_log.id, new_log.tenant_id, new_log.name, _dumps(new_log.to_dict())),
            )
            await self.conn.commit()
        except aiosqlite.IntegrityError:
            await self.conn.rollback()
            raise LogExistsError(new_log.name, new_log.tenant_id) from None
        self.logger.info(f"Created log {new_log.name}")
        return new_log

    async def _load_log(self, tenant_id: str, name: str) -> Log | None:
        async with self.conn.execute(
            "SELECT doc FROM logs_meta WHERE tenant_id = ? AND name = ?",
            (tenant_id, name),
        ) as cursor:
            row = await cursor.fetchone()
        return Log.from_dict(json.loads(row[0])) if row else None

    async def get_logs(self) -> list[Log]:
        await self._ensure_initialized()
        async with self.conn.execute(
            "SELECT doc FROM logs_meta WHERE tenant_id = ? ORDER BY rowid",
            (self.tenant_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Log.from_dict(json.loads(row[0])) for row in rows]

    async def get_log(self, name: str) -> Log | None:
        await self._ensure_initialized()
        return await self._load_log(self.tenant_id, name)

    async def update_log(self, log: Log) -> Log:
        await self._ensure_initialized()
        tenant_id = log.tenant_id or self.tenant_id
        existing = await self._load_log(tenant_id, log.name)
        if existing is None:
            raise LogNotFoundError(log.name, tenant_id)

        updated = existing.merged_with(log)
        await self.conn.execute(
            "UPDATE logs_meta SET doc = ? WHERE tenant_id = ? AND name = ?",
            (_dumps(updated.to_dict()), tenant_id, log.name),
        )
        await self.conn.commit()
        self.logger.info(f"Updated log {log.name}")
        return updated

    async def delete_log(self, name: str) -> None:
        """Delete a log record with its entries and token index rows in one transaction."""
        await self._ensure_initialized()
        try:
            await self.conn.execute(
                "DELETE FROM logs_meta WHERE tenant_id = ? AND name = ?",
                (self.tenant_id, name),
            )
            await self.conn.execute("DELETE FROM entries WHERE log_name = ?", (name,))
            await self.conn.execute("DELETE FROM entry_tokens WHERE log_name = ?", (name,))
            await self.conn.commit()
        except Exception as e:
            await self.conn.rollback()
            self.logger.error(f"Failed to delete log {name}: {e}")
            raise
        self.logger.info(f"Deleted log {name}")

    # =========================================================================
    # Structured Entry Operations
    # =========================================================================

    async def append_log_entry(self, log_name: str, entry: LogEntry) -> str:
        await self._require_log(log_name)
        stored = await self._write(log_name, entry.prepared(log_name, self._clock()))
        await self.conn.commit()
        self.logger.info(f"Appended log entry to {log_name}")
        return stored.id

    async def batch_append_log_entries(
        self, log_name: str, entries: list[LogEntry]
    ) -> BatchAppendResult:
        await self._require_log(log_name)
        result = BatchAppendResult()
        try:
            for entry in entries:
                stored = await self._write(log_name, entry.prepared(log_name, self._clock()))
                result.entries.append(BatchAppendItem(id=stored.id, timestamp=stored.timestamp))
            await self.conn.commit()
        except Exception as e:
            await self.conn.rollback()
            self.logger.error(f"Batch append to {log_name} failed: {e}")
            raise
        self.logger.info(f"Batch appended {len(entries)} log entries to {log_name}")
        return result

    async def get_log_entries(
        self,
        log_name: str,
        limit: int = DEFAULT_ENTRY_PAGE_SIZE,
        offset: int = 0,
    ) -> PaginatedResult:
        validate_pagination(limit, offset)
        await self._require_log(log_name)

        async with self.conn.execute(
            "SELECT COUNT(*) FROM entries WHERE log_name = ?", (log_name,)
        ) as cursor:
            row = await cursor.fetchone()
        total = row[0] if row else 0

        items = await self._fetch_entries(
            "SELECT doc FROM entries WHERE log_name = ? ORDER BY seq LIMIT ? OFFSET ?",
            (log_name, limit, offset),
        )
        return PaginatedResult.from_page(items, total, limit, offset)

    async def get_log_entry(self, log_name: str, entry_id: str) -> LogEntry | None:
        await self._require_log(log_name)
        return await self.get_log_entry_by_id(log_name, entry_id)

    async def search_log_entries(
        self, log_name: str, options: EntrySearchOptions
    ) -> PaginatedResult:
        validate_pagination(options.limit, options.offset)
        await self._require_log(log_name)
        matched = filter_entries(await self._all_entries(log_name), options)
        self.logger.debug(f"Search matched {len(matched)} entries in {log_name}")
        return PaginatedResult.from_all(matched, options.limit, options.offset)

    async def search_logs_by_token(self, token: str, limit: int = DEFAULT_RAW_LIMIT) -> list[SearchHit]:
        validate_pagination(limit)
        await self._ensure_initialized()
        async with self.conn.execute(
            """
            SELECT e.log_name, e.doc
            FROM entry_tokens t
            JOIN entries e ON e.log_name = t.log_name AND e.entry_id = t.entry_id
            WHERE t.token = ?
            ORDER BY e.seq
            LIMIT ?
            """,
            (token, limit),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            SearchHit(log_name=row[0], entry=LogEntry.from_dict(json.loads(row[1]))) for row in rows
        ]

    # =========================================================================
    # Retention
    # =========================================================================

    async def count_expired_logs(self, cutoff_time_ms: int) -> int:
        await self._ensure_initialized()
        async with self.conn.execute(
            "SELECT COUNT(*) FROM entries WHERE created_at <= ?", (cutoff_time_ms,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def purge_expired_logs(
        self, cutoff_time_ms: int, batch_size: int = DEFAULT_PURGE_BATCH_SIZE
    ) -> PurgeResult:
        validate_pagination(batch_size, limit_field="batch_size")
        await self._ensure_initialized()

        async with self.conn.execute(
            "SELECT log_name, entry_id FROM entries WHERE created_at <= ? ORDER BY seq LIMIT ?",
            (cutoff_time_ms, batch_size),
        ) as cursor:
            expired = [(row[0], row[1]) for row in await cursor.fetchall()]

        if not expired:
            self.logger.info("No expired entries found")
            return PurgeResult(purged_count=0)

        self.logger.info(f"Found {len(expired)} expired entries")
        return await self._delete_expired(expired)
