"""
In-memory storage adapter.

Volatile storage in native dicts and lists, used for tests and single-process
deployments. Coroutines never suspend on I/O. Its insertion-order listings are
the reference ordering the other adapters are checked against.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from typing import Any

from ..exceptions import LogExistsError, LogNotFoundError
from ..models import (
    DEFAULT_ENTRY_PAGE_SIZE,
    DEFAULT_LOG_NAMES_LIMIT,
    DEFAULT_PURGE_BATCH_SIZE,
    DEFAULT_RAW_LIMIT,
    SERVER_NAMESPACE,
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

EntryKey = tuple[str, str]


class MemoryStorageAdapter(StorageAdapter):
    """
    Storage adapter backed by process memory.

    State:
    - logs: log name -> entries in insertion order
    - tenant_logs: tenant id -> (log name -> Log)
    - timestamps: (log name, entry id) -> creation epoch ms
    - tokens: token -> ordered set of (log name, entry id)
    """

    backend_name = "memory"

    def __init__(self, namespace: str = "default", **kwargs: Any):
        super().__init__(namespace, **kwargs)
        self._logs: dict[str, list[LogEntry]] = {}
        self._tenant_logs: dict[str, dict[str, Log]] = {}
        self._timestamps: dict[EntryKey, int] = {}
        self._tokens: dict[str, dict[EntryKey, None]] = {}

    async def initialize(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self.logger.info(f"Memory storage adapter initialized for {SERVER_NAMESPACE}:{self.namespace}")

    async def close(self) -> None:
        """Clear the initialized flag. Stored data is kept."""
        self._initialized = False

    # =========================================================================
    # Internal entry bookkeeping
    # =========================================================================

    def _find(self, log_name: str, entry_id: str) -> int:
        for index, entry in enumerate(self._logs.get(log_name, [])):
            if entry.id == entry_id:
                return index
        return -1

    def _remove(self, log_name: str, entry_id: str) -> bool:
        entries = self._logs.get(log_name)
        index = self._find(log_name, entry_id)
        if entries is None or index == -1:
            return False
        removed = entries.pop(index)
        if not entries:
            del self._logs[log_name]
        self._timestamps.pop((log_name, entry_id), None)
        for token in removed.search_tokens or []:
            members = self._tokens.get(token)
            if members is not None:
                members.pop((log_name, entry_id), None)
                if not members:
                    del self._tokens[token]
        return True

    def _write(self, log_name: str, entry: LogEntry) -> LogEntry:
        """Insert a prepared entry, replacing an existing one with the same id."""
        entry = copy.deepcopy(entry)
        self._remove(log_name, entry.id)
        self._logs.setdefault(log_name, []).append(entry)
        self._timestamps[(log_name, entry.id)] = entry.created_at
        for token in entry.search_tokens or []:
            self._tokens.setdefault(token, {})[(log_name, entry.id)] = None
        return entry

    async def _all_entries(self, log_name: str) -> list[LogEntry]:
        return [copy.deepcopy(entry) for entry in self._logs.get(log_name, [])]

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
        self._write(log_name, entry.prepared(log_name, self._clock()))
        self.logger.info(f"Stored log entry: {log_name}, ID: {entry_id}")

    async def get_log_entry_by_id(self, log_name: str, entry_id: str) -> LogEntry | None:
        await self._ensure_initialized()
        index = self._find(log_name, entry_id)
        if index == -1:
            self.logger.debug(f"Log entry not found: {log_name}, ID: {entry_id}")
            return None
        return copy.deepcopy(self._logs[log_name][index])

    async def update_log_entry_by_id(self, log_name: str, entry_id: str, data: Any) -> bool:
        await self._ensure_initialized()
        index = self._find(log_name, entry_id)
        if index == -1:
            self.logger.info(f"Log entry not found for update: {log_name}, ID: {entry_id}")
            return False
        entries = self._logs[log_name]
        entries[index] = replace(entries[index], data=copy.deepcopy(data), timestamp=utc_now_iso())
        self.logger.info(f"Updated log entry: {log_name}, ID: {entry_id}")
        return True

    async def delete_log_entry_by_id(self, log_name: str, entry_id: str) -> bool:
        await self._ensure_initialized()
        deleted = self._remove(log_name, entry_id)
        if deleted:
            self.logger.info(f"Deleted log entry: {log_name}, ID: {entry_id}")
        return deleted

    async def get_logs_by_name(self, log_name: str, limit: int = DEFAULT_RAW_LIMIT) -> list[LogEntry]:
        validate_pagination(limit)
        await self._ensure_initialized()
        entries = await self._all_entries(log_name)
        return entries[:limit]

    async def get_log_names(self, limit: int = DEFAULT_LOG_NAMES_LIMIT) -> list[str]:
        validate_pagination(limit)
        await self._ensure_initialized()
        return list(self._logs)[:limit]

    async def clear_log(self, log_name: str) -> bool:
        await self._ensure_initialized()
        entries = self._logs.get(log_name)
        if not entries:
            self.logger.info(f"Log not found: {log_name}")
            return False
        for entry in list(entries):
            self._remove(log_name, entry.id)
        self.logger.info(f"Cleared log: {log_name}")
        return True

    # =========================================================================
    # Structured Log Operations
    # =========================================================================

    async def create_log(self, log: Log) -> Log:
        await self._ensure_initialized()
        new_log = log.with_defaults(self.tenant_id)
        tenant_logs = self._tenant_logs.setdefault(new_log.tenant_id, {})
        if new_log.name in tenant_logs:
            raise LogExistsError(new_log.name, new_log.tenant_id)
        tenant_logs[new_log.name] = new_log
        self.logger.info(f"Created log {new_log.name}")
        return replace(new_log)

    async def get_logs(self) -> list[Log]:
        await self._ensure_initialized()
        return [replace(log) for log in self._tenant_logs.get(self.tenant_id, {}).values()]

    async def get_log(self, name: str) -> Log | None:
        await self._ensure_initialized()
        log = self._tenant_logs.get(self.tenant_id, {}).get(name)
        return replace(log) if log is not None else None

    async def update_log(self, log: Log) -> Log:
        await self._ensure_initialized()
        tenant_id = log.tenant_id or self.tenant_id
        tenant_logs = self._tenant_logs.get(tenant_id, {})
        existing = tenant_logs.get(log.name)
        if existing is None:
            raise LogNotFoundError(log.name, tenant_id)
        updated = existing.merged_with(log)
        tenant_logs[log.name] = updated
        self.logger.info(f"Updated log {log.name}")
        return replace(updated)

    async def delete_log(self, name: str) -> None:
        await self._ensure_initialized()
        self._tenant_logs.get(self.tenant_id, {}).pop(name, None)
        for entry in list(self._logs.get(name, [])):
            self._remove(name, entry.id)
        self.logger.info(f"Deleted log {name}")

    # =========================================================================
    # Structured Entry Operations
    # =========================================================================

    async def append_log_entry(self, log_name: str, entry: LogEntry) -> str:
        await self._require_log(log_name)
        stored = self._write(log_name, entry.prepared(log_name, self._clock()))
        self.logger.info(f"Appended log entry to {log_name}")
        return stored.id

    async def batch_append_log_entries(
        self, log_name: str, entries: list[LogEntry]
    ) -> BatchAppendResult:
        await self._require_log(log_name)
        prepared = [entry.prepared(log_name, self._clock()) for entry in entries]
        result = BatchAppendResult()
        for entry in prepared:
            stored = self._write(log_name, entry)
            result.entries.append(BatchAppendItem(id=stored.id, timestamp=stored.timestamp))
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
        return PaginatedResult.from_all(await self._all_entries(log_name), limit, offset)

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
        hits = []
        for log_name, entry_id in list(self._tokens.get(token, {}))[:limit]:
            entry = await self.get_log_entry_by_id(log_name, entry_id)
            if entry is not None:
                hits.append(SearchHit(log_name=log_name, entry=entry))
        return hits

    # =========================================================================
    # Retention
    # =========================================================================

    async def count_expired_logs(self, cutoff_time_ms: int) -> int:
        await self._ensure_initialized()
        return sum(1 for created_at in self._timestamps.values() if created_at <= cutoff_time_ms)

    async def purge_expired_logs(
        self, cutoff_time_ms: int, batch_size: int = DEFAULT_PURGE_BATCH_SIZE
    ) -> PurgeResult:
        validate_pagination(batch_size, limit_field="batch_size")
        await self._ensure_initialized()

        expired: list[EntryKey] = []
        for key, created_at in self._timestamps.items():
            if created_at <= cutoff_time_ms:
                expired.append(key)
                if len(expired) >= batch_size:
                    break

        if not expired:
            self.logger.info("No expired entries found")
            return PurgeResult(purged_count=0)

        self.logger.info(f"Found {len(expired)} expired entries")
        return await self._delete_expired(expired)
