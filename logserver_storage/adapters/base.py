"""
Abstract base class for storage adapters.

All storage implementations (memory, file, remote) must implement this interface
with identical external semantics. Adapters are bound to one namespace and one
tenant; every key, document and map they touch is scoped by
``SERVER_NAMESPACE``/namespace.

Raw entry operations are the legacy path: they never raise for a missing log
and accept any log name. Structured entry operations require an existing Log
record and raise ``LogNotFoundError`` otherwise.

Entry payloads are opaque. Adapters never parse ``data`` and never order by the
client ``timestamp``; retention only reads the server-assigned ``createdAt``.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from ..exceptions import LogNotFoundError, ValidationError
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..models import (
    DEFAULT_ENTRY_PAGE_SIZE,
    DEFAULT_LOG_NAMES_LIMIT,
    DEFAULT_PURGE_BATCH_SIZE,
    DEFAULT_RAW_LIMIT,
    DEFAULT_TENANT_ID,
    BatchAppendResult,
    EntrySearchOptions,
    Log,
    LogEntry,
    LogsSearchOptions,
    PaginatedResult,
    PurgeResult,
    SearchHit,
    now_ms,
    to_epoch_ms,
)

_MISSING = object()


def validate_pagination(limit: int, offset: int = 0, limit_field: str = "limit") -> None:
    """Reject negative offsets and non-positive limits."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError(limit_field, "must be a positive integer", str(limit))
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError("offset", "must be a non-negative integer", str(offset))


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve a dot path such as ``"data.level"``; returns a sentinel when absent."""
    current = obj
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def values_equal(actual: Any, expected: Any) -> bool:
    """Strict equality: booleans only ever equal booleans."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if type(actual) is not type(expected) and not (
        isinstance(actual, (int, float)) and isinstance(expected, (int, float))
    ):
        return False
    return actual == expected


def searchable_text(entry: LogEntry) -> str:
    """Compact lowercase JSON of an entry, excluding server bookkeeping."""
    doc = entry.to_dict()
    doc.pop("createdAt", None)
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False, default=str).lower()


def matches_query(entry: LogEntry, query: str | None) -> bool:
    if not query:
        return True
    return query.lower() in searchable_text(entry)


def matches_field_filters(entry: LogEntry, field_filters: dict[str, Any] | None) -> bool:
    if not field_filters:
        return True
    doc = entry.to_dict()
    for path, expected in field_filters.items():
        actual = get_nested_value(doc, path)
        if actual is _MISSING or not values_equal(actual, expected):
            return False
    return True


def matches_time_window(entry: LogEntry, start_ms: int | None, end_ms: int | None) -> bool:
    if start_ms is None and end_ms is None:
        return True
    if entry.created_at is None:
        return False
    if start_ms is not None and entry.created_at < start_ms:
        return False
    if end_ms is not None and entry.created_at > end_ms:
        return False
    return True


def filter_entries(entries: list[LogEntry], options: EntrySearchOptions) -> list[LogEntry]:
    """Apply the query and time window of ``options`` to a materialized list."""
    start_ms = to_epoch_ms(options.start_time)
    end_ms = to_epoch_ms(options.end_time)
    return [
        entry
        for entry in entries
        if matches_time_window(entry, start_ms, end_ms) and matches_query(entry, options.query)
    ]


def split_member(member: str) -> tuple[str, str]:
    """Split a ``"<logName>:<entryId>"`` member; log names may contain colons."""
    log_name, _, entry_id = member.rpartition(":")
    return log_name, entry_id


class StorageAdapter(ABC):
    """
    Abstract base for all storage adapters.

    Implementations must support:
    - Raw entry storage keyed by (log name, entry id)
    - Structured log metadata per tenant with cascading delete
    - Structured entry append, listing and search with pagination
    - Cross-log and token search
    - Retention purge by server creation time

    Lifecycle: ``initialize()`` is idempotent and every operation calls
    ``_ensure_initialized()`` first, so an adapter transparently re-initializes
    after ``close()``.
    """

    backend_name = "base"

    def __init__(
        self,
        namespace: str = "default",
        tenant_id: str = DEFAULT_TENANT_ID,
        clock: Callable[[], int] = now_ms,
    ):
        self._namespace = namespace
        self._tenant_id = tenant_id
        self._clock = clock
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self.logger = StorageLoggerAdapter(
            get_storage_logger(self.backend_name),
            {"namespace": namespace, "tenant_id": tenant_id},
        )

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def __aenter__(self) -> StorageAdapter:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @abstractmethod
    async def initialize(self) -> None:
        """Create connections, files and indexes. Idempotent."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources and clear the initialized flag."""
        pass

    # =========================================================================
    # Raw Entry Operations
    # =========================================================================

    @abstractmethod
    async def store_log_entry(
        self,
        entry_id: str,
        log_name: str,
        data: Any,
        search_tokens: list[str] | None = None,
    ) -> None:
        """
        Store an opaque entry under ``log_name``.

        Storing an id that already exists in the log replaces the entry and
        refreshes its creation time.

        Args:
            entry_id: Entry identifier
            log_name: Log name (possibly encrypted by the client)
            data: Opaque payload
            search_tokens: Optional tokens for searchable encryption
        """
        pass

    @abstractmethod
    async def get_log_entry_by_id(self, log_name: str, entry_id: str) -> LogEntry | None:
        """Get an entry by id, or None if it does not exist."""
        pass

    @abstractmethod
    async def update_log_entry_by_id(self, log_name: str, entry_id: str, data: Any) -> bool:
        """Replace ``data`` and refresh ``timestamp``. Returns False if absent."""
        pass

    @abstractmethod
    async def delete_log_entry_by_id(self, log_name: str, entry_id: str) -> bool:
        """Delete an entry with its retention record and token indexes."""
        pass

    @abstractmethod
    async def get_logs_by_name(self, log_name: str, limit: int = DEFAULT_RAW_LIMIT) -> list[LogEntry]:
        """Get up to ``limit`` entries of a log in insertion order."""
        pass

    @abstractmethod
    async def get_log_names(self, limit: int = DEFAULT_LOG_NAMES_LIMIT) -> list[str]:
        """Get names of logs holding at least one entry."""
        pass

    @abstractmethod
    async def clear_log(self, log_name: str) -> bool:
        """Delete every entry of a log. Returns False if it had none."""
        pass

    # =========================================================================
    # Structured Log Operations
    # =========================================================================

    @abstractmethod
    async def create_log(self, log: Log) -> Log:
        """
        Create a log record.

        Fills ``id``, ``createdAt``/``updatedAt`` and the owning tenant when
        missing.

        Raises:
            LogExistsError: If the name is already taken in the tenant
        """
        pass

    @abstractmethod
    async def get_logs(self) -> list[Log]:
        """Get every log record of the adapter's tenant."""
        pass

    @abstractmethod
    async def get_log(self, name: str) -> Log | None:
        """Get a log record by name."""
        pass

    @abstractmethod
    async def update_log(self, log: Log) -> Log:
        """
        Merge the provided fields into an existing log record.

        Raises:
            LogNotFoundError: If the log does not exist
        """
        pass

    @abstractmethod
    async def delete_log(self, name: str) -> None:
        """Delete a log record and every entry, retention record and token index of it."""
        pass

    # =========================================================================
    # Structured Entry Operations
    # =========================================================================

    @abstractmethod
    async def append_log_entry(self, log_name: str, entry: LogEntry) -> str:
        """Append an entry and return its id."""
        pass

    @abstractmethod
    async def batch_append_log_entries(
        self, log_name: str, entries: list[LogEntry]
    ) -> BatchAppendResult:
        """Append entries, returning the id and timestamp of each in input order."""
        pass

    @abstractmethod
    async def get_log_entries(
        self,
        log_name: str,
        limit: int = DEFAULT_ENTRY_PAGE_SIZE,
        offset: int = 0,
    ) -> PaginatedResult:
        """Get one page of entries of an existing log."""
        pass

    @abstractmethod
    async def get_log_entry(self, log_name: str, entry_id: str) -> LogEntry | None:
        """Get one entry of an existing log."""
        pass

    @abstractmethod
    async def search_log_entries(
        self, log_name: str, options: EntrySearchOptions
    ) -> PaginatedResult:
        """Search the entries of an existing log by query and creation time window."""
        pass

    # =========================================================================
    # Search
    # =========================================================================

    async def search_logs(self, options: LogsSearchOptions) -> list[SearchHit]:
        """
        Search entries across logs.

        Logs are visited in ``get_log_names`` order and entries in insertion
        order; the scan stops once ``options.limit`` hits are collected.
        """
        validate_pagination(options.limit)
        await self._ensure_initialized()

        names = [options.log_name] if options.log_name else await self.get_log_names()
        hits: list[SearchHit] = []
        for name in names:
            for entry in await self._all_entries(name):
                if matches_field_filters(entry, options.field_filters) and matches_query(
                    entry, options.query
                ):
                    hits.append(SearchHit(log_name=name, entry=entry))
                    if len(hits) >= options.limit:
                        self.logger.debug(f"Search returned {len(hits)} results")
                        return hits

        self.logger.debug(f"Search returned {len(hits)} results")
        return hits

    @abstractmethod
    async def search_logs_by_token(self, token: str, limit: int = DEFAULT_RAW_LIMIT) -> list[SearchHit]:
        """Get entries whose search tokens contained ``token`` when written."""
        pass

    # =========================================================================
    # Retention
    # =========================================================================

    @abstractmethod
    async def count_expired_logs(self, cutoff_time_ms: int) -> int:
        """Count entries with ``createdAt <= cutoff_time_ms``."""
        pass

    @abstractmethod
    async def purge_expired_logs(
        self, cutoff_time_ms: int, batch_size: int = DEFAULT_PURGE_BATCH_SIZE
    ) -> PurgeResult:
        """
        Delete at most ``batch_size`` entries with ``createdAt <= cutoff_time_ms``.

        Each entry is deleted independently; failures are logged and skipped.
        """
        pass

    # =========================================================================
    # Helpers
    # =========================================================================

    @abstractmethod
    async def _all_entries(self, log_name: str) -> list[LogEntry]:
        """Every entry of a log in insertion order."""
        pass

    async def _require_log(self, log_name: str) -> Log:
        log = await self.get_log(log_name)
        if log is None:
            raise LogNotFoundError(log_name, self.tenant_id)
        return log

    async def _delete_expired(self, candidates: list[tuple[str, str]]) -> PurgeResult:
        """Delete purge candidates one by one, skipping failures."""
        purged = 0
        for log_name, entry_id in candidates:
            try:
                if await self.delete_log_entry_by_id(log_name, entry_id):
                    purged += 1
            except Exception as e:
                self.logger.error(f"Error deleting expired entry {log_name}:{entry_id}: {e}")
        self.logger.info(f"Purged {purged} expired entries")
        return PurgeResult(purged_count=purged)

