"""
Data types shared by every storage adapter.

Stored documents keep camelCase keys (``logId``, ``tenantId``,
``createdAt``) so that an entry written by one backend serializes the
same way in all of them. Python attributes are snake_case.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .exceptions import ValidationError

# Server namespace prefix for all data
SERVER_NAMESPACE = "logserver"

DEFAULT_TENANT_ID = "default-tenant"

# Pagination defaults
DEFAULT_RAW_LIMIT = 100
DEFAULT_ENTRY_PAGE_SIZE = 10
DEFAULT_LOG_NAMES_LIMIT = 1000
DEFAULT_PURGE_BATCH_SIZE = 1000


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    """Generate a fresh entry or log identifier."""
    return str(uuid.uuid4())


def to_epoch_ms(value: int | float | str | datetime | None) -> int | None:
    """Normalize a time bound to epoch milliseconds.

    Accepts epoch milliseconds, ISO-8601 strings and datetimes.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("time", "must be epoch milliseconds or ISO-8601", str(value))
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("time", "must be epoch milliseconds or ISO-8601", value) from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


@dataclass
class EncryptionInfo:
    """How a client encrypted an entry payload. Opaque to the server."""

    version: str = "v1"
    algorithm: str = "none"

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "algorithm": self.algorithm}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EncryptionInfo:
        return cls(
            version=data.get("version", "v1"),
            algorithm=data.get("algorithm", "none"),
        )


@dataclass
class Log:
    """Metadata record for a named log owned by a tenant.

    Fields left as ``None`` are treated as "not provided": ``create_log``
    fills ``id``/``created_at``/``updated_at`` defaults and ``update_log``
    keeps the stored value for them.
    """

    name: str
    tenant_id: str | None = None
    id: str | None = None
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    retention_days: int | None = None
    encryption_enabled: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a storage document, omitting unset fields."""
        doc = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tenantId": self.tenant_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "retentionDays": self.retention_days,
            "encryptionEnabled": self.encryption_enabled,
        }
        return {k: v for k, v in doc.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Log:
        """Deserialize from a storage document."""
        return cls(
            name=data["name"],
            tenant_id=data.get("tenantId"),
            id=data.get("id"),
            description=data.get("description"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            retention_days=data.get("retentionDays"),
            encryption_enabled=data.get("encryptionEnabled"),
        )

    def with_defaults(self, tenant_id: str) -> Log:
        """Return a copy with id, owner and timestamps filled in."""
        now = utc_now_iso()
        return Log(
            name=self.name,
            tenant_id=self.tenant_id or tenant_id,
            id=self.id or new_id(),
            description=self.description,
            created_at=self.created_at or now,
            updated_at=self.updated_at or now,
            retention_days=self.retention_days,
            encryption_enabled=self.encryption_enabled,
        )

    def merged_with(self, changes: Log) -> Log:
        """Apply the non-``None`` fields of ``changes`` and refresh ``updated_at``."""
        merged = self.to_dict()
        merged.update(changes.to_dict())
        merged["updatedAt"] = utc_now_iso()
        return Log.from_dict(merged)


@dataclass
class LogEntry:
    """A single entry in a log.

    Attributes:
        data: Opaque payload; may be ciphertext and is never parsed.
        id: Entry ID, generated by the adapter when absent
        log_id: Name of the log this entry belongs to
        timestamp: Logical timestamp; client supplied and possibly encrypted
        search_tokens: Client-derived tokens for searchable encryption
        encryption_info: How the client encrypted ``data``
        created_at: Server-assigned epoch milliseconds, used only for retention
    """

    data: Any = None
    id: str | None = None
    log_id: str | None = None
    timestamp: str | None = None
    search_tokens: list[str] | None = None
    encryption_info: EncryptionInfo | None = None
    created_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a storage document."""
        doc: dict[str, Any] = {
            "id": self.id,
            "logId": self.log_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }
        if self.search_tokens:
            doc["searchTokens"] = list(self.search_tokens)
        if self.encryption_info is not None:
            doc["encryptionInfo"] = self.encryption_info.to_dict()
        if self.created_at is not None:
            doc["createdAt"] = self.created_at
        return doc

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        """Deserialize from a storage document."""
        encryption_info = data.get("encryptionInfo")
        return cls(
            data=data.get("data"),
            id=data.get("id"),
            log_id=data.get("logId"),
            timestamp=data.get("timestamp"),
            search_tokens=data.get("searchTokens"),
            encryption_info=EncryptionInfo.from_dict(encryption_info) if encryption_info else None,
            created_at=data.get("createdAt"),
        )

    def prepared(self, log_name: str, created_at: int) -> LogEntry:
        """Return the copy that gets stored for ``log_name``.

        The id is generated when missing and ``timestamp`` is set only if
        the caller did not supply one. Ids may not contain ":".
        """
        if self.id and ":" in self.id:
            raise ValidationError("id", "must not contain ':'", self.id)
        return LogEntry(
            data=self.data,
            id=self.id or new_id(),
            log_id=log_name,
            timestamp=self.timestamp or utc_now_iso(),
            search_tokens=list(self.search_tokens) if self.search_tokens else None,
            encryption_info=self.encryption_info,
            created_at=created_at,
        )


@dataclass
class PaginatedResult:
    """One page of entries plus the size of the full result set."""

    items: list[LogEntry]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_page(cls, items: list[LogEntry], total: int, limit: int, offset: int) -> PaginatedResult:
        return cls(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )

    @classmethod
    def from_all(cls, entries: list[LogEntry], limit: int, offset: int) -> PaginatedResult:
        """Slice a fully materialized result set."""
        return cls.from_page(entries[offset : offset + limit], len(entries), limit, offset)


@dataclass
class BatchAppendItem:
    id: str
    timestamp: str


@dataclass
class BatchAppendResult:
    entries: list[BatchAppendItem] = field(default_factory=list)


@dataclass
class SearchHit:
    """A cross-log search match."""

    log_name: str
    entry: LogEntry


@dataclass
class LogsSearchOptions:
    """Options for searching across logs.

    ``query`` is a case-insensitive substring match over the serialized
    entry. ``field_filters`` maps dot paths (``"data.level"``) to values
    that must match exactly. Both filters AND together.
    """

    query: str | None = None
    log_name: str | None = None
    field_filters: dict[str, Any] | None = None
    limit: int = DEFAULT_RAW_LIMIT


@dataclass
class EntrySearchOptions:
    """Options for searching the entries of one log.

    ``start_time``/``end_time`` bound the server-side ``createdAt``,
    never the client ``timestamp``.
    """

    query: str | None = None
    limit: int = DEFAULT_ENTRY_PAGE_SIZE
    offset: int = 0
    start_time: int | str | None = None
    end_time: int | str | None = None


@dataclass
class PurgeResult:
    purged_count: int = 0
