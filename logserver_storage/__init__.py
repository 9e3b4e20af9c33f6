"""
Logserver Storage

Multi-backend log storage library for tenant-scoped, optionally
client-encrypted logs.

Provides:
- One adapter contract with memory, embedded-file (SQLite) and Redis backends
- Raw entry storage and structured logs with pagination and search
- Searchable-encryption token indexes
- Retention policies and batch purging by server creation time

Usage:

    >>> from logserver_storage import StorageAdapterFactory, StorageOptions, Log, LogEntry
    >>> factory = StorageAdapterFactory(StorageOptions.from_env())
    >>> adapter = factory.get_adapter("tenant-a")
    >>> await adapter.create_log(Log(name="orders"))
    >>> await adapter.append_log_entry("orders", LogEntry(data={"amount": 10}))
    >>> page = await adapter.get_log_entries("orders", limit=10)

Backend Selection:

    # Volatile, for tests
    StorageOptions(type=StorageType.MEMORY)

    # Embedded file database per namespace
    StorageOptions(type=StorageType.FILE, db_path="./data")

    # Redis
    StorageOptions(type=StorageType.REMOTE, remote=RemoteOptions(url="redis://localhost:6379/0"))
"""

from .adapters import (
    FileStorageAdapter,
    MemoryStorageAdapter,
    RedisStorageAdapter,
    StorageAdapter,
    StorageAdapterFactory,
)
from .config import RemoteOptions, ServerSettings, StorageOptions, StorageType
from .exceptions import (
    LogExistsError,
    LogNotFoundError,
    LogStorageError,
    RetentionPolicyError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .logging_utils import configure_structured_logging
from .models import (
    SERVER_NAMESPACE,
    BatchAppendItem,
    BatchAppendResult,
    EncryptionInfo,
    EntrySearchOptions,
    Log,
    LogEntry,
    LogsSearchOptions,
    PaginatedResult,
    PurgeResult,
    SearchHit,
)
from .payloads import CoercedPayload, PayloadKind, coerce_payload, ensure_json_object
from .retention import (
    InMemoryRetentionPolicyStore,
    JsonFileRetentionPolicyStore,
    PurgeAllResult,
    RetentionPolicy,
    RetentionPolicyStore,
    RetentionService,
    TenantPurgeResult,
)

__all__ = [
    # Adapters
    "StorageAdapter",
    "StorageAdapterFactory",
    "MemoryStorageAdapter",
    "FileStorageAdapter",
    "RedisStorageAdapter",
    # Configuration
    "StorageType",
    "StorageOptions",
    "RemoteOptions",
    "ServerSettings",
    # Models
    "SERVER_NAMESPACE",
    "Log",
    "LogEntry",
    "EncryptionInfo",
    "PaginatedResult",
    "BatchAppendResult",
    "BatchAppendItem",
    "SearchHit",
    "LogsSearchOptions",
    "EntrySearchOptions",
    "PurgeResult",
    # Payload coercion
    "PayloadKind",
    "CoercedPayload",
    "coerce_payload",
    "ensure_json_object",
    # Retention
    "RetentionPolicy",
    "RetentionPolicyStore",
    "InMemoryRetentionPolicyStore",
    "JsonFileRetentionPolicyStore",
    "RetentionService",
    "TenantPurgeResult",
    "PurgeAllResult",
    # Logging
    "configure_structured_logging",
    # Exceptions
    "LogStorageError",
    "LogNotFoundError",
    "LogExistsError",
    "StorageIOError",
    "StorageConnectionError",
    "ValidationError",
    "RetentionPolicyError",
]

__version__ = "0.1.0"
