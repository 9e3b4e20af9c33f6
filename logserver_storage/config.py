"""
Storage configuration.

Configuration can be provided directly, via environment variables or via
a YAML settings file:

Environment Variables:
    LOGSERVER_STORAGE_TYPE: memory | file | remote (aliases: nedb, redis, remote-kv)
    LOGSERVER_DB_PATH: Directory for the embedded file backend
    LOGSERVER_IN_MEMORY_ONLY: "true" forces the in-memory backend
    REDIS_URL: Full Redis URL (takes precedence over host/port)
    REDIS_HOST / REDIS_PORT / REDIS_PASSWORD / REDIS_DB: Redis connection parts
    REDIS_TLS: "true" to connect with TLS
    REDIS_KEY_PREFIX: Extra prefix prepended to every Redis key
    TENANT_ID: Tenant bound to adapters (default: default-tenant)
    MAX_RETENTION_PERIOD_MS: Maximum retention period, -1 for unlimited
    PURGE_BATCH_SIZE: Entries deleted per purge call
    PURGE_CRON_SCHEDULE: Schedule used by the external purge job
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .models import DEFAULT_PURGE_BATCH_SIZE, DEFAULT_TENANT_ID

logger = logging.getLogger(__name__)

ONE_YEAR_MS = 365 * 24 * 60 * 60 * 1000


class StorageType(Enum):
    """Storage backend kinds.

    MEMORY: Volatile in-process maps
    FILE: Embedded on-disk database per namespace
    REMOTE: Remote key-value store (Redis)
    """

    MEMORY = "memory"
    FILE = "file"
    REMOTE = "remote"

    @classmethod
    def parse(cls, value: str | StorageType | None) -> StorageType | None:
        """Parse a storage type, accepting the historical aliases.

        Unknown names yield None so the factory falls back to memory.
        """
        if value is None or isinstance(value, StorageType):
            return value
        normalized = value.strip().lower()
        if not normalized:
            return None
        aliases = {
            "nedb": cls.FILE,
            "nedb-style-file": cls.FILE,
            "sqlite": cls.FILE,
            "redis": cls.REMOTE,
            "remote-kv": cls.REMOTE,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            logger.warning(f"Unknown storage type: {value}, using the default backend")
            return None


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


@dataclass
class RemoteOptions:
    """Connection options for the remote key-value backend.

    Attributes:
        host: Redis host
        port: Redis port
        password: Optional password
        db: Database index
        url: Full connection URL; overrides host/port/password/db when set
        tls: Connect with TLS
        key_prefix: Extra prefix prepended to every key
    """

    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    db: int = 0
    url: str | None = None
    tls: bool = False
    key_prefix: str = ""

    @property
    def endpoint(self) -> str:
        """Human-readable endpoint for logs and errors (never includes the password)."""
        if self.url:
            return self.url.rsplit("@", 1)[-1]
        return f"{self.host}:{self.port}/{self.db}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteOptions:
        return cls(
            host=data.get("host", "localhost"),
            port=int(data.get("port", 6379)),
            password=data.get("password"),
            db=int(data.get("db", 0)),
            url=data.get("url"),
            tls=bool(data.get("tls", False)),
            key_prefix=data.get("key_prefix", data.get("keyPrefix", "")),
        )

    @classmethod
    def from_env(cls) -> RemoteOptions:
        return cls(
            host=os.environ.get("REDIS_HOST", "localhost"),
            port=int(os.environ.get("REDIS_PORT", "6379")),
            password=os.environ.get("REDIS_PASSWORD") or None,
            db=int(os.environ.get("REDIS_DB", "0")),
            url=os.environ.get("REDIS_URL") or None,
            tls=_env_bool("REDIS_TLS"),
            key_prefix=os.environ.get("REDIS_KEY_PREFIX", ""),
        )


@dataclass
class StorageOptions:
    """Options consumed by ``StorageAdapterFactory``.

    Attributes:
        type: Requested backend; None lets the factory pick the default
        db_path: Directory for the embedded file backend
        in_memory_only: Force the in-memory backend
        remote: Remote key-value connection options
        tenant_id: Tenant bound to created adapters
    """

    type: StorageType | None = None
    db_path: str | None = None
    in_memory_only: bool = False
    remote: RemoteOptions = field(default_factory=RemoteOptions)
    tenant_id: str = DEFAULT_TENANT_ID

    def __post_init__(self) -> None:
        self.type = StorageType.parse(self.type)

    @classmethod
    def from_env(cls) -> StorageOptions:
        """Create options from environment variables."""
        return cls(
            type=StorageType.parse(os.environ.get("LOGSERVER_STORAGE_TYPE")),
            db_path=os.environ.get("LOGSERVER_DB_PATH") or None,
            in_memory_only=_env_bool("LOGSERVER_IN_MEMORY_ONLY"),
            remote=RemoteOptions.from_env(),
            tenant_id=os.environ.get("TENANT_ID", DEFAULT_TENANT_ID),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageOptions:
        return cls(
            type=StorageType.parse(data.get("type")),
            db_path=data.get("db_path", data.get("dbPath")),
            in_memory_only=bool(data.get("in_memory_only", data.get("inMemoryOnly", False))),
            remote=RemoteOptions.from_dict(data.get("remote") or data.get("redis") or {}),
            tenant_id=data.get("tenant_id", DEFAULT_TENANT_ID),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> StorageOptions:
        """Load options from the ``storage`` section of a YAML settings file.

        ```yaml
        storage:
          type: remote
          remote:
            url: redis://cache:6379/0
            key_prefix: "prod:"
        ```
        """
        content = Path(path).read_text()
        config = yaml.safe_load(content) or {}
        return cls.from_dict(config.get("storage", {}))


@dataclass
class ServerSettings:
    """Server-wide retention settings consumed by the retention service.

    Attributes:
        max_retention_period_ms: Upper bound for retention policies, -1 for unlimited
        purge_batch_size: Entries deleted per purge call
        purge_cron_schedule: Schedule for the external purge job
    """

    max_retention_period_ms: int = ONE_YEAR_MS
    purge_batch_size: int = DEFAULT_PURGE_BATCH_SIZE
    purge_cron_schedule: str = "0 * * * *"

    @classmethod
    def from_env(cls) -> ServerSettings:
        return cls(
            max_retention_period_ms=_parse_max_retention(os.environ.get("MAX_RETENTION_PERIOD_MS")),
            purge_batch_size=_parse_batch_size(os.environ.get("PURGE_BATCH_SIZE")),
            purge_cron_schedule=os.environ.get("PURGE_CRON_SCHEDULE", "0 * * * *"),
        )


def _parse_max_retention(raw: str | None) -> int:
    if raw is None:
        return ONE_YEAR_MS
    try:
        parsed = int(raw)
    except ValueError:
        parsed = None
    if parsed is None or parsed < -1:
        logger.warning(f"Invalid MAX_RETENTION_PERIOD_MS value: {raw}, using default")
        return ONE_YEAR_MS
    return parsed


def _parse_batch_size(raw: str | None) -> int:
    if raw is None:
        return DEFAULT_PURGE_BATCH_SIZE
    try:
        parsed = int(raw)
    except ValueError:
        parsed = None
    if parsed is None or parsed <= 0:
        logger.warning(f"Invalid PURGE_BATCH_SIZE value: {raw}, using default")
        return DEFAULT_PURGE_BATCH_SIZE
    return parsed
