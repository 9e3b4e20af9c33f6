"""
Storage adapter factory.

Selects the backend for a namespace from ``StorageOptions``. The factory is an
ordinary object owned by whichever layer manages adapter lifecycles; there is
no process-wide instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from redis.asyncio import Redis

from ..config import StorageOptions, StorageType
from ..exceptions import StorageIOError
from ..file_ops import ensure_directory_sync, namespace_directory
from ..models import now_ms
from .base import StorageAdapter
from .file import FileStorageAdapter
from .memory import MemoryStorageAdapter
from .redis import RedisStorageAdapter

logger = logging.getLogger(__name__)


class StorageAdapterFactory:
    """
    Creates and optionally caches one adapter per namespace.

    Resolution order:
    1. Remote type -> Redis adapter
    2. ``in_memory_only`` or memory type -> memory adapter
    3. File type with ``db_path`` -> file adapter, falling back to memory
       when the directory cannot be created
    4. Anything else -> memory adapter
    """

    def __init__(
        self,
        options: StorageOptions | None = None,
        redis_client_factory: Callable[[], Redis] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.options = options or StorageOptions()
        self._redis_client_factory = redis_client_factory
        self._clock = clock
        self._adapters: dict[str, StorageAdapter] = {}

    @classmethod
    def from_env(cls) -> StorageAdapterFactory:
        return cls(StorageOptions.from_env())

    def create_adapter(self, namespace: str = "default") -> StorageAdapter:
        """Create a new, uninitialized adapter for ``namespace``."""
        options = self.options

        if options.type is StorageType.REMOTE:
            logger.info(f"Using Redis storage adapter for namespace: {namespace}")
            return RedisStorageAdapter(
                namespace,
                options=options.remote,
                client_factory=self._redis_client_factory,
                tenant_id=options.tenant_id,
                clock=self._clock,
            )

        if options.in_memory_only or options.type is StorageType.MEMORY:
            logger.info(f"Using memory storage adapter for namespace: {namespace}")
            return MemoryStorageAdapter(namespace, tenant_id=options.tenant_id, clock=self._clock)

        if options.type is StorageType.FILE and options.db_path:
            directory = namespace_directory(options.db_path, namespace)
            try:
                ensure_directory_sync(directory)
            except StorageIOError as e:
                logger.warning(
                    f"Cannot create storage directory {directory}: {e}; "
                    f"falling back to memory storage for namespace: {namespace}"
                )
                return MemoryStorageAdapter(namespace, tenant_id=options.tenant_id, clock=self._clock)
            logger.info(f"Using file storage adapter for namespace: {namespace} at {directory}")
            return FileStorageAdapter(
                namespace, db_path=options.db_path, tenant_id=options.tenant_id, clock=self._clock
            )

        logger.info(f"Using memory storage adapter for namespace: {namespace}")
        return MemoryStorageAdapter(namespace, tenant_id=options.tenant_id, clock=self._clock)

    def get_adapter(self, namespace: str = "default") -> StorageAdapter:
        """Return the cached adapter for ``namespace``, creating it on first use."""
        adapter = self._adapters.get(namespace)
        if adapter is None:
            adapter = self.create_adapter(namespace)
            self._adapters[namespace] = adapter
        return adapter

    async def close_all(self) -> None:
        """Close every cached adapter and forget them."""
        adapters = list(self._adapters.values())
        self._adapters.clear()
        for adapter in adapters:
            await adapter.close()
