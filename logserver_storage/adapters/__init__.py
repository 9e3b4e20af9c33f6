"""
Storage adapters.

Every backend (memory, embedded file, Redis) implements the same
``StorageAdapter`` interface; the factory picks one per namespace.
"""

from .base import StorageAdapter
from .factory import StorageAdapterFactory
from .file import FileStorageAdapter
from .memory import MemoryStorageAdapter
from .redis import RedisStorageAdapter

__all__ = [
    "StorageAdapter",
    "StorageAdapterFactory",
    "MemoryStorageAdapter",
    "FileStorageAdapter",
    "RedisStorageAdapter",
]
