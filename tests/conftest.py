"""
Shared test configuration and fixtures.

Provides a ``storage_adapter`` fixture parametrized over every backend:
- memory: plain in-process adapter
- file: SQLite database under ``tmp_path``
- redis: fakeredis server shared by all clients of one test

All adapters run on a deterministic clock that advances one millisecond per
write, so creation times are distinct and retention cutoffs are exact.
"""

import logging

import fakeredis
import pytest

from logserver_storage.adapters import (
    FileStorageAdapter,
    MemoryStorageAdapter,
    RedisStorageAdapter,
)

logger = logging.getLogger(__name__)

BASE_TIME_MS = 1_700_000_000_000
TENANT_ID = "T1"


class FakeClock:
    """Epoch-millisecond clock that ticks once per call."""

    def __init__(self, start: int = BASE_TIME_MS):
        self.now = start

    def __call__(self) -> int:
        current = self.now
        self.now += 1
        return current

    def set(self, value: int) -> None:
        self.now = value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_server():
    """Fake Redis server; clients created from it share data."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client_factory(redis_server):
    def factory():
        return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)

    return factory


def build_adapter(backend, namespace, clock, tmp_path, redis_client_factory, tenant_id=TENANT_ID):
    if backend == "memory":
        return MemoryStorageAdapter(namespace, tenant_id=tenant_id, clock=clock)
    if backend == "file":
        return FileStorageAdapter(namespace, db_path=tmp_path, tenant_id=tenant_id, clock=clock)
    return RedisStorageAdapter(
        namespace,
        client_factory=redis_client_factory,
        tenant_id=tenant_id,
        clock=clock,
    )


@pytest.fixture(params=["memory", "file", "redis"])
def backend(request):
    return request.param


@pytest.fixture
def make_adapter(backend, clock, tmp_path, redis_client_factory):
    """Build extra adapters on the same backend (e.g. other namespaces)."""
    created = []

    def make(namespace="ns", tenant_id=TENANT_ID):
        adapter = build_adapter(backend, namespace, clock, tmp_path, redis_client_factory, tenant_id)
        created.append(adapter)
        return adapter

    make.created = created
    return make


@pytest.fixture
async def storage_adapter(make_adapter):
    """Initialized adapter for namespace ``ns`` and tenant ``T1``."""
    adapter = make_adapter()
    await adapter.initialize()
    yield adapter
    for created in make_adapter.created:
        await created.close()
