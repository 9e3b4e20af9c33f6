"""
Remote key-value storage adapter (Redis).

Key layout, all under ``[key_prefix]logserver:<namespace>:``:

    logs:<logName>:<entryId>        entry JSON
    lognames                        set of log names holding entries
    logs:<logName>:entries          sorted set of entry ids, score = createdAt
    timestamps                      sorted set of "<logName>:<entryId>", score = createdAt
    tenant:<tenantId>:log:<name>    Log JSON
    tenant:<tenantId>:logs          set of the tenant's log names
    token:<token>                   set of "<logName>:<entryId>"
    log:<logName>:<entryId>:tokens  set of an entry's tokens

Multi-key writes go out as one non-transactional pipeline. Entries whose
document vanished between an index read and the document read are skipped.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

from redis.asyncio import Redis

from ..config import RemoteOptions
from ..exceptions import LogExistsError, LogNotFoundError, StorageConnectionError
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
    to_epoch_ms,
    utc_now_iso,
)
from .base import (
    StorageAdapter,
    filter_entries,
    split_member,
    validate_pagination,
)


def create_redis_client(options: RemoteOptions) -> Redis:
    """Build a client from connection options. A URL wins over host/port."""
    if options.url:
        return Redis.from_url(options.url, decode_responses=True)
    return Redis(
        host=options.host,
        port=options.port,
        password=options.password,
        db=options.db,
        ssl=options.tls,
        decode_responses=True,
    )


def _dumps(doc: dict[str, Any]) -> str:
    return json.dumps(doc, separators=(",", ":"))


class RedisStorageAdapter(StorageAdapter):
    """
    Storage adapter backed by Redis keys, sets and sorted sets.

    Features:
    - One connection per adapter, opened lazily
    - Atomic duplicate-name rejection with SET NX
    - Sorted-set indexes for pagination and retention
    - Token sets for searchable encryption
    """

    backend_name = "redis"

    def __init__(
        self,
        namespace: str = "default",
        options: RemoteOptions | None = None,
        client_factory: Callable[[], Redis] | None = None,
        **kwargs: Any,
    ):
        super().__init__(namespace, **kwargs)
        self.options = options or RemoteOptions()
        self._client_factory = client_factory or (lambda: create_redis_client(self.options))
        self.client: Redis | None = None

    async def initialize(self) -> None:
        """Open the connection and verify it with PING."""
        async with self._init_lock:
            if self._initialized:
                return

            client = self._client_factory()
            try:
                await client.ping()
            except Exception as e:
                await client.aclose()
                raise StorageConnectionError(self.options.endpoint, e) from e

            self.client = client
            self._initialized = True
        self.logger.info(
            f"Redis storage adapter initialized for {SERVER_NAMESPACE}:{self.namespace} "
            f"at {self.options.endpoint}"
        )

    async def close(self) -> None:
        """Close the Redis connection."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
        self._initialized = False

    # =========================================================================
    # Keys
    # =========================================================================

    def _key(self, suffix: str) -> str:
        return f"{self.options.key_prefix}{SERVER_NAMESPACE}:{self.namespace}:{suffix}"

    def _entry_key(self, log_name: str, entry_id: str) -> str:
        return self._key(f"logs:{log_name}:{entry_id}")

    def _entries_key(self, log_name: str) -> str:
        return self._key(f"logs:{log_name}:entries")

    def _log_names_key(self) -> str:
        return self._key("lognames")

    def _timestamps_key(self) -> str:
        return self._key("timestamps")

    def _tenant_log_key(self, tenant_id: str, name: str) -> str:
        return self._key(f"tenant:{tenant_id}:log:{name}")

    def _tenant_logs_key(self, tenant_id: str) -> str:
        return self._key(f"tenant:{tenant_id}:logs")

    def _token_key(self, token: str) -> str:
        return self._key(f"token:{token}")

    def _entry_tokens_key(self, log_name: str, entry_id: str) -> str:
        return self._key(f"log:{log_name}:{entry_id}:tokens")

    # =========================================================================
    # Internal entry bookkeeping
    # =========================================================================

    async def _existing_tokens(self, pairs: list[tuple[str, str]]) -> list[set[str]]:
        if not pairs:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for log_name, entry_id in pairs:
                pipe.smembers(self._entry_tokens_key(log_name, entry_id))
            return await pipe.execute()

    def _stage_unindex(self, pipe: Any, log_name: str, entry_id: str, tokens: Iterable[str]) -> None:
        member = f"{log_name}:{entry_id}"
        for token in tokens:
            pipe.srem(self._token_key(token), member)
        pipe.delete(self._entry_tokens_key(log_name, entry_id))

    def _stage_write(self, pipe: Any, log_name: str, entry: LogEntry, old_tokens: set[str]) -> None:
        member = f"{log_name}:{entry.id}"
        self._stage_unindex(pipe, log_name, entry.id, old_tokens)
        pipe.set(self._entry_key(log_name, entry.id), _dumps(entry.to_dict()))
        pipe.sadd(self._log_names_key(), log_name)
        pipe.zadd(self._entries_key(log_name), {entry.id: entry.created_at})
        pipe.zadd(self._timestamps_key(), {member: entry.created_at})
        if entry.search_tokens:
            for token in entry.search_tokens:
                pipe.sadd(self._token_key(token), member)
            pipe.sadd(self._entry_tokens_key(log_name, entry.id), *entry.search_tokens)

    async def _write_entries(self, log_name: str, entries: list[LogEntry]) -> None:
        """Write prepared entries in one pipeline, replacing existing ids."""
        old_tokens = await self._existing_tokens([(log_name, entry.id) for entry in entries])
        async with self.client.pipeline(transaction=False) as pipe:
            for entry, tokens in zip(entries, old_tokens, strict=True):
                self._stage_write(pipe, log_name, entry, tokens)
            await pipe.execute()

    async def _delete_entries(self, pairs: list[tuple[str, str]]) -> list[bool]:
        """Delete entries with their indexes; returns per-entry existence."""
        if not pairs:
            return []
        old_tokens = await self._existing_tokens(pairs)
        async with self.client.pipeline(transaction=False) as pipe:
            for (log_name, entry_id), tokens in zip(pairs, old_tokens, strict=True):
                pipe.delete(self._entry_key(log_name, entry_id))
                pipe.zrem(self._entries_key(log_name), entry_id)
                pipe.zrem(self._timestamps_key(), f"{log_name}:{entry_id}")
                self._stage_unindex(pipe, log_name, entry_id, tokens)
            results = await pipe.execute()

        # Each entry staged 3 commands plus its unindex commands; DEL comes first
        deleted = []
        position = 0
        for tokens in old_tokens:
            deleted.append(bool(results[position]))
            position += 3 + len(tokens) + 1

        await self._forget_empty_logs({log_name for log_name, _ in pairs})
        return deleted

    async def _forget_empty_logs(self, log_names: set[str]) -> None:
        names = sorted(log_names)
        async with self.client.pipeline(transaction=False) as pipe:
            for name in names:
                pipe.zcard(self._entries_key(name))
            counts = await pipe.execute()
        empty = [name for name, count in zip(names, counts, strict=True) if count == 0]
        if empty:
            await self.client.srem(self._log_names_key(), *empty)

    async def _load_entries(self, log_name: str, entry_ids: list[str]) -> list[LogEntry]:
        if not entry_ids:
            return []
        docs = await self.client.mget([self._entry_key(log_name, entry_id) for entry_id in entry_ids])
        return [LogEntry.from_dict(json.loads(doc)) for doc in docs if doc is not None]

    async def _all_entries(self, log_name: str) -> list[LogEntry]:
        await self._ensure_initialized()
        entry_ids = await self.client.zrange(self._entries_key(log_name), 0, -1)
        return await self._load_entries(log_name, entry_ids)

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
        await self._write_entries(log_name, [entry.prepared(log_name, self._clock())])
        self.logger.info(f"Stored log entry: {log_name}, ID: {entry_id}")

    async def get_log_entry_by_id(self, log_name: str, entry_id: str) -> LogEntry | None:
        await self._ensure_initialized()
        doc = await self.client.get(self._entry_key(log_name, entry_id))
        if doc is None:
            self.logger.debug(f"Log entry not found: {log_name}, ID: {entry_id}")
            return None
        return LogEntry.from_dict(json.loads(doc))

    async def update_log_entry_by_id(self, log_name: str, entry_id: str, data: Any) -> bool:
        await self._ensure_initialized()
        entry = await self.get_log_entry_by_id(log_name, entry_id)
        if entry is None:
            self.logger.info(f"Log entry not found for update: {log_name}, ID: {entry_id}")
            return False

        entry.data = data
        entry.timestamp = utc_now_iso()
        # XX: an entry deleted since the read stays deleted
        updated = await self.client.set(
            self._entry_key(log_name, entry_id), _dumps(entry.to_dict()), xx=True
        )
        if updated:
            self.logger.info(f"Updated log entry: {log_name}, ID: {entry_id}")
        return bool(updated)

    async def delete_log_entry_by_id(self, log_name: str, entry_id: str) -> bool:
        await self._ensure_initialized()
        [deleted] = await self._delete_entries([(log_name, entry_id)])
        if deleted:
            self.logger.info(f"Deleted log entry: {log_name}, ID: {entry_id}")
        return deleted

    async def get_logs_by_name(self, log_name: str, limit: int = DEFAULT_RAW_LIMIT) -> list[LogEntry]:
        validate_pagination(limit)
        await self._ensure_initialized()
        entry_ids = await self.client.zrange(self._entries_key(log_name), 0, limit - 1)
        return await self._load_entries(log_name, entry_ids)

    async def get_log_names(self, limit: int = DEFAULT_LOG_NAMES_LIMIT) -> list[str]:
        validate_pagination(limit)
        await self._ensure_initialized()
        names = await self.client.smembers(self._log_names_key())
        return sorted(names)[:limit]

    async def clear_log(self, log_name: str) -> bool:
        await self._ensure_initialized()
        entry_ids = await self.client.zrange(self._entries_key(log_name), 0, -1)
        if not entry_ids:
            self.logger.info(f"Log not found: {log_name}")
            return False
        await self._delete_entries([(log_name, entry_id) for entry_id in entry_ids])
        self.logger.info(f"Cleared log: {log_name}")
        return True

    # =========================================================================
    # Structured Log Operations
    # =========================================================================

    async def create_log(self, log: Log) -> Log:
        await self._ensure_initialized()
        new_log = log.with_defaults(self.tenant_id)
        created = await self.client.set(
            self._tenant_log_key(new_log.tenant_id, new_log.name),
            _dumps(new_log.to_dict()),
            nx=True,
        )
        if not created:
            raise LogExistsError(new_log.name, new_log.tenant_id)
        await self.client.sadd(self._tenant_logs_key(new_log.tenant_id), new_log.name)
        self.logger.info(f"Created log {new_log.name}")
        return new_log

    async def _load_log(self, tenant_id: str, name: str) -> Log | None:
        doc = await self.client.get(self._tenant_log_key(tenant_id, name))
        return Log.from_dict(json.loads(doc)) if doc is not None else None

    async def get_logs(self) -> list[Log]:
        await self._ensure_initialized()
        names = sorted(await self.client.smembers(self._tenant_logs_key(self.tenant_id)))
        if not names:
            return []
        docs = await self.client.mget([self._tenant_log_key(self.tenant_id, name) for name in names])
        return [Log.from_dict(json.loads(doc)) for doc in docs if doc is not None]

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
        await self.client.set(self._tenant_log_key(tenant_id, log.name), _dumps(updated.to_dict()))
        self.logger.info(f"Updated log {log.name}")
        return updated

    async def delete_log(self, name: str) -> None:
        await self._ensure_initialized()
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.delete(self._tenant_log_key(self.tenant_id, name))
            pipe.srem(self._tenant_logs_key(self.tenant_id), name)
            await pipe.execute()

        entry_ids = await self.client.zrange(self._entries_key(name), 0, -1)
        await self._delete_entries([(name, entry_id) for entry_id in entry_ids])
        await self.client.delete(self._entries_key(name))
        await self.client.srem(self._log_names_key(), name)
        self.logger.info(f"Deleted log {name}")

    # =========================================================================
    # Structured Entry Operations
    # =========================================================================

    async def append_log_entry(self, log_name: str, entry: LogEntry) -> str:
        await self._require_log(log_name)
        stored = entry.prepared(log_name, self._clock())
        await self._write_entries(log_name, [stored])
        self.logger.info(f"Appended log entry to {log_name}")
        return stored.id

    async def batch_append_log_entries(
        self, log_name: str, entries: list[LogEntry]
    ) -> BatchAppendResult:
        await self._require_log(log_name)
        prepared = [entry.prepared(log_name, self._clock()) for entry in entries]
        if prepared:
            await self._write_entries(log_name, prepared)
        self.logger.info(f"Batch appended {len(prepared)} log entries to {log_name}")
        return BatchAppendResult(
            entries=[BatchAppendItem(id=entry.id, timestamp=entry.timestamp) for entry in prepared]
        )

    async def get_log_entries(
        self,
        log_name: str,
        limit: int = DEFAULT_ENTRY_PAGE_SIZE,
        offset: int = 0,
    ) -> PaginatedResult:
        """Get one page of entries, newest first."""
        validate_pagination(limit, offset)
        await self._require_log(log_name)

        key = self._entries_key(log_name)
        total = await self.client.zcard(key)
        entry_ids = await self.client.zrevrange(key, offset, offset + limit - 1)
        items = await self._load_entries(log_name, entry_ids)
        return PaginatedResult.from_page(items, total, limit, offset)

    async def get_log_entry(self, log_name: str, entry_id: str) -> LogEntry | None:
        await self._require_log(log_name)
        return await self.get_log_entry_by_id(log_name, entry_id)

    async def search_log_entries(
        self, log_name: str, options: EntrySearchOptions
    ) -> PaginatedResult:
        validate_pagination(options.limit, options.offset)
        await self._require_log(log_name)

        start_ms = to_epoch_ms(options.start_time)
        end_ms = to_epoch_ms(options.end_time)
        entry_ids = await self.client.zrangebyscore(
            self._entries_key(log_name),
            start_ms if start_ms is not None else "-inf",
            end_ms if end_ms is not None else "+inf",
        )
        matched = filter_entries(await self._load_entries(log_name, entry_ids), options)
        self.logger.debug(f"Search matched {len(matched)} entries in {log_name}")
        return PaginatedResult.from_all(matched, options.limit, options.offset)

    async def search_logs_by_token(self, token: str, limit: int = DEFAULT_RAW_LIMIT) -> list[SearchHit]:
        validate_pagination(limit)
        await self._ensure_initialized()
        members = sorted(await self.client.smembers(self._token_key(token)))
        if not members:
            self.logger.debug(f"No entries found for token: {token}")
            return []

        pairs = [split_member(member) for member in members[:limit]]
        docs = await self.client.mget(
            [self._entry_key(log_name, entry_id) for log_name, entry_id in pairs]
        )
        return [
            SearchHit(log_name=log_name, entry=LogEntry.from_dict(json.loads(doc)))
            for (log_name, _), doc in zip(pairs, docs, strict=True)
            if doc is not None
        ]

    # =========================================================================
    # Retention
    # =========================================================================

    async def count_expired_logs(self, cutoff_time_ms: int) -> int:
        await self._ensure_initialized()
        return await self.client.zcount(self._timestamps_key(), "-inf", cutoff_time_ms)

    async def purge_expired_logs(
        self, cutoff_time_ms: int, batch_size: int = DEFAULT_PURGE_BATCH_SIZE
    ) -> PurgeResult:
        validate_pagination(batch_size, limit_field="batch_size")
        await self._ensure_initialized()

        members = await self.client.zrangebyscore(
            self._timestamps_key(), "-inf", cutoff_time_ms, start=0, num=batch_size
        )
        if not members:
            self.logger.info("No expired entries found")
            return PurgeResult(purged_count=0)

        self.logger.info(f"Found {len(members)} expired entries")
        return await self._delete_expired([split_member(member) for member in members])
