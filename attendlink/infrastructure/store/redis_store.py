# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store on Redis.

Layout:
- ``{prefix}:doc:{collection}:{id}``  JSON document
- ``{prefix}:idx:{collection}``       set of document ids in the collection
- ``{prefix}:changes:{collection}``   pub/sub channel carrying changed ids

Watches subscribe to the collection's change channel and re-run their
query (or re-read their document) on every message, emitting only when the
result changed. Redis failures surface as StoreUnavailableError.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from itertools import count
from typing import Any

from attendlink.infrastructure.cache.redis_client import RedisClient, RedisError
from attendlink.infrastructure.store.base import (
    DocumentListener,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    ErrorListener,
    FieldFilter,
    QueryListener,
    StoreUnavailableError,
    WatchHandle,
    apply_query,
)

logger = logging.getLogger(__name__)


@dataclass
class _RedisWatch:
    collection: str
    on_error: ErrorListener
    on_query: QueryListener | None = None
    on_document: DocumentListener | None = None
    doc_id: str | None = None
    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    last_emitted: Any = field(default=None)
    has_emitted: bool = False
    active: bool = True


class RedisDocumentStore(DocumentStore):
    """Document store persisted in Redis with pub/sub change feeds."""

    def __init__(self, redis: RedisClient, key_prefix: str = "attendlink") -> None:
        """Initialize the store.

        Args:
            redis: Connected Redis client.
            key_prefix: Prefix for every key owned by the store.
        """
        self._redis = redis
        self._key_prefix = key_prefix
        self._watches: dict[int, _RedisWatch] = {}
        self._ids = count(1)
        self._listener_tasks: dict[str, asyncio.Task[None]] = {}
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self._key_prefix}:doc:{collection}:{doc_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self._key_prefix}:idx:{collection}"

    def _channel(self, collection: str) -> str:
        return f"{self._key_prefix}:changes:{collection}"

    # ========== Reads and writes ==========

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            value = await self._redis.get(self._doc_key(collection, doc_id))
        except RedisError as e:
            raise StoreUnavailableError(f"Failed to read {collection}/{doc_id}", e) from e
        return value if isinstance(value, dict) else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        document = dict(data)
        if merge:
            existing = await self.get(collection, doc_id)
            if existing is not None:
                document = {**existing, **data}
        await self._write(collection, doc_id, document)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        existing = await self.get(collection, doc_id)
        if existing is None:
            raise DocumentNotFoundError(f"Document not found: {collection}/{doc_id}")
        await self._write(collection, doc_id, {**existing, **fields})

    async def _write(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        try:
            await self._redis.set(self._doc_key(collection, doc_id), document)
            await self._redis.add_to_set(self._index_key(collection), doc_id)
            await self._redis.publish(self._channel(collection), doc_id)
        except RedisError as e:
            raise StoreUnavailableError(f"Failed to write {collection}/{doc_id}", e) from e

    async def delete(self, collection: str, doc_id: str) -> bool:
        try:
            deleted = await self._redis.delete(self._doc_key(collection, doc_id))
            await self._redis.remove_from_set(self._index_key(collection), doc_id)
            if deleted:
                await self._redis.publish(self._channel(collection), doc_id)
        except RedisError as e:
            raise StoreUnavailableError(f"Failed to delete {collection}/{doc_id}", e) from e
        return deleted

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        try:
            doc_ids = sorted(await self._redis.set_members(self._index_key(collection)))
            values = await self._redis.get_many(
                [self._doc_key(collection, doc_id) for doc_id in doc_ids]
            )
        except RedisError as e:
            raise StoreUnavailableError(f"Failed to query {collection}", e) from e

        snapshots = [
            DocumentSnapshot(id=doc_id, data=value)
            for doc_id, value in zip(doc_ids, values)
            if isinstance(value, dict)
        ]
        return apply_query(snapshots, filters, order_by, descending, limit)

    # ========== Watches ==========

    def watch_query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        on_next: QueryListener,
        on_error: ErrorListener,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> WatchHandle:
        watch = _RedisWatch(
            collection=collection,
            on_error=on_error,
            on_query=on_next,
            filters=tuple(filters),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
        return self._register(watch, f"query {collection}")

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_next: DocumentListener,
        on_error: ErrorListener,
    ) -> WatchHandle:
        watch = _RedisWatch(
            collection=collection,
            on_error=on_error,
            on_document=on_next,
            doc_id=doc_id,
        )
        return self._register(watch, f"document {collection}/{doc_id}")

    def _register(self, watch: _RedisWatch, description: str) -> WatchHandle:
        watch_id = next(self._ids)
        self._watches[watch_id] = watch

        if watch.collection not in self._listener_tasks:
            self._listener_tasks[watch.collection] = asyncio.get_running_loop().create_task(
                self._listen(watch.collection),
                name=f"store-listener:{watch.collection}",
            )
        self._schedule_refresh(watch)

        def detach() -> None:
            watch.active = False
            self._watches.pop(watch_id, None)
            if not any(w.collection == watch.collection for w in self._watches.values()):
                task = self._listener_tasks.pop(watch.collection, None)
                if task is not None:
                    task.cancel()

        return WatchHandle(detach, description)

    def _schedule_refresh(self, watch: _RedisWatch) -> None:
        task = asyncio.get_running_loop().create_task(self._refresh(watch))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _listen(self, collection: str) -> None:
        try:
            pubsub = await self._redis.subscribe(self._channel(collection))
        except RedisError as e:
            self._fail_watches(collection, StoreUnavailableError("Change feed unavailable", e))
            return

        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                for watch in [w for w in self._watches.values() if w.collection == collection]:
                    await self._refresh(watch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail_watches(collection, StoreUnavailableError("Change feed interrupted", e))
        finally:
            await pubsub.aclose()

    async def _refresh(self, watch: _RedisWatch) -> None:
        # Detached watches stay silent, including refreshes already in flight.
        if not watch.active:
            return
        try:
            if watch.on_document is not None:
                data = await self.get(watch.collection, watch.doc_id or "")
                if not watch.active or (watch.has_emitted and data == watch.last_emitted):
                    return
                watch.last_emitted = data
                watch.has_emitted = True
                watch.on_document(DocumentSnapshot(watch.doc_id or "", data))
                return

            results = await self.query(
                watch.collection,
                watch.filters,
                watch.order_by,
                watch.descending,
                watch.limit,
            )
            signature = [(snap.id, snap.data) for snap in results]
            if not watch.active or (watch.has_emitted and signature == watch.last_emitted):
                return
            watch.last_emitted = signature
            watch.has_emitted = True
            watch.on_query(results)  # type: ignore[misc]
        except StoreUnavailableError as e:
            self._safe_error(watch, e)
        except Exception as e:
            logger.error("Watch listener failed: %s", str(e), exc_info=True)

    def _fail_watches(self, collection: str, error: StoreUnavailableError) -> None:
        for watch in [w for w in self._watches.values() if w.collection == collection]:
            self._safe_error(watch, error)

    def _safe_error(self, watch: _RedisWatch, error: Exception) -> None:
        if not watch.active:
            return
        try:
            watch.on_error(error)
        except Exception as e:
            logger.error("Watch error listener failed: %s", str(e), exc_info=True)

    async def close(self) -> None:
        for watch in self._watches.values():
            watch.active = False
        self._watches.clear()
        tasks = [*self._listener_tasks.values(), *self._refresh_tasks]
        self._listener_tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
