# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Offline cache and fallback controller.

This module provides the OfflineCacheController class, the only writer of
local storage. It serves cached state first and live state second:

1. A non-empty cached snapshot is published immediately.
2. While offline the cached view is authoritative and no live read runs.
3. Online, a live read runs; on success the cache is overwritten in the
   background and the live view republished, on failure the last
   published view stays.

Snapshots are written wholesale: every write replaces the previous
snapshot of that account and kind.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.cache import LocalStorage
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.models import SNAPSHOT_MODELS, DocumentModel, SnapshotKind
from attendlink.utils.datetime import now_ms

logger = logging.getLogger(__name__)

SnapshotReader = Callable[[], Awaitable[Sequence[DocumentModel]]]
SnapshotPublisher = Callable[[list[Any]], None]


class LoadSource(str, Enum):
    """Where the last published view came from."""

    CACHE = "cache"
    LIVE = "live"
    NONE = "none"


@dataclass
class LoadResult:
    """Outcome of a cache-first load.

    Attributes:
        source: Origin of the view the caller ends up with.
        items: The published items (empty if nothing was published).
        cached_at_ms: Age marker of the cached snapshot, if one was used.
        live_error: Why the live read failed, if it did.
    """

    source: LoadSource
    items: list[Any] = field(default_factory=list)
    cached_at_ms: int | None = None
    live_error: str | None = None

    @property
    def from_cache(self) -> bool:
        """True if the caller is looking at cached data."""
        return self.source is LoadSource.CACHE


class OfflineCacheController:
    """Mirrors relationship and inbox views into local storage."""

    def __init__(
        self,
        storage: LocalStorage,
        connectivity: ConnectivityMonitor,
        task_queue: BackgroundTaskQueue,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the controller.

        Args:
            storage: Local key-value storage owned by this controller.
            connectivity: Connectivity monitor.
            task_queue: Queue for background cache writes.
            clock: Epoch millisecond clock.
        """
        self._storage = storage
        self._connectivity = connectivity
        self._task_queue = task_queue
        self._clock = clock

    async def read_snapshot(self, account_id: str, kind: SnapshotKind) -> DocumentModel | None:
        """Read the cached snapshot of an account.

        Unreadable snapshots are treated as missing.
        """
        raw = await self._storage.get_item(account_id, kind.value)
        if not raw:
            return None
        try:
            return SNAPSHOT_MODELS[kind].model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable %s snapshot for %s: %s", kind.value, account_id, str(e))
            return None

    async def persist(self, kind: SnapshotKind, account_id: str, items: Sequence[DocumentModel]) -> bool:
        """Replace the cached snapshot of an account.

        Returns:
            True if the snapshot was stored.
        """
        snapshot = SNAPSHOT_MODELS[kind](
            account_id=account_id,
            cached_at_ms=self._clock(),
            items=list(items),
        )
        stored = await self._storage.set_item(
            account_id,
            kind.value,
            snapshot.model_dump_json(by_alias=True),
        )
        if stored:
            logger.debug("Cached %d %s items for %s", len(items), kind.value, account_id)
        return stored

    def persist_later(self, kind: SnapshotKind, account_id: str, items: Sequence[DocumentModel]) -> None:
        """Schedule a cache write without waiting for it."""
        self._task_queue.submit(
            self.persist(kind, account_id, list(items)),
            name=f"offline_cache:{kind.value}",
        )

    async def clear(self, account_id: str) -> None:
        """Drop every snapshot of an account (sign-out)."""
        await self._storage.clear(account_id)

    async def load_with_fallback(
        self,
        account_id: str,
        kind: SnapshotKind,
        reader: SnapshotReader,
        publish: SnapshotPublisher | None = None,
    ) -> LoadResult:
        """Publish cached state, then live state when reachable.

        Args:
            account_id: Owner of the snapshot.
            kind: Which snapshot to load.
            reader: Performs the live read.
            publish: Receives each view to display.

        Returns:
            The view the caller ends up with.
        """
        result = LoadResult(source=LoadSource.NONE)

        cached = await self.read_snapshot(account_id, kind)
        cached_items = list(getattr(cached, "items", []) or [])
        if cached is not None and cached_items:
            result = LoadResult(
                source=LoadSource.CACHE,
                items=cached_items,
                cached_at_ms=getattr(cached, "cached_at_ms", None),
            )
            self._publish(publish, cached_items)

        if not self._connectivity.is_connected:
            logger.info("Offline, serving cached %s for %s", kind.value, account_id)
            return result

        try:
            live = list(await reader())
        except Exception as e:
            logger.warning("Live %s read failed for %s, keeping last view: %s", kind.value, account_id, str(e))
            result.live_error = str(e)
            return result

        self.persist_later(kind, account_id, live)
        self._publish(publish, live)
        return LoadResult(source=LoadSource.LIVE, items=live)

    @staticmethod
    def _publish(publish: SnapshotPublisher | None, items: list[Any]) -> None:
        if publish is None:
            return
        try:
            publish(items)
        except Exception as e:
            logger.error("Snapshot publisher failed: %s", str(e), exc_info=True)
