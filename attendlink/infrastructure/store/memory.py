# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process document store with realtime watches.

Used for local runs and as the store behind the behavioural tests. Watches
are re-evaluated synchronously after every write to their collection and
only emit when their result actually changed. When a ConnectivityMonitor
is attached, the store refuses operations while offline, interrupts live
watches on disconnect and re-emits current state on reconnect.
"""

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from itertools import count
from typing import Any

from attendlink.infrastructure.connectivity import ConnectivityMonitor
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
class _Watch:
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


class MemoryDocumentStore(DocumentStore):
    """Document store kept in process memory."""

    def __init__(self, connectivity: ConnectivityMonitor | None = None) -> None:
        """Initialize an empty store.

        Args:
            connectivity: Optional monitor gating availability.
        """
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: dict[int, _Watch] = {}
        self._ids = count(1)
        self._connectivity = connectivity
        self._remove_listener = None
        if connectivity is not None:
            self._remove_listener = connectivity.add_listener(self._on_connectivity_changed)

    # ========== Availability ==========

    @property
    def available(self) -> bool:
        """Whether the store can currently be reached."""
        return self._connectivity is None or self._connectivity.is_connected

    def _ensure_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("Document store unavailable (offline)")

    def _on_connectivity_changed(self, connected: bool) -> None:
        if connected:
            for watch in list(self._watches.values()):
                watch.has_emitted = False
                self._evaluate(watch)
        else:
            self.interrupt_watches(StoreUnavailableError("Connection to document store lost"))

    def interrupt_watches(self, error: Exception) -> None:
        """Deliver a transport failure to every live watch."""
        for watch in list(self._watches.values()):
            try:
                watch.on_error(error)
            except Exception as e:
                logger.error("Watch error listener failed: %s", str(e), exc_info=True)

    @property
    def watch_count(self) -> int:
        """Number of live watches."""
        return len(self._watches)

    # ========== Reads and writes ==========

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._ensure_available()
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._ensure_available()
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id] = {**docs[doc_id], **copy.deepcopy(data)}
        else:
            docs[doc_id] = copy.deepcopy(data)
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._ensure_available()
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFoundError(f"Document not found: {collection}/{doc_id}")
        docs[doc_id] = {**docs[doc_id], **copy.deepcopy(fields)}
        self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> bool:
        self._ensure_available()
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            return False
        del docs[doc_id]
        self._notify(collection)
        return True

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        self._ensure_available()
        return apply_query(self._snapshots(collection), filters, order_by, descending, limit)

    def _snapshots(self, collection: str) -> list[DocumentSnapshot]:
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

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
        watch = _Watch(
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
        watch = _Watch(
            collection=collection,
            on_error=on_error,
            on_document=on_next,
            doc_id=doc_id,
        )
        return self._register(watch, f"document {collection}/{doc_id}")

    def _register(self, watch: _Watch, description: str) -> WatchHandle:
        watch_id = next(self._ids)
        self._watches[watch_id] = watch
        logger.debug("Attached watch %d: %s", watch_id, description)

        if self.available:
            self._evaluate(watch)
        else:
            self._safe_error(watch, StoreUnavailableError("Document store unavailable (offline)"))

        def detach() -> None:
            self._watches.pop(watch_id, None)
            logger.debug("Detached watch %d: %s", watch_id, description)

        return WatchHandle(detach, description)

    def _notify(self, collection: str) -> None:
        for watch in list(self._watches.values()):
            if watch.collection == collection:
                self._evaluate(watch)

    def _evaluate(self, watch: _Watch) -> None:
        if watch.on_document is not None:
            data = self._collections.get(watch.collection, {}).get(watch.doc_id or "")
            if watch.has_emitted and data == watch.last_emitted:
                return
            watch.last_emitted = copy.deepcopy(data)
            watch.has_emitted = True
            self._safe_call(watch.on_document, DocumentSnapshot(watch.doc_id or "", copy.deepcopy(data)))
            return

        results = apply_query(
            self._snapshots(watch.collection),
            watch.filters,
            watch.order_by,
            watch.descending,
            watch.limit,
        )
        signature = [(snap.id, snap.data) for snap in results]
        if watch.has_emitted and signature == watch.last_emitted:
            return
        watch.last_emitted = signature
        watch.has_emitted = True
        self._safe_call(watch.on_query, results)

    def _safe_call(self, listener: Any, value: Any) -> None:
        try:
            listener(value)
        except Exception as e:
            logger.error("Watch listener failed: %s", str(e), exc_info=True)

    def _safe_error(self, watch: _Watch, error: Exception) -> None:
        try:
            watch.on_error(error)
        except Exception as e:
            logger.error("Watch error listener failed: %s", str(e), exc_info=True)

    async def close(self) -> None:
        self._watches.clear()
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
