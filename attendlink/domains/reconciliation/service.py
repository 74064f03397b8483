# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Realtime relationship reconciliation.

This module provides:
- RelationshipReader: one-shot read of an account's active relationships
- RelationshipReconciler: live view fed by one watch per id form

An account is reachable through link records written with its internal
id and through records written with its canonical id. The reconciler
watches both, feeds every emission into one RelationshipMerger and
republishes the merged list. For each relationship in the merged view it
keeps child subscriptions (conversation activity, read receipts) attached
through a SubscriptionRegistry, and detaches them as soon as the
relationship leaves the view.

Watch errors never propagate: the merged view is kept as it was and a
degraded-connectivity signal is raised.
"""

import logging
from collections.abc import Callable
from typing import Protocol

from attendlink.domains.offline import LoadResult, OfflineCacheController
from attendlink.domains.reconciliation.merger import RelationshipMerger
from attendlink.domains.reconciliation.registry import Releasable, SubscriptionRegistry
from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.infrastructure.events import EventBus, EventTypes
from attendlink.infrastructure.store import (
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WatchHandle,
    where,
)
from attendlink.models import (
    Account,
    LinkRecord,
    LinkStatus,
    Relationship,
    Role,
    SnapshotKind,
)

logger = logging.getLogger(__name__)

RelationshipListener = Callable[[list[Relationship]], None]

SOURCE_INTERNAL = "internal"
SOURCE_CANONICAL = "canonical"


class ChildSubscriber(Protocol):
    """Attaches per-relationship subscriptions on behalf of the reconciler."""

    def attach(self, key: str, relationship: Relationship) -> list[Releasable]:
        """Attach subscriptions for one relationship and return their handles."""
        ...

    def detached(self, key: str) -> None:
        """Called after the relationship's handles were released."""
        ...


def relationship_sources(account: Account) -> list[tuple[str, list[FieldFilter]]]:
    """Query filters reaching an account's active links, one per id form."""
    prefix = "parent" if account.role is Role.PARENT else "student"
    active = where("status", LinkStatus.ACTIVE.value)
    sources = [(SOURCE_INTERNAL, [where(f"{prefix}InternalId", account.internal_id), active])]
    if account.canonical_id and account.canonical_id != account.internal_id:
        sources.append((SOURCE_CANONICAL, [where(f"{prefix}CanonicalId", account.canonical_id), active]))
    return sources


def _relationships_from(snapshots: list[DocumentSnapshot], viewer_role: Role) -> list[Relationship]:
    relationships = []
    for snapshot in snapshots:
        if not snapshot.data:
            continue
        try:
            record = LinkRecord.from_document(snapshot.data)
        except ValueError as e:
            logger.warning("Skipping unreadable link record %s: %s", snapshot.id, str(e))
            continue
        relationships.append(Relationship.from_link(record, viewer_role))
    return relationships


class RelationshipReader:
    """One-shot counterpart of RelationshipReconciler."""

    def __init__(self, store: DocumentStore, links_collection: str = "parent_student_links") -> None:
        self._store = store
        self._collection = links_collection

    async def read_once(self, account: Account) -> list[Relationship]:
        """Read the account's active relationships through every id form.

        Raises:
            StoreError: If a query fails.
        """
        merger = RelationshipMerger()
        for source, filters in relationship_sources(account):
            snapshots = await self._store.query(self._collection, filters)
            merger.apply(source, _relationships_from(snapshots, account.role))
        return merger.values()


class RelationshipReconciler:
    """Live, de-duplicated relationship view of one account.

    Attributes:
        account: The viewing account.
    """

    def __init__(
        self,
        account: Account,
        store: DocumentStore,
        connectivity: ConnectivityMonitor,
        task_queue: BackgroundTaskQueue,
        event_bus: EventBus | None = None,
        offline: OfflineCacheController | None = None,
        links_collection: str = "parent_student_links",
    ) -> None:
        """Initialize the reconciler.

        Args:
            account: The viewing account.
            store: Shared document store.
            connectivity: Receives degraded signals on watch errors.
            task_queue: Queue for event publication and cache writes.
            event_bus: Optional bus for relationship events.
            offline: Cache controller that mirrors the merged view.
            links_collection: Collection holding link records.
        """
        self.account = account
        self._store = store
        self._connectivity = connectivity
        self._task_queue = task_queue
        self._event_bus = event_bus
        self._offline = offline
        self._collection = links_collection

        self._merger = RelationshipMerger()
        self._registry = SubscriptionRegistry()
        self._source_handles: dict[str, WatchHandle] = {}
        self._listeners: list[RelationshipListener] = []
        self._children: list[ChildSubscriber] = []
        self._running = False
        self._live_seen = False

    # ========== Subscribers ==========

    def add_listener(self, listener: RelationshipListener) -> Callable[[], None]:
        """Receive the merged list whenever it changes.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def add_child_subscriber(self, subscriber: ChildSubscriber) -> None:
        """Attach per-relationship subscriptions through ``subscriber``."""
        self._children.append(subscriber)
        if self.is_running:
            self._sync_children(force=True)

    # ========== State ==========

    @property
    def is_running(self) -> bool:
        """True while the source watches are attached."""
        return self._running

    @property
    def relationships(self) -> list[Relationship]:
        """Current merged view."""
        return self._merger.values()

    @property
    def child_keys(self) -> set[str]:
        """Relationship keys with attached child subscriptions."""
        return self._registry.keys

    # ========== Lifecycle ==========

    def start(self) -> None:
        """Attach one watch per id form. Calling it twice does nothing."""
        if self._running:
            return

        self._running = True
        for source, filters in relationship_sources(self.account):
            self._source_handles[source] = self._store.watch_query(
                self._collection,
                filters,
                on_next=lambda snapshots, source=source: self._on_source(source, snapshots),
                on_error=lambda error, source=source: self._on_error(source, error),
            )
        logger.info(
            "Reconciling relationships for %s through %d sources",
            self.account.internal_id,
            len(self._source_handles),
        )

    def stop(self) -> None:
        """Release every handle. The merged view is kept for display."""
        self._running = False
        for handle in self._source_handles.values():
            handle.close()
        self._source_handles.clear()

        for key in self._registry.keys:
            self._detach_child(key)
        logger.info("Stopped reconciling relationships for %s", self.account.internal_id)

    async def load_cached(self) -> LoadResult | None:
        """Show the cached view until the live watches deliver.

        Returns:
            The offline controller's result, or None without a controller.
        """
        if self._offline is None:
            return None
        reader = RelationshipReader(self._store, self._collection)
        return await self._offline.load_with_fallback(
            self.account.internal_id,
            SnapshotKind.RELATIONSHIPS,
            lambda: reader.read_once(self.account),
            self._on_cached_view,
        )

    # ========== Callbacks ==========

    def _on_cached_view(self, relationships: list[Relationship]) -> None:
        if self._live_seen:
            return
        self._deliver(relationships)
        self._emit(EventTypes.Relationships.SNAPSHOT_PUBLISHED, relationships)

    def _on_source(self, source: str, snapshots: list[DocumentSnapshot]) -> None:
        if not self._running:
            return

        self._live_seen = True
        changed = self._merger.apply(source, _relationships_from(snapshots, self.account.role))
        if not changed:
            logger.debug("Emission from %s left relationships unchanged", source)
            return

        merged = self._merger.values()
        self._sync_children()
        self._deliver(merged)
        self._emit(EventTypes.Relationships.CHANGED, merged)
        if self._offline is not None:
            self._offline.persist_later(SnapshotKind.RELATIONSHIPS, self.account.internal_id, merged)

    def _on_error(self, source: str, error: Exception) -> None:
        logger.warning(
            "Relationship watch %s failed for %s, keeping %d relationships",
            source,
            self.account.internal_id,
            len(self._merger),
        )
        self._connectivity.report_degraded(f"relationships.{source}", error)

    # ========== Children ==========

    def _sync_children(self, force: bool = False) -> None:
        current = dict(self._merger.items())
        for key in self._registry.keys - set(current):
            self._detach_child(key)

        for key, relationship in current.items():
            if key in self._registry and not force:
                continue
            handles: list[Releasable] = []
            for child in self._children:
                try:
                    handles.extend(child.attach(key, relationship))
                except Exception as e:
                    logger.error("Child subscription for %s failed: %s", key, str(e), exc_info=True)
            self._registry.attach(key, handles)

    def _detach_child(self, key: str) -> None:
        if not self._registry.detach(key):
            return
        for child in self._children:
            try:
                child.detached(key)
            except Exception as e:
                logger.error("Child detach hook for %s failed: %s", key, str(e), exc_info=True)

    # ========== Publication ==========

    def _deliver(self, relationships: list[Relationship]) -> None:
        for listener in list(self._listeners):
            try:
                listener(list(relationships))
            except Exception as e:
                logger.error("Relationship listener failed: %s", str(e), exc_info=True)

    def _emit(self, event_type: str, relationships: list[Relationship]) -> None:
        if self._event_bus is None:
            return
        try:
            self._task_queue.submit(
                self._event_bus.publish(
                    event_type,
                    {
                        "count": len(relationships),
                        "link_keys": [relationship.link_key for relationship in relationships],
                    },
                    account_id=self.account.internal_id,
                ),
                name=event_type,
            )
        except RuntimeError:
            logger.debug("No running loop, %s not published", event_type)
