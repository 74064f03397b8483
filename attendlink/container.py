# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Service wiring for one AttendLink process.

ServiceContainer.create() builds the infrastructure (store, local storage,
connectivity, task queue, event bus, push) from settings and hands the
shared instances to every domain service. Per-account components (the
relationship reconciler and the unread aggregator) are created on demand.
"""

import logging
from dataclasses import dataclass

from attendlink.core.config import Settings, get_settings
from attendlink.domains.conversation import ConversationCleaner
from attendlink.domains.identity import AccountDirectory, IdentityResolver
from attendlink.domains.inbox import InboxService
from attendlink.domains.offline import LoadResult, OfflineCacheController, SnapshotPublisher
from attendlink.domains.parent_relation import LinkLifecycleService
from attendlink.domains.reconciliation import RelationshipReader, RelationshipReconciler
from attendlink.domains.unread import (
    ConversationActivityTracker,
    ReadReceiptWriter,
    UnreadAggregator,
    UnreadMode,
)
from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.cache import (
    LocalStorage,
    MemoryLocalStorage,
    RedisClient,
    RedisLocalStorage,
    close_redis,
    init_redis,
)
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.infrastructure.events import EventBus, get_event_bus
from attendlink.infrastructure.notifications import PushChannel, PushDispatcher
from attendlink.infrastructure.store import DocumentStore, MemoryDocumentStore, RedisDocumentStore
from attendlink.models import Account, SnapshotKind
from attendlink.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Shared services of one process."""

    settings: Settings
    store: DocumentStore
    storage: LocalStorage
    connectivity: ConnectivityMonitor
    task_queue: BackgroundTaskQueue
    event_bus: EventBus
    directory: AccountDirectory
    resolver: IdentityResolver
    inbox: InboxService
    cleaner: ConversationCleaner
    links: LinkLifecycleService
    offline: OfflineCacheController
    receipts: ReadReceiptWriter
    relationship_reader: RelationshipReader
    dispatcher: PushDispatcher | None = None
    redis: RedisClient | None = None

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        store: DocumentStore | None = None,
        storage: LocalStorage | None = None,
        event_bus: EventBus | None = None,
        configure_logging: bool = True,
    ) -> "ServiceContainer":
        """Build every shared service.

        Args:
            settings: Settings to use (defaults to the cached settings).
            store: Document store override.
            storage: Local storage override.
            event_bus: Event bus override (defaults to the global bus).
            configure_logging: Whether to configure logging.

        Returns:
            The wired container.
        """
        settings = settings or get_settings()
        if configure_logging:
            setup_logging(settings)

        task_queue = BackgroundTaskQueue()
        event_bus = event_bus or get_event_bus()
        connectivity = ConnectivityMonitor(event_bus=event_bus, task_queue=task_queue)

        redis: RedisClient | None = None
        needs_redis = (store is None and settings.store.backend == "redis") or (
            storage is None and settings.offline_cache.backend == "redis"
        )
        if needs_redis:
            redis = await init_redis(settings)

        if store is None:
            if settings.store.backend == "redis" and redis is not None:
                store = RedisDocumentStore(redis, settings.store.key_prefix)
            else:
                store = MemoryDocumentStore(connectivity)

        if storage is None:
            if settings.offline_cache.backend == "redis" and redis is not None:
                storage = RedisLocalStorage(redis, settings.offline_cache.key_prefix)
            else:
                storage = MemoryLocalStorage()

        directory = AccountDirectory(store, settings.store.users_collection)
        resolver = IdentityResolver(directory, store, settings.store.links_collection)

        dispatcher: PushDispatcher | None = None
        if settings.push.enabled:
            dispatcher = PushDispatcher(
                PushChannel(settings.push),
                directory,
                cooldown_seconds=settings.push.cooldown_seconds,
            )

        inbox = InboxService(
            store,
            task_queue,
            dispatcher=dispatcher,
            event_bus=event_bus,
            parent_collection=settings.store.parent_inbox_collection,
            student_collection=settings.store.student_inbox_collection,
        )
        cleaner = ConversationCleaner(store, settings.store.conversations_collection)
        links = LinkLifecycleService(
            store,
            resolver,
            inbox,
            connectivity,
            cleaner,
            task_queue,
            event_bus=event_bus,
            links_collection=settings.store.links_collection,
        )
        offline = OfflineCacheController(storage, connectivity, task_queue)

        logger.info(
            "Services ready (store=%s, offline cache=%s, push=%s)",
            type(store).__name__,
            type(storage).__name__,
            "on" if dispatcher else "off",
        )

        return cls(
            settings=settings,
            store=store,
            storage=storage,
            connectivity=connectivity,
            task_queue=task_queue,
            event_bus=event_bus,
            directory=directory,
            resolver=resolver,
            inbox=inbox,
            cleaner=cleaner,
            links=links,
            offline=offline,
            receipts=ReadReceiptWriter(store, settings.store.conversations_collection),
            relationship_reader=RelationshipReader(store, settings.store.links_collection),
            dispatcher=dispatcher,
            redis=redis,
        )

    def reconciler_for(self, account: Account) -> RelationshipReconciler:
        """Create a (not yet started) relationship reconciler for an account."""
        return RelationshipReconciler(
            account,
            self.store,
            self.connectivity,
            self.task_queue,
            event_bus=self.event_bus,
            offline=self.offline,
            links_collection=self.settings.store.links_collection,
        )

    def track_unread(
        self,
        reconciler: RelationshipReconciler,
        mode: UnreadMode = UnreadMode.THREADS,
    ) -> UnreadAggregator:
        """Attach unread tracking to a reconciler's relationships."""
        account = reconciler.account
        aggregator = UnreadAggregator(
            [account.internal_id, account.canonical_id or ""],
            mode=mode,
            task_queue=self.task_queue,
            event_bus=self.event_bus,
        )
        reconciler.add_child_subscriber(
            ConversationActivityTracker(
                account,
                self.store,
                aggregator,
                self.connectivity,
                self.settings.store.conversations_collection,
            )
        )
        return aggregator

    async def load_inbox(self, account: Account, publish: SnapshotPublisher | None = None) -> LoadResult:
        """Cache-first load of an account's inbox."""
        return await self.offline.load_with_fallback(
            account.internal_id,
            SnapshotKind.INBOX,
            lambda: self.inbox.list_entries(account.role, account.identity_key),
            publish,
        )

    async def close(self) -> None:
        """Finish background work and release connections."""
        await self.task_queue.drain()
        await self.task_queue.shutdown()
        await self.store.close()
        if self.redis is not None:
            await close_redis()
        logger.info("Services closed")
