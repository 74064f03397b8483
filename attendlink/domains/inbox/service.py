# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Inbox fan-out service.

Every account owns one inbox document (``parent_alerts/{id}`` or
``student_alerts/{id}``) holding an ordered ``items`` list. Writes are
read-modify-write of the whole list:

- append: skip if an item with the same id exists, otherwise append
- remove: scan, filter, rewrite
- replace: scan, transform in place, rewrite

There is no transactional guard beyond id de-duplication. Items written by
other features are carried through untouched even if they do not parse as
InboxEntry.

Push dispatch happens strictly after the append committed, on the
background queue; the caller never waits for it.
"""

import logging
from collections.abc import Iterable
from typing import Any, Callable

from pydantic import ValidationError

from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.events import EventBus, EventTypes
from attendlink.infrastructure.notifications import PushDispatcher
from attendlink.infrastructure.store import DocumentSnapshot, DocumentStore, WatchHandle
from attendlink.models import EntryStatus, InboxEntry, Role

logger = logging.getLogger(__name__)

EntriesListener = Callable[[list[InboxEntry]], None]


def _parse(item: Any) -> InboxEntry | None:
    if not isinstance(item, dict):
        return None
    try:
        return InboxEntry.from_document(item)
    except ValidationError:
        return None


class InboxService:
    """Appends, rewrites and watches account inboxes."""

    def __init__(
        self,
        store: DocumentStore,
        task_queue: BackgroundTaskQueue,
        dispatcher: PushDispatcher | None = None,
        event_bus: EventBus | None = None,
        parent_collection: str = "parent_alerts",
        student_collection: str = "student_alerts",
    ) -> None:
        """Initialize the inbox service.

        Args:
            store: Shared document store.
            task_queue: Queue for detached push dispatch and events.
            dispatcher: Push dispatcher; None disables push.
            event_bus: Optional bus for inbox events.
            parent_collection: Parent inbox collection.
            student_collection: Student inbox collection.
        """
        self._store = store
        self._task_queue = task_queue
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._collections = {
            Role.PARENT: parent_collection,
            Role.STUDENT: student_collection,
        }

    def collection_for(self, role: Role) -> str:
        """Inbox collection of a role."""
        return self._collections[role]

    async def _read_items(self, role: Role, owner_id: str) -> list[Any]:
        data = await self._store.get(self.collection_for(role), owner_id)
        items = (data or {}).get("items")
        return list(items) if isinstance(items, list) else []

    async def _write_items(self, role: Role, owner_id: str, items: list[Any]) -> None:
        await self._store.set(self.collection_for(role), owner_id, {"items": items}, merge=True)

    async def list_entries(self, role: Role, owner_id: str) -> list[InboxEntry]:
        """Read an inbox, skipping items that do not parse."""
        return [entry for entry in map(_parse, await self._read_items(role, owner_id)) if entry]

    async def append_inbox_entry(self, role: Role, owner_id: str, entry: InboxEntry) -> bool:
        """Append an entry unless one with the same id already exists.

        Args:
            role: Inbox owner's role.
            owner_id: Inbox owner's identity key.
            entry: Entry to append.

        Returns:
            True if appended, False if an entry with this id was present.

        Raises:
            StoreError: If the inbox cannot be read or written.
        """
        items = await self._read_items(role, owner_id)
        if any(isinstance(item, dict) and item.get("id") == entry.id for item in items):
            logger.debug("Inbox %s/%s already has entry %s", role.value, owner_id, entry.id)
            return False

        items.append(entry.to_document())
        await self._write_items(role, owner_id, items)
        logger.info("Appended %s entry %s to %s inbox %s", entry.type_name, entry.id, role.value, owner_id)

        if entry.should_push and self._dispatcher is not None:
            self._task_queue.submit(
                self._dispatcher.dispatch(entry, owner_id, role),
                name=f"push:{entry.id}",
            )
        self._emit(
            EventTypes.Inbox.ENTRY_APPENDED,
            {"role": role.value, "owner_id": owner_id, "entry_id": entry.id, "type": entry.type_name},
            owner_id,
        )
        return True

    async def remove_entries(
        self,
        role: Role,
        owner_id: str,
        predicate: Callable[[InboxEntry], bool],
    ) -> int:
        """Remove every entry matching the predicate.

        Returns:
            Number of entries removed.
        """
        items = await self._read_items(role, owner_id)
        kept: list[Any] = []
        removed = 0
        for item in items:
            entry = _parse(item)
            if entry is not None and predicate(entry):
                removed += 1
            else:
                kept.append(item)

        if removed:
            await self._write_items(role, owner_id, kept)
            logger.info("Removed %d entries from %s inbox %s", removed, role.value, owner_id)
            self._emit(
                EventTypes.Inbox.ENTRIES_REMOVED,
                {"role": role.value, "owner_id": owner_id, "count": removed},
                owner_id,
            )
        return removed

    async def replace_entries(
        self,
        role: Role,
        owner_id: str,
        transform: Callable[[InboxEntry], InboxEntry | None],
    ) -> int:
        """Rewrite entries in place, keeping their position.

        ``transform`` returns the replacement, or None to keep the entry.

        Returns:
            Number of entries replaced.
        """
        items = await self._read_items(role, owner_id)
        replaced = 0
        for index, item in enumerate(items):
            entry = _parse(item)
            if entry is None:
                continue
            replacement = transform(entry)
            if replacement is not None:
                items[index] = replacement.to_document()
                replaced += 1

        if replaced:
            await self._write_items(role, owner_id, items)
        return replaced

    async def mark_read(
        self,
        role: Role,
        owner_id: str,
        entry_ids: Iterable[str] | None = None,
    ) -> int:
        """Mark entries read (all unread entries when ``entry_ids`` is None)."""
        wanted = set(entry_ids) if entry_ids is not None else None

        def to_read(entry: InboxEntry) -> InboxEntry | None:
            if not entry.is_unread or (wanted is not None and entry.id not in wanted):
                return None
            return entry.model_copy(update={"status": EntryStatus.READ})

        return await self.replace_entries(role, owner_id, to_read)

    def watch_inbox(
        self,
        role: Role,
        owner_id: str,
        on_entries: EntriesListener,
        on_error: Callable[[Exception], None],
    ) -> WatchHandle:
        """Attach a realtime watch on an inbox."""

        def on_snapshot(snapshot: DocumentSnapshot) -> None:
            items = (snapshot.data or {}).get("items") or []
            on_entries([entry for entry in map(_parse, items) if entry])

        return self._store.watch_document(self.collection_for(role), owner_id, on_snapshot, on_error)

    @staticmethod
    def unread_count(entries: Iterable[InboxEntry]) -> int:
        """Count unread entries."""
        return sum(1 for entry in entries if entry.is_unread)

    def _emit(self, event_type: str, payload: dict[str, Any], account_id: str) -> None:
        if self._event_bus is None:
            return
        self._task_queue.submit(
            self._event_bus.publish(event_type, payload, account_id=account_id),
            name=event_type,
        )
