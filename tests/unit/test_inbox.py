# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the inbox fan-out service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from attendlink.domains.inbox import InboxService
from attendlink.infrastructure.events import EventTypes
from attendlink.infrastructure.store import StoreUnavailableError
from attendlink.models import EntryStatus, InboxEntry, InboxEntryType, Role


def _entry(entry_id: str, entry_type=InboxEntryType.LINK_REQUEST, **overrides) -> InboxEntry:
    return InboxEntry(id=entry_id, type=entry_type, created_at=1, link_key="k1", **overrides)


@pytest.fixture
def dispatcher():
    """Create a mock push dispatcher."""
    mock = MagicMock()
    mock.dispatch = AsyncMock()
    return mock


@pytest.fixture
def pushing_inbox(store, task_queue, dispatcher) -> InboxService:
    """Create an inbox service with push enabled."""
    return InboxService(store, task_queue, dispatcher=dispatcher)


class TestAppend:
    """Tests for append_inbox_entry."""

    @pytest.mark.asyncio
    async def test_append_and_dedup(self, inbox: InboxService, store) -> None:
        """Test a repeated entry id is appended once."""
        assert await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1")) is True
        assert await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1")) is False

        document = await store.get("student_alerts", "2024-00042")
        assert [item["id"] for item in document["items"]] == ["e1"]

    @pytest.mark.asyncio
    async def test_roles_use_separate_collections(self, inbox: InboxService, store) -> None:
        """Test parent and student inboxes live in their own collections."""
        await inbox.append_inbox_entry(Role.PARENT, "1001-00001", _entry("e1"))

        assert await store.get("parent_alerts", "1001-00001") is not None
        assert await store.get("student_alerts", "1001-00001") is None

    @pytest.mark.asyncio
    async def test_push_only_for_pushable_entries(self, pushing_inbox, dispatcher, task_queue) -> None:
        """Test push is dispatched after append for unread non-self entries."""
        await pushing_inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))
        await pushing_inbox.append_inbox_entry(
            Role.PARENT, "1001-00001", _entry("e2", InboxEntryType.LINK_REQUEST_SELF)
        )
        await pushing_inbox.append_inbox_entry(Role.PARENT, "1001-00001", _entry("e3", skip_push=True))
        await task_queue.drain()

        dispatcher.dispatch.assert_awaited_once()
        entry, owner, role = dispatcher.dispatch.await_args.args
        assert entry.id == "e1"
        assert owner == "2024-00042"
        assert role == Role.STUDENT

    @pytest.mark.asyncio
    async def test_duplicate_is_not_pushed(self, pushing_inbox, dispatcher, task_queue) -> None:
        """Test a de-duplicated append does not push again."""
        await pushing_inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))
        await pushing_inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))
        await task_queue.drain()

        assert dispatcher.dispatch.await_count == 1

    @pytest.mark.asyncio
    async def test_push_failure_does_not_affect_append(self, pushing_inbox, dispatcher, task_queue) -> None:
        """Test a failing push leaves the entry in place."""
        dispatcher.dispatch.side_effect = RuntimeError("fcm down")

        assert await pushing_inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1")) is True
        await task_queue.drain()

        assert [e.id for e in await pushing_inbox.list_entries(Role.STUDENT, "2024-00042")] == ["e1"]

    @pytest.mark.asyncio
    async def test_event_published(self, inbox: InboxService, event_bus, task_queue) -> None:
        """Test an append publishes an inbox event."""
        handler = AsyncMock()
        event_bus.subscribe(EventTypes.Inbox.ENTRY_APPENDED, handler)

        await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))
        await task_queue.drain()

        event = handler.await_args.args[0]
        assert event.payload["entry_id"] == "e1"
        assert event.payload["type"] == "link_request"

    @pytest.mark.asyncio
    async def test_offline_append_raises(self, inbox: InboxService, connectivity) -> None:
        """Test store failures propagate to the caller."""
        connectivity.set_connected(False)

        with pytest.raises(StoreUnavailableError):
            await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))


class TestRewrite:
    """Tests for remove, replace and mark_read."""

    @pytest.mark.asyncio
    async def test_remove_keeps_foreign_items(self, inbox: InboxService, store) -> None:
        """Test removal filters matching entries and keeps unparseable items."""
        await store.set(
            "parent_alerts",
            "1001-00001",
            {"items": [{"note": "legacy"}, _entry("e1").to_document(), _entry("e2").to_document()]},
        )

        removed = await inbox.remove_entries(Role.PARENT, "1001-00001", lambda e: e.id == "e1")

        document = await store.get("parent_alerts", "1001-00001")
        assert removed == 1
        assert document["items"][0] == {"note": "legacy"}
        assert [item.get("id") for item in document["items"][1:]] == ["e2"]

    @pytest.mark.asyncio
    async def test_remove_nothing_skips_write(self, inbox: InboxService, store) -> None:
        """Test an inbox without matches is not rewritten."""
        assert await inbox.remove_entries(Role.PARENT, "1001-00001", lambda e: True) == 0
        assert await store.get("parent_alerts", "1001-00001") is None

    @pytest.mark.asyncio
    async def test_replace_keeps_position(self, inbox: InboxService) -> None:
        """Test replaced entries stay where they were."""
        for entry_id in ("e1", "e2", "e3"):
            await inbox.append_inbox_entry(Role.PARENT, "1001-00001", _entry(entry_id))

        replaced = await inbox.replace_entries(
            Role.PARENT,
            "1001-00001",
            lambda e: e.model_copy(update={"title": "changed"}) if e.id == "e2" else None,
        )

        entries = await inbox.list_entries(Role.PARENT, "1001-00001")
        assert replaced == 1
        assert [e.id for e in entries] == ["e1", "e2", "e3"]
        assert entries[1].title == "changed"

    @pytest.mark.asyncio
    async def test_mark_read(self, inbox: InboxService) -> None:
        """Test marking selected and then all entries read."""
        for entry_id in ("e1", "e2"):
            await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry(entry_id))

        assert await inbox.mark_read(Role.STUDENT, "2024-00042", ["e1"]) == 1
        assert await inbox.mark_read(Role.STUDENT, "2024-00042") == 1

        entries = await inbox.list_entries(Role.STUDENT, "2024-00042")
        assert all(e.status == EntryStatus.READ for e in entries)
        assert InboxService.unread_count(entries) == 0


class TestWatch:
    """Tests for watch_inbox."""

    @pytest.mark.asyncio
    async def test_watch_delivers_parsed_entries(self, inbox: InboxService) -> None:
        """Test the watch emits the current entry list on each change."""
        seen: list[list[str]] = []
        handle = inbox.watch_inbox(
            Role.STUDENT,
            "2024-00042",
            lambda entries: seen.append([e.id for e in entries]),
            lambda error: None,
        )

        await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e1"))
        handle.close()
        await inbox.append_inbox_entry(Role.STUDENT, "2024-00042", _entry("e2"))

        assert seen == [[], ["e1"]]
