# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for relationship merging and realtime reconciliation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from attendlink.domains.reconciliation import (
    SOURCE_CANONICAL,
    SOURCE_INTERNAL,
    RelationshipMerger,
    RelationshipReader,
    RelationshipReconciler,
    SubscriptionRegistry,
    relationship_sources,
)
from attendlink.infrastructure.events import EventTypes
from attendlink.models import Account, Relationship, Role

LINKS = "parent_student_links"


def _relationship(internal_id: str, canonical_id: str | None = None, **overrides) -> Relationship:
    data = {
        "link_key": f"1001-00001-{canonical_id or internal_id}",
        "counterpart_role": Role.STUDENT,
        "counterpart_internal_id": internal_id,
        "counterpart_canonical_id": canonical_id,
        "display_name": internal_id,
        "linked_at": 1,
    }
    data.update(overrides)
    return Relationship(**data)


def _link(
    key: str,
    student: tuple[str, str | None],
    parent: tuple[str, str | None] = ("uidParentA1", "1001-00001"),
    status: str = "active",
    linked_at: int = 1,
    name: str = "Luis Santos",
) -> dict:
    return {
        "key": key,
        "parentInternalId": parent[0],
        "parentCanonicalId": parent[1],
        "studentInternalId": student[0],
        "studentCanonicalId": student[1],
        "studentName": name,
        "parentName": "Maria Santos",
        "status": status,
        "initiator": "parent",
        "requestedAt": 1,
        "linkedAt": linked_at,
    }


class ChildRecorder:
    """Child subscriber handing out mock handles."""

    def __init__(self) -> None:
        self.handles: dict[str, MagicMock] = {}
        self.attached: list[str] = []
        self.detached_keys: list[str] = []

    def attach(self, key: str, relationship: Relationship) -> list:
        handle = MagicMock()
        self.handles[key] = handle
        self.attached.append(key)
        return [handle]

    def detached(self, key: str) -> None:
        self.detached_keys.append(key)


@pytest.fixture
def reconciler(parent_account, store, connectivity, task_queue, event_bus) -> RelationshipReconciler:
    """Create a reconciler for the parent account."""
    return RelationshipReconciler(parent_account, store, connectivity, task_queue, event_bus=event_bus)


class TestRelationshipMerger:
    """Tests for RelationshipMerger."""

    def test_same_counterpart_from_two_sources_once(self) -> None:
        """Test a counterpart reported by both sources appears once."""
        merger = RelationshipMerger()

        merger.apply(SOURCE_INTERNAL, [_relationship("uidStudentB2", "2024-00042")])
        merger.apply(SOURCE_CANONICAL, [_relationship("uidStudentB2", "2024-00042")])

        assert len(merger) == 1

    def test_aliases_join_different_id_forms(self) -> None:
        """Test records naming the counterpart by different ids collapse."""
        merger = RelationshipMerger()

        merger.apply(SOURCE_INTERNAL, [_relationship("uidStudentB2", "2024-00042")])
        merger.apply(SOURCE_CANONICAL, [_relationship("legacyDoc", "2024-00042", display_name="Luis")])

        assert len(merger) == 1
        assert merger.get("202400042").display_name == "Luis"
        assert merger.get("uidStudentB2") is merger.get("2024-00042")

    def test_removed_only_when_every_source_drops_it(self) -> None:
        """Test a relationship survives while any source still reports it."""
        merger = RelationshipMerger()
        merger.apply(SOURCE_INTERNAL, [_relationship("uidStudentB2", "2024-00042")])
        merger.apply(SOURCE_CANONICAL, [_relationship("uidStudentB2", "2024-00042")])

        assert merger.apply(SOURCE_CANONICAL, []) is False
        assert len(merger) == 1

        assert merger.apply(SOURCE_INTERNAL, []) is True
        assert len(merger) == 0
        assert merger.get("2024-00042") is None

    def test_unchanged_emission_reports_no_change(self) -> None:
        """Test re-applying the same result is not a change."""
        merger = RelationshipMerger()
        merger.apply(SOURCE_INTERNAL, [_relationship("uidStudentB2")])

        assert merger.apply(SOURCE_INTERNAL, [_relationship("uidStudentB2")]) is False

    def test_order_most_recent_first(self) -> None:
        """Test values are sorted by link time, newest first."""
        merger = RelationshipMerger()
        merger.apply(
            SOURCE_INTERNAL,
            [
                _relationship("uidA", linked_at=10),
                _relationship("uidB", linked_at=30),
                _relationship("uidC", linked_at=20),
            ],
        )

        assert [r.counterpart_internal_id for r in merger.values()] == ["uidB", "uidC", "uidA"]


class TestSubscriptionRegistry:
    """Tests for SubscriptionRegistry."""

    def test_detach_releases_once(self) -> None:
        """Test detaching twice releases handles once."""
        registry = SubscriptionRegistry()
        handle = MagicMock()
        registry.attach("k1", [handle])

        assert registry.detach("k1") is True
        assert registry.detach("k1") is False
        handle.close.assert_called_once()
        assert "k1" not in registry

    def test_reattach_releases_previous(self) -> None:
        """Test attaching a key again closes the old handles."""
        registry = SubscriptionRegistry()
        old, new = MagicMock(), MagicMock()

        registry.attach("k1", [old])
        registry.attach("k1", [new])

        old.close.assert_called_once()
        new.close.assert_not_called()
        assert len(registry) == 1

    def test_failing_close_does_not_stop_others(self) -> None:
        """Test every handle is released even if one fails."""
        registry = SubscriptionRegistry()
        broken, fine = MagicMock(), MagicMock()
        broken.close.side_effect = RuntimeError("boom")
        registry.attach("k1", [broken, fine])
        registry.attach("k2", [])

        assert registry.detach_all() == 2
        fine.close.assert_called_once()
        assert registry.keys == set()


class TestRelationshipSources:
    """Tests for relationship_sources."""

    def test_one_source_per_id_form(self, parent_account) -> None:
        """Test internal and canonical sources for an account with both ids."""
        sources = dict(relationship_sources(parent_account))

        assert set(sources) == {SOURCE_INTERNAL, SOURCE_CANONICAL}
        assert sources[SOURCE_INTERNAL][0].field == "parentInternalId"
        assert sources[SOURCE_CANONICAL][0].value == "1001-00001"

    def test_internal_only_without_canonical_id(self) -> None:
        """Test an account without canonical id has one source."""
        account = Account(internal_id="uidS", role=Role.STUDENT)

        assert [name for name, _ in relationship_sources(account)] == [SOURCE_INTERNAL]


class TestRelationshipReconciler:
    """Tests for RelationshipReconciler."""

    @pytest.mark.asyncio
    async def test_merges_both_sources(self, reconciler, store) -> None:
        """Test records reached by either id form appear once each."""
        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042"), linked_at=5))
        await store.set(
            LINKS,
            "k2",
            _link("k2", ("uidStudentD4", "2024-00077"), parent=("legacyParentDoc", "1001-00001"), name="Ana"),
        )

        reconciler.start()

        assert [r.link_key for r in reconciler.relationships] == ["k1", "k2"]

    @pytest.mark.asyncio
    async def test_listener_receives_changes(self, reconciler, store) -> None:
        """Test listeners get the merged view only when it changes."""
        views: list[list[str]] = []
        reconciler.add_listener(lambda rels: views.append([r.link_key for r in rels]))
        reconciler.start()

        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        await store.set(LINKS, "other", _link("other", ("uidX", None), parent=("uidSomeoneElse", None)))
        await store.delete(LINKS, "k1")

        assert views == [["k1"], []]

    @pytest.mark.asyncio
    async def test_child_subscriptions_follow_view(self, reconciler, store) -> None:
        """Test child handles attach on arrival and release on removal."""
        child = ChildRecorder()
        reconciler.add_child_subscriber(child)
        reconciler.start()

        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        assert reconciler.child_keys == {"uidStudentB2"}
        assert child.attached == ["uidStudentB2"]

        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042"), status="pending"))

        child.handles["uidStudentB2"].close.assert_called_once()
        assert child.detached_keys == ["uidStudentB2"]
        assert reconciler.child_keys == set()

    @pytest.mark.asyncio
    async def test_late_child_subscriber_attached(self, reconciler, store) -> None:
        """Test a subscriber added while running sees existing relationships."""
        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        reconciler.start()
        child = ChildRecorder()

        reconciler.add_child_subscriber(child)

        assert child.attached == ["uidStudentB2"]

    @pytest.mark.asyncio
    async def test_watch_error_keeps_view(self, reconciler, store, connectivity) -> None:
        """Test a dropped watch keeps the last view and reports degradation."""
        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        reconciler.start()

        connectivity.set_connected(False)

        assert [r.link_key for r in reconciler.relationships] == ["k1"]
        assert connectivity.degraded_count == 2

    @pytest.mark.asyncio
    async def test_stop_releases_everything(self, reconciler, store) -> None:
        """Test stop closes source watches and child handles."""
        child = ChildRecorder()
        reconciler.add_child_subscriber(child)
        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        reconciler.start()
        reconciler.start()
        assert store.watch_count == 2

        reconciler.stop()

        assert store.watch_count == 0
        assert reconciler.is_running is False
        assert child.detached_keys == ["uidStudentB2"]
        assert [r.link_key for r in reconciler.relationships] == ["k1"]

    @pytest.mark.asyncio
    async def test_changed_event_published(self, reconciler, store, event_bus, task_queue) -> None:
        """Test a change publishes a relationships event."""
        handler = AsyncMock()
        event_bus.subscribe(EventTypes.Relationships.CHANGED, handler)
        reconciler.start()

        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", "2024-00042")))
        await task_queue.drain()

        event = handler.await_args.args[0]
        assert event.payload == {"count": 1, "link_keys": ["k1"]}


class TestRelationshipReader:
    """Tests for RelationshipReader."""

    @pytest.mark.asyncio
    async def test_read_once_merges_sources(self, store, student_account) -> None:
        """Test a one-shot read sees records reached by either id form."""
        await store.set(LINKS, "k1", _link("k1", ("uidStudentB2", None)))
        await store.set(
            LINKS,
            "k2",
            _link("k2", ("legacyStudentDoc", "2024-00042"), parent=("uidParentC3", "1001-00002")),
        )
        await store.set(LINKS, "k3", _link("k3", ("uidStudentB2", None), status="pending"))

        relationships = await RelationshipReader(store).read_once(student_account)

        assert sorted(r.link_key for r in relationships) == ["k1", "k2"]
        assert {r.counterpart_role for r in relationships} == {Role.PARENT}
