# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unread aggregation across a changing set of relationships.

A relationship is unread when its last activity is newer than the last
read point and was not sent by the viewer. All per-relationship state
lives in one map owned by the aggregator; every activity or receipt
update mutates that map and recomputes from it, so updates arriving from
independent subscriptions in any order see each other's effects.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.events import EventBus, EventTypes
from attendlink.models import ids_match

logger = logging.getLogger(__name__)


class UnreadMode(str, Enum):
    """How per-relationship unread state adds up to a total.

    THREADS counts unread relationships; SUM adds their unread counts.
    """

    THREADS = "threads"
    SUM = "sum"


@dataclass
class RelationshipUnreadState:
    """Mutable unread state of one relationship.

    Attributes:
        last_activity_ms: Time of the latest activity.
        last_activity_sender: Who produced the latest activity.
        last_read_ms: Latest read receipt.
        manually_read: Set when the viewer opened the relationship.
        unread_count: Unread items reported by the source (SUM mode).
    """

    last_activity_ms: int = 0
    last_activity_sender: str | None = None
    last_read_ms: int = 0
    manually_read: bool = False
    unread_count: int = 0


UnreadListener = Callable[[int, dict[str, int]], None]


class UnreadAggregator:
    """Derives per-relationship and total unread counts for one viewer."""

    def __init__(
        self,
        self_id: str | list[str],
        mode: UnreadMode = UnreadMode.THREADS,
        task_queue: BackgroundTaskQueue | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            self_id: The viewer's id, or every id form it may appear under.
            mode: How totals are computed.
            task_queue: Queue used to publish change events.
            event_bus: Optional bus for unread events.
        """
        self._self_ids = [self_id] if isinstance(self_id, str) else [i for i in self_id if i]
        self.mode = mode
        self._task_queue = task_queue
        self._event_bus = event_bus
        self._state: dict[str, RelationshipUnreadState] = {}
        self._listeners: list[UnreadListener] = []
        self._last_published: tuple[int, dict[str, int]] | None = None

    def add_listener(self, listener: UnreadListener) -> Callable[[], None]:
        """Receive ``(total, per_relationship)`` whenever either changes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _is_self(self, sender: str | None) -> bool:
        return any(ids_match(sender, own) for own in self._self_ids)

    def _entry(self, key: str) -> RelationshipUnreadState:
        return self._state.setdefault(key, RelationshipUnreadState())

    # ========== Updates ==========

    def on_activity(
        self,
        key: str,
        activity_ms: int,
        sender_id: str | None,
        unread_count: int | None = None,
    ) -> None:
        """Record the latest activity of a relationship.

        Activity older than what is already known is ignored, and so is a
        repeat of the same activity. Newer activity from the other side
        clears a manual read marker.
        """
        state = self._entry(key)
        if activity_ms < state.last_activity_ms:
            logger.debug("Ignoring stale activity for %s", key)
            return
        if (
            activity_ms == state.last_activity_ms
            and sender_id == state.last_activity_sender
            and (unread_count is None or unread_count == state.unread_count)
        ):
            return

        superseded = activity_ms > state.last_activity_ms
        state.last_activity_ms = activity_ms
        state.last_activity_sender = sender_id
        if unread_count is not None:
            state.unread_count = max(unread_count, 0)
        if superseded and state.manually_read and not self._is_self(sender_id):
            state.manually_read = False
        self._recompute()

    def on_read_receipt(self, key: str, last_read_ms: int) -> None:
        """Record a read receipt. Receipts only ever move forward."""
        state = self._entry(key)
        if last_read_ms <= state.last_read_ms:
            return
        state.last_read_ms = last_read_ms
        self._recompute()

    def mark_opened(self, key: str) -> None:
        """Treat a relationship as read because the viewer opened it."""
        state = self._entry(key)
        if state.manually_read:
            return
        state.manually_read = True
        self._recompute()

    def remove(self, key: str) -> None:
        """Forget a relationship that left the view."""
        if self._state.pop(key, None) is not None:
            self._recompute()

    def clear(self) -> None:
        """Forget every relationship."""
        self._state.clear()
        self._recompute()

    # ========== Queries ==========

    def is_unread(self, key: str) -> bool:
        """Check whether a relationship currently counts as unread."""
        state = self._state.get(key)
        if state is None or state.manually_read:
            return False
        return state.last_activity_ms > state.last_read_ms and not self._is_self(state.last_activity_sender)

    def unread_for(self, key: str) -> int:
        """Unread contribution of one relationship."""
        if not self.is_unread(key):
            return 0
        if self.mode is UnreadMode.SUM:
            return max(self._state[key].unread_count, 1)
        return 1

    def per_relationship(self) -> dict[str, int]:
        """Unread contribution of every relationship."""
        return {key: self.unread_for(key) for key in self._state}

    @property
    def total(self) -> int:
        """Total unread according to the mode."""
        return sum(self.per_relationship().values())

    @property
    def keys(self) -> set[str]:
        """Tracked relationship keys."""
        return set(self._state)

    # ========== Publication ==========

    def _recompute(self) -> None:
        per_relationship = self.per_relationship()
        current = (sum(per_relationship.values()), per_relationship)
        if current == self._last_published:
            return
        self._last_published = current

        for listener in list(self._listeners):
            try:
                listener(current[0], dict(per_relationship))
            except Exception as e:
                logger.error("Unread listener failed: %s", str(e), exc_info=True)

        if self._event_bus is not None and self._task_queue is not None:
            try:
                self._task_queue.submit(
                    self._event_bus.publish(
                        EventTypes.Unread.CHANGED,
                        {"total": current[0], "mode": self.mode.value, "per_relationship": per_relationship},
                        account_id=self._self_ids[0] if self._self_ids else None,
                    ),
                    name=EventTypes.Unread.CHANGED,
                )
            except RuntimeError:
                logger.debug("No running loop, unread event not published")
