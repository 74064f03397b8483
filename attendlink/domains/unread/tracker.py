# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation activity watches feeding the unread aggregator.

Attached by the relationship reconciler as a child subscriber: for each
relationship it watches the newest message of the parent-student thread
and the viewer's read receipt in it.
"""

import logging

from attendlink.domains.conversation import messages_path, parent_student_conversation_ids, reads_path
from attendlink.domains.reconciliation import Releasable
from attendlink.domains.unread.aggregator import UnreadAggregator
from attendlink.infrastructure.connectivity import ConnectivityMonitor
from attendlink.infrastructure.store import DocumentSnapshot, DocumentStore
from attendlink.models import Account, ReadReceipt, Relationship, Role
from attendlink.utils.datetime import coerce_ms

logger = logging.getLogger(__name__)


class ConversationActivityTracker:
    """Child subscriber keeping an UnreadAggregator fed per relationship."""

    def __init__(
        self,
        viewer: Account,
        store: DocumentStore,
        aggregator: UnreadAggregator,
        connectivity: ConnectivityMonitor | None = None,
        conversations_collection: str = "conversations",
    ) -> None:
        """Initialize the tracker.

        Args:
            viewer: The account whose unread counts are tracked.
            store: Shared document store.
            aggregator: Receives activity and receipts.
            connectivity: Receives degraded signals on watch errors.
            conversations_collection: Collection holding conversation threads.
        """
        self._viewer = viewer
        self._store = store
        self._aggregator = aggregator
        self._connectivity = connectivity
        self._collection = conversations_collection

    def conversation_id_for(self, relationship: Relationship) -> str:
        """Thread id between the viewer and the counterpart, canonical ids first."""
        viewer_ids = [self._viewer.canonical_id, self._viewer.internal_id]
        other_ids = [relationship.counterpart_canonical_id, relationship.counterpart_internal_id]
        if self._viewer.role is Role.PARENT:
            return parent_student_conversation_ids(other_ids, viewer_ids)[0]
        return parent_student_conversation_ids(viewer_ids, other_ids)[0]

    def attach(self, key: str, relationship: Relationship) -> list[Releasable]:
        conversation_id = self.conversation_id_for(relationship)

        def on_messages(snapshots: list[DocumentSnapshot]) -> None:
            if not snapshots or not snapshots[0].data:
                return
            latest = snapshots[0].data
            self._aggregator.on_activity(
                key,
                coerce_ms(latest.get("createdAt")),
                latest.get("senderId"),
            )

        def on_receipt(snapshot: DocumentSnapshot) -> None:
            if snapshot.data:
                receipt = ReadReceipt.from_document(snapshot.data)
                self._aggregator.on_read_receipt(key, receipt.last_read_at_ms)

        def on_error(error: Exception) -> None:
            logger.warning("Activity watch for %s failed: %s", conversation_id, str(error))
            if self._connectivity is not None:
                self._connectivity.report_degraded(f"conversation.{conversation_id}", error)

        return [
            self._store.watch_query(
                messages_path(self._collection, conversation_id),
                [],
                on_messages,
                on_error,
                order_by="createdAt",
                descending=True,
                limit=1,
            ),
            self._store.watch_document(
                reads_path(self._collection, conversation_id),
                self._viewer.internal_id,
                on_receipt,
                on_error,
            ),
        ]

    def detached(self, key: str) -> None:
        self._aggregator.remove(key)
