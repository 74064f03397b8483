# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Monotonic read receipts.

Receipts live at ``conversations/{id}/reads/{readerId}``. A write that
would move a receipt backward (a delayed write from another device) is
dropped.
"""

import logging
from collections.abc import Callable

from attendlink.domains.conversation import reads_path
from attendlink.infrastructure.store import DocumentStore
from attendlink.models import ReadReceipt
from attendlink.utils.datetime import now_ms

logger = logging.getLogger(__name__)


class ReadReceiptWriter:
    """Records how far a reader has read a conversation."""

    def __init__(
        self,
        store: DocumentStore,
        conversations_collection: str = "conversations",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._collection = conversations_collection
        self._clock = clock

    async def read_receipt(self, conversation_id: str, reader_id: str) -> ReadReceipt:
        """Current receipt (zero if none was written)."""
        data = await self._store.get(reads_path(self._collection, conversation_id), reader_id)
        return ReadReceipt.from_document(data) if data else ReadReceipt()

    async def mark_read(
        self,
        conversation_id: str,
        reader_id: str,
        read_at_ms: int | None = None,
    ) -> int:
        """Move the reader's receipt forward.

        Args:
            conversation_id: Conversation thread id.
            reader_id: Internal id of the reader.
            read_at_ms: Read point; defaults to now.

        Returns:
            The receipt after the call.
        """
        target = read_at_ms if read_at_ms is not None else self._clock()
        current = await self.read_receipt(conversation_id, reader_id)
        if target <= current.last_read_at_ms:
            logger.debug(
                "Keeping receipt %d for %s in %s (got %d)",
                current.last_read_at_ms,
                reader_id,
                conversation_id,
                target,
            )
            return current.last_read_at_ms

        await self._store.set(
            reads_path(self._collection, conversation_id),
            reader_id,
            ReadReceipt(last_read_at_ms=target).to_document(),
            merge=True,
        )
        return target
