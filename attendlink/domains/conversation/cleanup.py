# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation cleanup after a link is removed.

Conversation documents live in ``conversations/{id}`` with messages in
``conversations/{id}/messages`` and read receipts in
``conversations/{id}/reads``. Deleting a document does not delete its
nested collections, so messages and receipts go first.

Parent-student thread ids are ``{studentKey}-{parentKey}``, but clients
have used every id form on either side and both orders, so every
combination is tried. Student-student thread ids use the two keys sorted.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from attendlink.infrastructure.store import DocumentStore

logger = logging.getLogger(__name__)


def messages_path(conversations_collection: str, conversation_id: str) -> str:
    """Path of a thread's messages."""
    return f"{conversations_collection}/{conversation_id}/messages"


def reads_path(conversations_collection: str, conversation_id: str) -> str:
    """Path of a thread's read receipts."""
    return f"{conversations_collection}/{conversation_id}/reads"


def parent_student_conversation_ids(
    student_ids: Iterable[str | None],
    parent_ids: Iterable[str | None],
) -> list[str]:
    """All candidate ids of a parent-student thread, student-first order preferred."""
    students = [sid for sid in dict.fromkeys(student_ids) if sid]
    parents = [pid for pid in dict.fromkeys(parent_ids) if pid]
    candidates: list[str] = []
    for sid in students:
        for pid in parents:
            for candidate in (f"{sid}-{pid}", f"{pid}-{sid}"):
                if candidate not in candidates:
                    candidates.append(candidate)
    return candidates


def student_conversation_id(first_student_id: str, second_student_id: str) -> str:
    """Id of the thread between two students."""
    low, high = sorted((first_student_id, second_student_id))
    return f"{low}-{high}"


@dataclass
class StudentThread:
    """A student-student conversation found for a student.

    Attributes:
        conversation_id: Thread id.
        other_student_ids: Ids recorded for the other participant.
    """

    conversation_id: str
    other_student_ids: list[str]


class ConversationCleaner:
    """Deletes conversation threads and their nested collections."""

    def __init__(self, store: DocumentStore, conversations_collection: str = "conversations") -> None:
        """Initialize the cleaner.

        Args:
            store: Shared document store.
            conversations_collection: Collection holding conversation threads.
        """
        self._store = store
        self._collection = conversations_collection

    def messages_collection(self, conversation_id: str) -> str:
        """Path of a thread's messages."""
        return messages_path(self._collection, conversation_id)

    def reads_collection(self, conversation_id: str) -> str:
        """Path of a thread's read receipts."""
        return reads_path(self._collection, conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a thread, its messages and its read receipts.

        Returns:
            True if the thread existed.
        """
        if await self._store.get(self._collection, conversation_id) is None:
            return False

        for nested in (self.messages_collection(conversation_id), self.reads_collection(conversation_id)):
            snapshots = await self._store.query(nested)
            for snapshot in snapshots:
                await self._store.delete(nested, snapshot.id)
            if snapshots:
                logger.debug("Deleted %d documents from %s", len(snapshots), nested)

        await self._store.delete(self._collection, conversation_id)
        logger.info("Deleted conversation %s", conversation_id)
        return True

    async def delete_parent_student_conversation(
        self,
        student_ids: Sequence[str | None],
        parent_ids: Sequence[str | None],
    ) -> str | None:
        """Delete the thread between a parent and a student.

        Returns:
            The id of the deleted thread, or None if none was found.
        """
        for conversation_id in parent_student_conversation_ids(student_ids, parent_ids):
            if await self.delete_conversation(conversation_id):
                return conversation_id
        logger.debug("No parent-student conversation found for %s / %s", student_ids, parent_ids)
        return None

    async def student_threads_for(self, student_ids: Sequence[str | None]) -> list[StudentThread]:
        """Find student-student threads one of the given ids takes part in.

        Parent-student threads carry a ``parentId`` field and are skipped.
        """
        own = {sid for sid in student_ids if sid}
        threads: list[StudentThread] = []
        for snapshot in await self._store.query(self._collection):
            data = snapshot.data or {}
            if data.get("parentId"):
                continue

            participants = [
                pid
                for pid in [data.get("studentId1"), data.get("studentId2"), *(data.get("members") or [])]
                if isinstance(pid, str) and pid
            ]
            if not own.intersection(participants):
                continue

            others = [pid for pid in dict.fromkeys(participants) if pid not in own]
            threads.append(StudentThread(snapshot.id, others))
        return threads
