# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for conversation cleanup."""

import pytest

from attendlink.domains.conversation import (
    ConversationCleaner,
    messages_path,
    parent_student_conversation_ids,
    reads_path,
    student_conversation_id,
)


class TestConversationIds:
    """Tests for conversation id helpers."""

    def test_parent_student_candidates(self) -> None:
        """Test every id combination in both orders, student-first first."""
        candidates = parent_student_conversation_ids(["2024-00042", "uidS"], ["1001-00001", None])

        assert candidates == [
            "2024-00042-1001-00001",
            "1001-00001-2024-00042",
            "uidS-1001-00001",
            "1001-00001-uidS",
        ]

    def test_missing_ids_give_no_candidates(self) -> None:
        """Test no candidates without ids on both sides."""
        assert parent_student_conversation_ids([None], ["1001-00001"]) == []

    def test_student_thread_id_is_sorted(self) -> None:
        """Test the student thread id does not depend on argument order."""
        assert student_conversation_id("2024-00099", "2024-00042") == "2024-00042-2024-00099"
        assert student_conversation_id("2024-00042", "2024-00099") == "2024-00042-2024-00099"

    def test_nested_paths(self) -> None:
        """Test message and receipt collections hang off the thread."""
        assert messages_path("conversations", "c1") == "conversations/c1/messages"
        assert reads_path("conversations", "c1") == "conversations/c1/reads"


class TestConversationCleaner:
    """Tests for ConversationCleaner."""

    @pytest.mark.asyncio
    async def test_delete_removes_nested_collections(self, cleaner: ConversationCleaner, store) -> None:
        """Test messages and receipts are deleted with the thread."""
        await store.set("conversations", "c1", {"parentId": "1001-00001"})
        await store.set(messages_path("conversations", "c1"), "m1", {"text": "a"})
        await store.set(messages_path("conversations", "c1"), "m2", {"text": "b"})
        await store.set(reads_path("conversations", "c1"), "uidP", {"lastReadAtMs": 1})

        assert await cleaner.delete_conversation("c1") is True

        assert await store.get("conversations", "c1") is None
        assert await store.query(messages_path("conversations", "c1")) == []
        assert await store.query(reads_path("conversations", "c1")) == []

    @pytest.mark.asyncio
    async def test_delete_missing_thread(self, cleaner: ConversationCleaner) -> None:
        """Test deleting an unknown thread reports False."""
        assert await cleaner.delete_conversation("nope") is False

    @pytest.mark.asyncio
    async def test_parent_student_thread_found_in_reversed_order(
        self, cleaner: ConversationCleaner, store
    ) -> None:
        """Test a thread written parent-first by an older client is found."""
        await store.set("conversations", "1001-00001-uidS", {"parentId": "1001-00001"})

        deleted = await cleaner.delete_parent_student_conversation(["2024-00042", "uidS"], ["1001-00001"])

        assert deleted == "1001-00001-uidS"

    @pytest.mark.asyncio
    async def test_parent_student_thread_absent(self, cleaner: ConversationCleaner) -> None:
        """Test nothing is deleted when no candidate exists."""
        assert await cleaner.delete_parent_student_conversation(["2024-00042"], ["1001-00001"]) is None

    @pytest.mark.asyncio
    async def test_student_threads_skip_parent_threads(self, cleaner: ConversationCleaner, store) -> None:
        """Test student threads are found by either field and parent threads skipped."""
        await store.set("conversations", "p1", {"parentId": "1001-00001", "studentId1": "2024-00042"})
        await store.set("conversations", "s1", {"studentId1": "2024-00042", "studentId2": "2024-00099"})
        await store.set("conversations", "s2", {"members": ["uidS", "uidOther"]})
        await store.set("conversations", "s3", {"studentId1": "2024-00077", "studentId2": "2024-00099"})

        threads = await cleaner.student_threads_for(["2024-00042", "uidS"])

        found = {thread.conversation_id: thread.other_student_ids for thread in threads}
        assert found == {"s1": ["2024-00099"], "s2": ["uidOther"]}
