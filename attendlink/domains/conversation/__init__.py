# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation domain package: thread ids and cleanup on unlink."""

from attendlink.domains.conversation.cleanup import (
    ConversationCleaner,
    StudentThread,
    messages_path,
    parent_student_conversation_ids,
    reads_path,
    student_conversation_id,
)

__all__ = [
    "ConversationCleaner",
    "StudentThread",
    "messages_path",
    "reads_path",
    "parent_student_conversation_ids",
    "student_conversation_id",
]
