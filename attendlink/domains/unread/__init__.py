# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unread domain package: per-relationship and total unread counts."""

from attendlink.domains.unread.aggregator import (
    RelationshipUnreadState,
    UnreadAggregator,
    UnreadListener,
    UnreadMode,
)
from attendlink.domains.unread.receipts import ReadReceiptWriter
from attendlink.domains.unread.tracker import ConversationActivityTracker

__all__ = [
    "UnreadAggregator",
    "UnreadMode",
    "UnreadListener",
    "RelationshipUnreadState",
    "ReadReceiptWriter",
    "ConversationActivityTracker",
]
