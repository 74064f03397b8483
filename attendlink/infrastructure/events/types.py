# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for AttendLink.

Using constants instead of string literals keeps a single source of truth
for event names. Pattern subscribers ("link.*") pick up new events in a
domain automatically.
"""


class EventTypes:
    """All event types in AttendLink organized by domain."""

    class Link:
        """Link lifecycle events."""

        REQUESTED = "link.requested"
        ACCEPTED = "link.accepted"
        DECLINED = "link.declined"
        CANCELLED = "link.cancelled"
        UNLINKED = "link.unlinked"

    class Inbox:
        """Inbox fan-out events."""

        ENTRY_APPENDED = "inbox.entry.appended"
        ENTRIES_REMOVED = "inbox.entries.removed"
        PUSH_FAILED = "inbox.push.failed"

    class Relationships:
        """Reconciled relationship view events."""

        CHANGED = "relationships.changed"
        SNAPSHOT_PUBLISHED = "relationships.snapshot.published"

    class Unread:
        """Unread aggregation events."""

        CHANGED = "unread.changed"

    class Connectivity:
        """Connectivity events."""

        CHANGED = "connectivity.changed"
        DEGRADED = "connectivity.degraded"


class EventPatterns:
    """Common wildcard patterns for subscribing to event groups."""

    ALL_LINK = "link.*"
    ALL_INBOX = "inbox.*"
    ALL_CONNECTIVITY = "connectivity.*"
