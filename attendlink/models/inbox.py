# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Inbox entry models.

Each account owns one inbox document holding an ordered ``items`` list.
Entries are identified by a deterministic id so repeated appends of the
same notice collapse into one.
"""

from enum import Enum
from typing import Any

from pydantic import Field

from attendlink.models.base import DocumentModel


class InboxEntryType(str, Enum):
    """Known inbox entry types.

    Entries written by other features (attendance, schedules) may carry
    types outside this list; they are preserved untouched.
    """

    LINK_REQUEST = "link_request"
    LINK_REQUEST_SELF = "link_request_self"
    LINK_RESPONSE = "link_response"
    LINK_RESPONSE_SELF = "link_response_self"
    LINK_UNLINKED = "link_unlinked"
    LINK_UNLINKED_SELF = "link_unlinked_self"
    SCHEDULE_CURRENT = "schedule_current"


class EntryStatus(str, Enum):
    """Read state of an inbox entry."""

    UNREAD = "unread"
    READ = "read"


class LinkResponse(str, Enum):
    """Outcome carried by response entries."""

    ACCEPTED = "accepted"
    DECLINED = "declined"


class InboxEntry(DocumentModel):
    """One notice in an account's inbox.

    Attributes:
        id: Deterministic entry id, unique within the inbox.
        type: Entry type.
        title: Short title.
        message: Body text.
        status: Read state.
        created_at: Creation time in epoch milliseconds.
        link_key: Link the entry is about, if any.
        counterparty_id: Identity key of the other side.
        counterparty_name: Display name of the other side.
        student_id: Student the entry is about (schedule and link entries).
        response: Accept/decline outcome for response entries.
        skip_push: Never hand this entry to the push dispatcher.
        data: Extra fields for the client.
    """

    id: str
    type: InboxEntryType | str
    title: str = ""
    message: str = ""
    status: EntryStatus = EntryStatus.UNREAD
    created_at: int
    link_key: str | None = None
    counterparty_id: str | None = None
    counterparty_name: str | None = None
    student_id: str | None = None
    response: LinkResponse | None = None
    skip_push: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def type_name(self) -> str:
        """Entry type as a plain string."""
        return str(getattr(self.type, "value", self.type))

    @property
    def is_unread(self) -> bool:
        """Check whether the entry is still unread."""
        return self.status == EntryStatus.UNREAD

    @property
    def is_self_notice(self) -> bool:
        """Self notices record the actor's own action and are never pushed."""
        return self.type_name.endswith("_self")

    @property
    def should_push(self) -> bool:
        """Whether the entry may be handed to the push dispatcher."""
        return self.is_unread and not self.skip_push and not self.is_self_notice
