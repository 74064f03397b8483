# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Relationship views, cached snapshots and read receipts."""

from enum import Enum

from pydantic import Field

from attendlink.models.account import Role
from attendlink.models.base import DocumentModel
from attendlink.models.inbox import InboxEntry
from attendlink.models.link import LinkRecord


class Relationship(DocumentModel):
    """An active link seen from one account's side.

    Attributes:
        link_key: Key of the underlying link record.
        counterpart_role: Role of the other side.
        counterpart_internal_id: Other side's internal id.
        counterpart_canonical_id: Other side's canonical id, if known.
        display_name: Other side's display name.
        relationship: Relationship label.
        linked_at: Activation time in epoch milliseconds.
    """

    link_key: str
    counterpart_role: Role
    counterpart_internal_id: str
    counterpart_canonical_id: str | None = None
    display_name: str = ""
    relationship: str | None = None
    linked_at: int | None = None

    @property
    def identity_key(self) -> str:
        """Normalized identity of the counterpart."""
        return self.counterpart_internal_id or self.counterpart_canonical_id or self.link_key

    @classmethod
    def from_link(cls, record: LinkRecord, viewer_role: Role) -> "Relationship":
        """Project a link record onto the viewer's side."""
        other = viewer_role.counterpart
        return cls(
            link_key=record.key,
            counterpart_role=other,
            counterpart_internal_id=record.internal_id_for(other),
            counterpart_canonical_id=record.canonical_id_for(other),
            display_name=record.name_for(other),
            relationship=record.relationship,
            linked_at=record.linked_at,
        )


class SnapshotKind(str, Enum):
    """Kinds of data cached for offline display."""

    RELATIONSHIPS = "relationships"
    INBOX = "inbox"


class CachedRelationshipSnapshot(DocumentModel):
    """Last-known relationship list for an account.

    Attributes:
        account_id: Owner of the snapshot.
        cached_at_ms: When the snapshot was taken.
        items: Relationships as last seen live.
    """

    account_id: str
    cached_at_ms: int
    items: list[Relationship] = Field(default_factory=list)


class CachedInboxSnapshot(DocumentModel):
    """Last-known inbox entries for an account."""

    account_id: str
    cached_at_ms: int
    items: list[InboxEntry] = Field(default_factory=list)


SNAPSHOT_MODELS: dict[SnapshotKind, type[DocumentModel]] = {
    SnapshotKind.RELATIONSHIPS: CachedRelationshipSnapshot,
    SnapshotKind.INBOX: CachedInboxSnapshot,
}


class ReadReceipt(DocumentModel):
    """Latest point up to which an account has read a conversation."""

    last_read_at_ms: int = 0
