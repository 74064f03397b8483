# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student link records."""

from enum import Enum

from attendlink.models.account import Account, Role
from attendlink.models.base import DocumentModel
from attendlink.models.identifiers import ids_match


class LinkStatus(str, Enum):
    """Lifecycle status of a stored link record.

    Unlinked records are deleted, so there is no status for them.
    """

    PENDING = "pending"
    ACTIVE = "active"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        """Declined records can only be overwritten by a new request."""
        return self is LinkStatus.DECLINED


class LinkDecision(str, Enum):
    """Recipient's answer to a pending request."""

    ACCEPT = "accept"
    DECLINE = "decline"


class LinkRecord(DocumentModel):
    """A stored parent-student link.

    Attributes:
        key: Deterministic document id.
        parent_internal_id: Parent's internal id.
        student_internal_id: Student's internal id.
        parent_canonical_id: Parent's canonical id, if resolved.
        student_canonical_id: Student's canonical id, if resolved.
        parent_name: Parent display name at request time.
        student_name: Student display name at request time.
        relationship: Free-form label (mother, guardian, ...).
        status: Lifecycle status.
        initiator: Which side sent the request.
        requested_at: Request time in epoch milliseconds.
        responded_at: Accept/decline time in epoch milliseconds.
        linked_at: Activation time in epoch milliseconds.
    """

    key: str
    parent_internal_id: str
    student_internal_id: str
    parent_canonical_id: str | None = None
    student_canonical_id: str | None = None
    parent_name: str = ""
    student_name: str = ""
    relationship: str | None = None
    status: LinkStatus
    initiator: Role
    requested_at: int
    responded_at: int | None = None
    linked_at: int | None = None

    @property
    def recipient_role(self) -> Role:
        """The side that has to answer the request."""
        return self.initiator.counterpart

    def internal_id_for(self, role: Role) -> str:
        """Internal id of the given side."""
        return self.parent_internal_id if role is Role.PARENT else self.student_internal_id

    def canonical_id_for(self, role: Role) -> str | None:
        """Canonical id of the given side."""
        return self.parent_canonical_id if role is Role.PARENT else self.student_canonical_id

    def name_for(self, role: Role) -> str:
        """Display name of the given side."""
        return self.parent_name if role is Role.PARENT else self.student_name

    def identity_key_for(self, role: Role) -> str:
        """Id under which the given side's inbox is keyed."""
        return self.canonical_id_for(role) or self.internal_id_for(role)

    def is_party(self, account: Account) -> bool:
        """Check whether the account is the record's party for its role."""
        candidates = (self.internal_id_for(account.role), self.canonical_id_for(account.role))
        return any(
            ids_match(candidate, own)
            for candidate in candidates
            for own in (account.internal_id, account.canonical_id)
        )
