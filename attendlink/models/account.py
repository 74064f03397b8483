# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account models."""

from enum import Enum
from typing import Any

from pydantic import Field

from attendlink.models.base import DocumentModel


class Role(str, Enum):
    """Account role on either side of a link."""

    PARENT = "parent"
    STUDENT = "student"

    @property
    def counterpart(self) -> "Role":
        """Return the role on the other side of a link."""
        return Role.STUDENT if self is Role.PARENT else Role.PARENT


# Account documents written by different client versions store the
# canonical id under different field names.
CANONICAL_ID_FIELDS: dict[Role, tuple[str, ...]] = {
    Role.STUDENT: ("studentId", "studentID", "studentIdNumber", "studentNumber", "lrn"),
    Role.PARENT: ("parentId", "parentIdCanonical"),
}


class Account(DocumentModel):
    """A signed-in parent or student account.

    Attributes:
        internal_id: Opaque id issued by the auth provider.
        role: Parent or student.
        canonical_id: Human-visible durable id (NNNN-NNNNN), if known.
        first_name: Given name.
        last_name: Family name.
        email: Contact email.
        push_tokens: FCM device tokens registered for this account.
    """

    internal_id: str
    role: Role
    canonical_id: str | None = None
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    push_tokens: list[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Full name, falling back to the best available id."""
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.canonical_id or self.internal_id

    @property
    def identity_key(self) -> str:
        """The id under which this account's inbox and links are keyed."""
        return self.canonical_id or self.internal_id

    @classmethod
    def from_user_document(
        cls,
        doc_id: str,
        data: dict[str, Any],
        role: Role | None = None,
    ) -> "Account":
        """Build an account from a raw ``users`` document.

        Args:
            doc_id: Document id (the internal id unless ``uid`` says otherwise).
            data: Raw document fields.
            role: Role to assume when the document does not carry one.

        Returns:
            Parsed account.
        """
        resolved_role = Role(data.get("role") or (role.value if role else Role.STUDENT.value))

        canonical_id = data.get("canonicalId")
        if not canonical_id:
            for field_name in CANONICAL_ID_FIELDS[resolved_role]:
                value = data.get(field_name)
                if isinstance(value, str) and "-" in value:
                    canonical_id = value
                    break

        tokens: list[str] = []
        for token in [data.get("fcmToken"), *(data.get("pushTokens") or [])]:
            if isinstance(token, str) and token and token not in tokens:
                tokens.append(token)

        return cls(
            internal_id=data.get("uid") or data.get("internalId") or doc_id,
            role=resolved_role,
            canonical_id=canonical_id,
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            email=data.get("email"),
            push_tokens=tokens,
        )
