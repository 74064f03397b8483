# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic models for records shared through the document store."""

from attendlink.models.account import CANONICAL_ID_FIELDS, Account, Role
from attendlink.models.base import DocumentModel
from attendlink.models.identifiers import (
    build_link_key,
    ids_match,
    is_canonical_format,
    looks_canonical,
    normalize_id,
    parse_link_key,
)
from attendlink.models.inbox import EntryStatus, InboxEntry, InboxEntryType, LinkResponse
from attendlink.models.link import LinkDecision, LinkRecord, LinkStatus
from attendlink.models.relationship import (
    SNAPSHOT_MODELS,
    CachedInboxSnapshot,
    CachedRelationshipSnapshot,
    ReadReceipt,
    Relationship,
    SnapshotKind,
)

__all__ = [
    "DocumentModel",
    # Accounts
    "Account",
    "Role",
    "CANONICAL_ID_FIELDS",
    # Identifiers
    "build_link_key",
    "parse_link_key",
    "ids_match",
    "looks_canonical",
    "is_canonical_format",
    "normalize_id",
    # Links
    "LinkRecord",
    "LinkStatus",
    "LinkDecision",
    # Inbox
    "InboxEntry",
    "InboxEntryType",
    "EntryStatus",
    "LinkResponse",
    # Relationships
    "Relationship",
    "SnapshotKind",
    "CachedRelationshipSnapshot",
    "CachedInboxSnapshot",
    "SNAPSHOT_MODELS",
    "ReadReceipt",
]
