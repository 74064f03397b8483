# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reconciliation domain package.

This package merges the realtime sources that reach an account's
relationships into one de-duplicated view and manages the child
subscriptions attached per relationship.
"""

from attendlink.domains.reconciliation.merger import RelationshipMerger
from attendlink.domains.reconciliation.registry import Releasable, SubscriptionRegistry
from attendlink.domains.reconciliation.service import (
    SOURCE_CANONICAL,
    SOURCE_INTERNAL,
    ChildSubscriber,
    RelationshipListener,
    RelationshipReader,
    RelationshipReconciler,
    relationship_sources,
)

__all__ = [
    "RelationshipReconciler",
    "RelationshipReader",
    "RelationshipMerger",
    "RelationshipListener",
    "SubscriptionRegistry",
    "Releasable",
    "ChildSubscriber",
    "relationship_sources",
    "SOURCE_INTERNAL",
    "SOURCE_CANONICAL",
]
