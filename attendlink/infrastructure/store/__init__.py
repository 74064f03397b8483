# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared document store with realtime watches."""

from attendlink.infrastructure.store.base import (
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    StoreError,
    StoreUnavailableError,
    WatchHandle,
    apply_query,
    where,
)
from attendlink.infrastructure.store.memory import MemoryDocumentStore
from attendlink.infrastructure.store.redis_store import RedisDocumentStore

__all__ = [
    "DocumentStore",
    "DocumentSnapshot",
    "FieldFilter",
    "WatchHandle",
    "StoreError",
    "StoreUnavailableError",
    "DocumentNotFoundError",
    "apply_query",
    "where",
    "MemoryDocumentStore",
    "RedisDocumentStore",
]
