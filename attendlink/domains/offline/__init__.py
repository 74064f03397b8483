# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Offline domain package: cache-first loading of relationship and inbox views."""

from attendlink.domains.offline.controller import (
    LoadResult,
    LoadSource,
    OfflineCacheController,
    SnapshotPublisher,
    SnapshotReader,
)

__all__ = [
    "OfflineCacheController",
    "LoadResult",
    "LoadSource",
    "SnapshotReader",
    "SnapshotPublisher",
]
