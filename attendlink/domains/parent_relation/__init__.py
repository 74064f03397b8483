# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student relation domain package.

This package provides link lifecycle management:
- Requesting, accepting, declining and cancelling links
- Unlinking with conversation and alert cleanup
- Optimistic display of locally issued requests
"""

from attendlink.domains.parent_relation.overlay import PendingOverlay
from attendlink.domains.parent_relation.service import (
    ActionNotice,
    LinkActionResult,
    LinkLifecycleService,
    LinkOutcome,
)

__all__ = [
    "LinkLifecycleService",
    "LinkActionResult",
    "LinkOutcome",
    "ActionNotice",
    "PendingOverlay",
]
