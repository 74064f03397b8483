# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for AttendLink.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and epoch millisecond helpers
"""

from attendlink.utils.datetime import (
    coerce_ms,
    ensure_utc,
    now_ms,
    parse_iso,
    to_ms,
    utc_now,
)
from attendlink.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "now_ms",
    "ensure_utc",
    "to_ms",
    "coerce_ms",
    "parse_iso",
]
