# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for AttendLink.

All datetimes are timezone-aware UTC. Records shared with the mobile
clients carry epoch milliseconds, so conversion helpers live here too.

Usage:
------
    from attendlink.utils.datetime import utc_now, now_ms

    created_at = utc_now()
    created_at_ms = now_ms()
"""

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Get the current time as epoch milliseconds."""
    return to_ms(utc_now())


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds.

    Args:
        dt: Datetime to convert (naive values are treated as UTC).

    Returns:
        Milliseconds since the Unix epoch.
    """
    aware = ensure_utc(dt)
    assert aware is not None
    return int(aware.timestamp() * 1000)


def coerce_ms(value: Any) -> int:
    """Coerce a stored timestamp into epoch milliseconds.

    Stored documents carry timestamps as epoch milliseconds, ISO strings or
    datetimes depending on which client wrote them. Anything unreadable
    counts as 0 (older than everything).

    Args:
        value: Raw timestamp value.

    Returns:
        Milliseconds since the Unix epoch, or 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        return to_ms(value)
    if isinstance(value, str):
        parsed = parse_iso(value)
        return to_ms(parsed) if parsed else 0
    return 0


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse ISO 8601 string to timezone-aware datetime.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if not iso_string:
        return None

    try:
        dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
        return ensure_utc(dt)
    except ValueError:
        return None
