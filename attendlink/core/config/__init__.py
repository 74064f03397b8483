# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for AttendLink.

Example:
    >>> from attendlink.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.store.links_collection)
    'parent_student_links'
"""

from attendlink.core.config.settings import (
    OfflineCacheSettings,
    PushSettings,
    RedisSettings,
    Settings,
    StoreSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "Settings",
    "RedisSettings",
    "StoreSettings",
    "OfflineCacheSettings",
    "PushSettings",
    "get_settings",
    "clear_settings_cache",
]
