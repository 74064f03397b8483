# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client and local snapshot storage."""

from attendlink.infrastructure.cache.local_storage import (
    LocalStorage,
    MemoryLocalStorage,
    RedisLocalStorage,
)
from attendlink.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    close_redis,
    init_redis,
)

__all__ = [
    "RedisClient",
    "RedisError",
    "init_redis",
    "close_redis",
    "LocalStorage",
    "MemoryLocalStorage",
    "RedisLocalStorage",
]
