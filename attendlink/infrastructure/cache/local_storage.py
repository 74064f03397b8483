# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Local key-value storage for offline snapshots.

Values are stored as strings exactly as given, so a reader gets back the
bytes that were last written. Storage failures never propagate: writes
report False and reads return None, and both are logged.
"""

import logging
from abc import ABC, abstractmethod

from attendlink.infrastructure.cache.redis_client import RedisClient, RedisError

logger = logging.getLogger(__name__)


class LocalStorage(ABC):
    """Abstract per-namespace string storage."""

    @abstractmethod
    async def get_item(self, namespace: str, key: str) -> str | None:
        """Read a stored value, or None if missing or unreadable."""
        ...

    @abstractmethod
    async def set_item(self, namespace: str, key: str, value: str) -> bool:
        """Replace a stored value.

        Returns:
            True if the value was written.
        """
        ...

    @abstractmethod
    async def remove_item(self, namespace: str, key: str) -> bool:
        """Remove a stored value."""
        ...

    @abstractmethod
    async def clear(self, namespace: str) -> None:
        """Remove every value in a namespace."""
        ...


class MemoryLocalStorage(LocalStorage):
    """Storage kept in process memory."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], str] = {}

    async def get_item(self, namespace: str, key: str) -> str | None:
        return self._items.get((namespace, key))

    async def set_item(self, namespace: str, key: str, value: str) -> bool:
        self._items[(namespace, key)] = value
        return True

    async def remove_item(self, namespace: str, key: str) -> bool:
        return self._items.pop((namespace, key), None) is not None

    async def clear(self, namespace: str) -> None:
        for item_key in [k for k in self._items if k[0] == namespace]:
            del self._items[item_key]


class RedisLocalStorage(LocalStorage):
    """Storage backed by Redis namespaced keys."""

    def __init__(self, redis: RedisClient, key_prefix: str = "offline") -> None:
        """Initialize the storage.

        Args:
            redis: Connected Redis client.
            key_prefix: Prefix applied to every key.
        """
        self._redis = redis
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    async def get_item(self, namespace: str, key: str) -> str | None:
        try:
            return await self._redis.get_raw_in_namespace(namespace, self._key(key))
        except RedisError as e:
            logger.error("Local storage read failed for %s/%s: %s", namespace, key, str(e))
            return None

    async def set_item(self, namespace: str, key: str, value: str) -> bool:
        try:
            await self._redis.set_in_namespace(namespace, self._key(key), value)
            return True
        except RedisError as e:
            logger.error("Local storage write failed for %s/%s: %s", namespace, key, str(e))
            return False

    async def remove_item(self, namespace: str, key: str) -> bool:
        try:
            return await self._redis.delete_in_namespace(namespace, self._key(key))
        except RedisError as e:
            logger.error("Local storage remove failed for %s/%s: %s", namespace, key, str(e))
            return False

    async def clear(self, namespace: str) -> None:
        try:
            await self._redis.delete_namespace_keys(namespace, self._key("*"))
        except RedisError as e:
            logger.error("Local storage clear failed for %s: %s", namespace, str(e))
