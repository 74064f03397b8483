# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client backing the document store and the offline cache.

This module provides an async Redis client wrapper with namespace
support. Namespaced keys are prefixed with ``ns:{namespace}:`` so each
account's cached snapshots can be listed and dropped together.

Example:
    from attendlink.infrastructure.cache import init_redis

    # Initialize at startup
    redis = await init_redis(settings)

    # Use the client
    await redis.set("global_key", "value")
    await redis.set_in_namespace("user-123", "relationships", snapshot)
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from attendlink.core.config.settings import Settings

# Module-level state
_redis_client: Optional["RedisClient"] = None


class RedisError(Exception):
    """Exception raised for Redis operation failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Redis error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the Redis error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class RedisClient:
    """Async Redis client with namespace support.

    This client wraps the redis-py async client and provides:
    - Connection pooling
    - Namespaced key prefixing
    - JSON serialization/deserialization
    - Set membership used as a collection index
    - Pub/Sub for change notifications

    Example:
        client = RedisClient(settings)
        await client.connect()

        await client.set("key", {"a": 1})
        value = await client.get("key")

        await client.close()
    """

    NAMESPACE_KEY_PREFIX = "ns"

    def __init__(self, settings: "Settings") -> None:
        """Initialize the Redis client.

        Args:
            settings: Application settings containing Redis configuration.
        """
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def connect(self) -> None:
        """Create the Redis connection pool.

        Raises:
            RedisError: If connection fails.
        """
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

            # Verify connection
            await self._redis.ping()
        except BaseRedisError as e:
            raise RedisError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        """Ensure the client is connected.

        Returns:
            The Redis client instance.

        Raises:
            RedisError: If not connected.
        """
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def _namespace_key(self, namespace: str, key: str) -> str:
        """Build a namespace-prefixed key.

        Args:
            namespace: The namespace (usually an account id).
            key: The original key.

        Returns:
            Key prefixed with ns:{namespace}:
        """
        return f"{self.NAMESPACE_KEY_PREFIX}:{namespace}:{key}"

    def _serialize(self, value: Any) -> str:
        """Serialize a value to JSON string.

        Args:
            value: The value to serialize.

        Returns:
            JSON string representation.
        """
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    def _deserialize(self, value: Optional[str]) -> Any:
        """Deserialize a JSON string to Python object.

        Args:
            value: The JSON string to deserialize.

        Returns:
            Python object or None if value is None.
        """
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    # ========== Global operations ==========

    async def set(self, key: str, value: Any) -> None:
        """Set a key-value pair.

        Args:
            key: The key.
            value: The value (will be JSON serialized if not a string).

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            serialized = self._serialize(value)
            await redis.set(key, serialized)
        except BaseRedisError as e:
            raise RedisError(f"Failed to set key: {key}", e) from e

    async def get(self, key: str) -> Any:
        """Get a value by key.

        Args:
            key: The key.

        Returns:
            The deserialized value or None if not found.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            value = await redis.get(key)
            return self._deserialize(value)
        except BaseRedisError as e:
            raise RedisError(f"Failed to get key: {key}", e) from e

    async def get_raw(self, key: str) -> Optional[str]:
        """Get the stored string without deserializing it.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.get(key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to get key: {key}", e) from e

    async def get_many(self, keys: list[str]) -> list[Any]:
        """Get several values in one round trip.

        Args:
            keys: Keys to read.

        Returns:
            Deserialized values in key order (None for missing keys).

        Raises:
            RedisError: If the operation fails.
        """
        if not keys:
            return []
        redis = self._ensure_connected()
        try:
            values = await redis.mget(keys)
            return [self._deserialize(value) for value in values]
        except BaseRedisError as e:
            raise RedisError(f"Failed to get {len(keys)} keys", e) from e

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Args:
            key: The key to delete.

        Returns:
            True if the key was deleted, False if it didn't exist.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            result = await redis.delete(key)
            return result > 0
        except BaseRedisError as e:
            raise RedisError(f"Failed to delete key: {key}", e) from e

    # ========== Set operations ==========

    async def add_to_set(self, key: str, *members: str) -> int:
        """Add members to a set.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.sadd(key, *members)
        except BaseRedisError as e:
            raise RedisError(f"Failed to add to set: {key}", e) from e

    async def remove_from_set(self, key: str, *members: str) -> int:
        """Remove members from a set.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.srem(key, *members)
        except BaseRedisError as e:
            raise RedisError(f"Failed to remove from set: {key}", e) from e

    async def set_members(self, key: str) -> set[str]:
        """Read all members of a set.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return set(await redis.smembers(key))
        except BaseRedisError as e:
            raise RedisError(f"Failed to read set: {key}", e) from e

    # ========== Namespaced operations ==========

    async def set_in_namespace(self, namespace: str, key: str, value: Any) -> None:
        """Set a namespaced key-value pair.

        Raises:
            RedisError: If the operation fails.
        """
        await self.set(self._namespace_key(namespace, key), value)

    async def get_raw_in_namespace(self, namespace: str, key: str) -> Optional[str]:
        """Get a namespaced value without deserializing it.

        Raises:
            RedisError: If the operation fails.
        """
        return await self.get_raw(self._namespace_key(namespace, key))

    async def delete_in_namespace(self, namespace: str, key: str) -> bool:
        """Delete a namespaced key.

        Raises:
            RedisError: If the operation fails.
        """
        return await self.delete(self._namespace_key(namespace, key))

    async def delete_namespace_keys(self, namespace: str, pattern: str = "*") -> int:
        """Delete all keys matching a pattern inside a namespace.

        Args:
            namespace: The namespace.
            pattern: Key pattern to match (default: all keys).

        Returns:
            Number of keys deleted.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        full_pattern = self._namespace_key(namespace, pattern)

        try:
            keys = []
            async for key in redis.scan_iter(match=full_pattern):
                keys.append(key)

            if keys:
                return await redis.delete(*keys)
            return 0
        except BaseRedisError as e:
            raise RedisError(
                f"Failed to delete namespace keys: {namespace}/{pattern}", e
            ) from e

    # ========== Pub/Sub operations ==========

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message to a channel.

        Args:
            channel: The channel name.
            message: The message to publish.

        Returns:
            Number of subscribers that received the message.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.publish(channel, message)
        except BaseRedisError as e:
            raise RedisError(f"Failed to publish to channel: {channel}", e) from e

    async def subscribe(self, *channels: str) -> PubSub:
        """Open a pub/sub connection subscribed to channels.

        The caller owns the returned PubSub and must close it with
        ``await pubsub.aclose()``.

        Raises:
            RedisError: If the subscription fails.
        """
        redis = self._ensure_connected()
        pubsub = redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(*channels)
        except BaseRedisError as e:
            await pubsub.aclose()
            raise RedisError(f"Failed to subscribe to channels: {channels}", e) from e
        return pubsub


# ========== Module-level functions ==========


async def init_redis(settings: "Settings") -> RedisClient:
    """Initialize the global Redis client.

    This should be called once at application startup.

    Args:
        settings: Application settings containing Redis configuration.

    Returns:
        The connected client.

    Raises:
        RedisError: If connection fails.
    """
    global _redis_client

    _redis_client = RedisClient(settings)
    await _redis_client.connect()
    return _redis_client


async def close_redis() -> None:
    """Close the global Redis client.

    This should be called at application shutdown.
    """
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None

