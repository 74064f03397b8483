# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the Redis client, Redis local storage and Redis document store."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as BaseConnectionError

from attendlink.core.config.settings import Settings
from attendlink.infrastructure.cache import RedisClient, RedisError, RedisLocalStorage
from attendlink.infrastructure.store import RedisDocumentStore, StoreUnavailableError, where


@pytest.fixture
def mock_redis():
    """Create a mock redis.asyncio client."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.mget = AsyncMock(return_value=[])
    redis.delete = AsyncMock(return_value=1)
    redis.sadd = AsyncMock(return_value=1)
    redis.srem = AsyncMock(return_value=1)
    redis.smembers = AsyncMock(return_value=set())
    redis.publish = AsyncMock(return_value=0)
    return redis


@pytest.fixture
def client(mock_redis) -> RedisClient:
    """Create a RedisClient wired to the mock."""
    redis_client = RedisClient(Settings())
    redis_client._redis = mock_redis
    return redis_client


class TestRedisClient:
    """Tests for RedisClient."""

    @pytest.mark.asyncio
    async def test_set_serializes_non_strings(self, client, mock_redis) -> None:
        """Test dictionaries are stored as JSON and strings as-is."""
        await client.set("k1", {"a": 1})
        await client.set("k2", "raw")

        assert mock_redis.set.await_args_list[0].args == ("k1", '{"a": 1}')
        assert mock_redis.set.await_args_list[1].args == ("k2", "raw")

    @pytest.mark.asyncio
    async def test_get_deserializes(self, client, mock_redis) -> None:
        """Test JSON values are decoded."""
        mock_redis.get.return_value = '{"a": 1}'

        assert await client.get("k1") == {"a": 1}

    @pytest.mark.asyncio
    async def test_namespaced_keys(self, client, mock_redis) -> None:
        """Test namespaced operations prefix the key."""
        await client.set_in_namespace("uidP", "offline:relationships", "{}")

        key = mock_redis.set.await_args.args[0]
        assert key == "ns:uidP:offline:relationships"

    @pytest.mark.asyncio
    async def test_set_members_returns_a_set(self, client, mock_redis) -> None:
        """Test set members come back as a Python set."""
        mock_redis.smembers.return_value = ["d1", "d2", "d1"]

        members = await client.set_members("idx:users")

        assert members == {"d1", "d2"}
        mock_redis.smembers.assert_awaited_once_with("idx:users")

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, client, mock_redis) -> None:
        """Test redis failures surface as RedisError."""
        mock_redis.get.side_effect = BaseConnectionError("refused")

        with pytest.raises(RedisError):
            await client.get("k1")

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        """Test operations before connect raise."""
        redis_client = RedisClient(Settings())

        with pytest.raises(RedisError):
            await redis_client.get("k1")


class TestRedisLocalStorage:
    """Tests for RedisLocalStorage."""

    @pytest.mark.asyncio
    async def test_round_trip_keys(self, client, mock_redis) -> None:
        """Test items are stored under the account namespace and prefix."""
        storage = RedisLocalStorage(client, key_prefix="offline")
        mock_redis.get.return_value = '{"items": []}'

        assert await storage.set_item("uidP", "relationships", '{"items": []}') is True
        assert await storage.get_item("uidP", "relationships") == '{"items": []}'
        assert mock_redis.get.await_args.args[0] == "ns:uidP:offline:relationships"

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, client, mock_redis) -> None:
        """Test storage errors degrade to empty reads and failed writes."""
        storage = RedisLocalStorage(client)
        mock_redis.get.side_effect = BaseConnectionError("down")
        mock_redis.set.side_effect = BaseConnectionError("down")

        assert await storage.get_item("uidP", "relationships") is None
        assert await storage.set_item("uidP", "relationships", "{}") is False


class TestRedisDocumentStore:
    """Tests for RedisDocumentStore reads and writes."""

    @pytest.mark.asyncio
    async def test_write_indexes_and_publishes(self, client, mock_redis) -> None:
        """Test a write stores the document, indexes it and announces it."""
        store = RedisDocumentStore(client, key_prefix="al")

        await store.set("links", "k1", {"status": "active"})

        assert mock_redis.set.await_args.args[0] == "al:doc:links:k1"
        mock_redis.sadd.assert_awaited_once_with("al:idx:links", "k1")
        mock_redis.publish.assert_awaited_once_with("al:changes:links", "k1")

    @pytest.mark.asyncio
    async def test_query_reads_index(self, client, mock_redis) -> None:
        """Test queries load indexed documents and filter them."""
        store = RedisDocumentStore(client, key_prefix="al")
        mock_redis.smembers.return_value = {"k1", "k2"}
        mock_redis.mget.return_value = ['{"status": "active"}', '{"status": "pending"}']

        results = await store.query("links", [where("status", "active")])

        assert [snap.id for snap in results] == ["k1"]

    @pytest.mark.asyncio
    async def test_unavailable_redis(self, client, mock_redis) -> None:
        """Test Redis failures surface as StoreUnavailableError."""
        store = RedisDocumentStore(client)
        mock_redis.get.side_effect = BaseConnectionError("down")

        with pytest.raises(StoreUnavailableError):
            await store.get("links", "k1")

    @pytest.mark.asyncio
    async def test_closed_watch_not_notified(self, client) -> None:
        """Test a watch closed before its first refresh never hears back."""
        store = RedisDocumentStore(client)
        store._listen = AsyncMock()
        kept, dropped = MagicMock(), MagicMock()

        store.watch_document("links", "k1", kept, MagicMock())
        handle = store.watch_document("links", "k1", dropped, MagicMock())
        handle.close()
        await asyncio.gather(*list(store._refresh_tasks))

        kept.assert_called_once()
        dropped.assert_not_called()
        await store.close()
