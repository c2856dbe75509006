"""Tests for flagcore/stores/redis_cache.py with a mocked Redis client."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, call

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from flagcore.errors import StorageError, StoreConflictError
from flagcore.stores import GLOBAL_KEY, RedisFeatureStore


class TestRedisFeatureStore:
    """Tests for RedisFeatureStore."""

    @pytest.fixture
    def mock_redis(self):
        """Create a mock Redis client."""
        redis = AsyncMock()
        redis.get = AsyncMock(return_value=None)
        redis.set = AsyncMock(return_value=True)
        redis.smembers = AsyncMock(return_value=set())
        redis.scard = AsyncMock(return_value=0)
        return redis

    @pytest.fixture
    def store(self, mock_redis):
        return RedisFeatureStore(mock_redis, prefix="test", ttl=60)

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_redis):
        assert await store.get("f", "User:1") == (False, None)
        mock_redis.get.assert_awaited_once_with("test:f:User:1")

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, store, mock_redis):
        mock_redis.get = AsyncMock(return_value=json.dumps(False))
        assert await store.get("f", "User:1") == (True, False)

    @pytest.mark.asyncio
    async def test_insert_uses_set_nx(self, store, mock_redis):
        await store.insert("f", "User:1", "blue")

        mock_redis.set.assert_awaited_once_with("test:f:User:1", '"blue"', nx=True, ex=60)
        mock_redis.sadd.assert_has_awaits([
            call("test:f.__contexts", "User:1"),
            call("test:__index", "f"),
        ])

    @pytest.mark.asyncio
    async def test_insert_conflict(self, store, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)

        with pytest.raises(StoreConflictError):
            await store.insert("f", "User:1", True)
        mock_redis.sadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_set_overwrites(self, store, mock_redis):
        await store.set("f", "User:1", True)
        mock_redis.set.assert_awaited_once_with("test:f:User:1", "true", ex=60)

    @pytest.mark.asyncio
    async def test_set_for_all_includes_global(self, store, mock_redis):
        mock_redis.smembers = AsyncMock(return_value={"User:1", "User:2"})

        await store.set_for_all("f", False)

        written = {c.args[0] for c in mock_redis.set.await_args_list}
        assert written == {"test:f:User:1", "test:f:User:2", f"test:f:{GLOBAL_KEY}"}

    @pytest.mark.asyncio
    async def test_delete_drops_empty_feature_from_index(self, store, mock_redis):
        await store.delete("f", "User:1")

        mock_redis.delete.assert_awaited_once_with("test:f:User:1")
        mock_redis.srem.assert_has_awaits([
            call("test:f.__contexts", "User:1"),
            call("test:__index", "f"),
        ])

    @pytest.mark.asyncio
    async def test_purge_all(self, store, mock_redis):
        mock_redis.smembers = AsyncMock(side_effect=[{"f"}, {"User:1"}])

        await store.purge()

        mock_redis.delete.assert_awaited_once_with("test:f:User:1", "test:f.__contexts")
        mock_redis.srem.assert_awaited_once_with("test:__index", "f")

    @pytest.mark.asyncio
    async def test_list_stored_sorted(self, store, mock_redis):
        mock_redis.smembers = AsyncMock(return_value={"b", "a"})
        assert await store.list_stored() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_context_keys_from_feature_set(self, store, mock_redis):
        mock_redis.smembers = AsyncMock(return_value={"User:2", "User:1"})

        assert await store.context_keys("f") == ["User:1", "User:2"]
        mock_redis.smembers.assert_awaited_once_with("test:f.__contexts")

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self, store, mock_redis):
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(StorageError, match="down"):
            await store.get("f", "User:1")

    def test_no_ttl_by_default(self, mock_redis):
        assert RedisFeatureStore(mock_redis).ttl is None
