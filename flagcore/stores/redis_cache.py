"""Redis feature store (redis.asyncio).

Key layout, with the default ``features`` prefix:

- ``features:<feature>:<context key>``: JSON encoded value
- ``features:<feature>.__contexts``: set of context keys stored for a feature
- ``features:__index``: set of feature names with stored values
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence, Tuple

from redis.exceptions import RedisError

from flagcore.errors import StorageError, StoreConflictError
from flagcore.stores.base import GLOBAL_KEY, FeatureStore

logger = logging.getLogger(__name__)


class RedisFeatureStore(FeatureStore):
    """Feature values in Redis; ``SET NX`` guards the first write."""

    name = "redis"

    def __init__(self, client: Any, prefix: str = "features", ttl: Optional[int] = None):
        """
        Initialize the Redis store.

        Args:
            client: A ``redis.asyncio.Redis`` client created with ``decode_responses=True``
            prefix: Key namespace
            ttl: Expiry in seconds for value keys; ``None`` keeps them forever
        """
        self._client = client
        self.prefix = prefix
        self.ttl = ttl

    def _value_key(self, feature: str, context_key: str) -> str:
        return f"{self.prefix}:{feature}:{context_key}"

    def _contexts_key(self, feature: str) -> str:
        return f"{self.prefix}:{feature}.__contexts"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:__index"

    async def _track(self, feature: str, context_key: str) -> None:
        await self._client.sadd(self._contexts_key(feature), context_key)
        await self._client.sadd(self._index_key, feature)

    async def get(self, feature: str, context_key: str) -> Tuple[bool, Any]:
        try:
            raw = await self._client.get(self._value_key(feature, context_key))
        except RedisError as e:
            raise StorageError(f"Redis get failed for {feature}: {e}") from e
        if raw is None:
            return False, None
        return True, json.loads(raw)

    async def insert(self, feature: str, context_key: str, value: Any) -> None:
        try:
            created = await self._client.set(
                self._value_key(feature, context_key),
                json.dumps(value),
                nx=True,
                ex=self.ttl,
            )
            if not created:
                raise StoreConflictError(feature, context_key)
            await self._track(feature, context_key)
        except RedisError as e:
            raise StorageError(f"Redis insert failed for {feature}: {e}") from e

    async def set(self, feature: str, context_key: str, value: Any) -> None:
        try:
            await self._client.set(self._value_key(feature, context_key), json.dumps(value), ex=self.ttl)
            await self._track(feature, context_key)
        except RedisError as e:
            raise StorageError(f"Redis set failed for {feature}: {e}") from e

    async def set_for_all(self, feature: str, value: Any) -> None:
        try:
            context_keys = set(await self._client.smembers(self._contexts_key(feature)))
        except RedisError as e:
            raise StorageError(f"Redis read failed for {feature}: {e}") from e
        context_keys.add(GLOBAL_KEY)
        for context_key in sorted(context_keys):
            await self.set(feature, context_key, value)

    async def delete(self, feature: str, context_key: str) -> None:
        try:
            await self._client.delete(self._value_key(feature, context_key))
            await self._client.srem(self._contexts_key(feature), context_key)
            if not await self._client.scard(self._contexts_key(feature)):
                await self._client.srem(self._index_key, feature)
        except RedisError as e:
            raise StorageError(f"Redis delete failed for {feature}: {e}") from e

    async def _purge_feature(self, feature: str) -> None:
        context_keys = await self._client.smembers(self._contexts_key(feature))
        keys = [self._value_key(feature, key) for key in context_keys]
        keys.append(self._contexts_key(feature))
        await self._client.delete(*keys)
        await self._client.srem(self._index_key, feature)

    async def purge(self, features: Optional[Sequence[str]] = None) -> None:
        try:
            if features is None:
                features = list(await self._client.smembers(self._index_key))
            for feature in features:
                await self._purge_feature(feature)
        except RedisError as e:
            raise StorageError(f"Redis purge failed: {e}") from e
        logger.debug(f"Purged {len(features)} features from {self.prefix}")

    async def list_stored(self) -> List[str]:
        try:
            return sorted(await self._client.smembers(self._index_key))
        except RedisError as e:
            raise StorageError(f"Redis read failed: {e}") from e

    async def context_keys(self, feature: str) -> List[str]:
        try:
            return sorted(await self._client.smembers(self._contexts_key(feature)))
        except RedisError as e:
            raise StorageError(f"Redis read failed for {feature}: {e}") from e
