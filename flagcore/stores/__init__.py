"""Feature value storage backends.

Provides:
- The async store contract
- In-memory, SQLite and Redis backends
- A read-only policy gate
- ``create_store`` to build a backend by name
"""

import logging
from typing import Any, Optional

from flagcore.config import FeatureSettings, get_settings
from flagcore.errors import ConfigurationError, UnsupportedStoreError
from flagcore.stores.base import GLOBAL_KEY, FeatureStore
from flagcore.stores.database import DatabaseFeatureStore
from flagcore.stores.gate import GateFeatureStore
from flagcore.stores.memory import InMemoryFeatureStore
from flagcore.stores.redis_cache import RedisFeatureStore

logger = logging.getLogger(__name__)

STORE_KINDS = ("memory", "database", "redis", "gate")


def create_store(
    kind: Optional[str] = None,
    settings: Optional[FeatureSettings] = None,
    **options: Any,
) -> FeatureStore:
    """Build a store backend.

    Args:
        kind: One of ``memory``, ``database``, ``redis`` or ``gate``;
            defaults to ``DEFAULT_STORE``
        settings: Settings to read paths and URLs from
        **options: Backend overrides (``path``, ``client``, ``prefix``,
            ``ttl``, ``authorizer``)

    Raises:
        UnsupportedStoreError: If ``kind`` is not a known backend.
    """
    settings = settings or get_settings()
    kind = (kind or settings.DEFAULT_STORE).strip().lower()

    if kind == "memory":
        store: FeatureStore = InMemoryFeatureStore()
    elif kind == "database":
        store = DatabaseFeatureStore(options.get("path", settings.DATABASE_PATH))
    elif kind == "redis":
        client = options.get("client")
        if client is None:
            import redis.asyncio as redis

            client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        store = RedisFeatureStore(
            client,
            prefix=options.get("prefix", settings.CACHE_PREFIX),
            ttl=options.get("ttl", settings.CACHE_TTL),
        )
    elif kind == "gate":
        authorizer = options.get("authorizer")
        if authorizer is None:
            raise ConfigurationError("The gate store requires an 'authorizer' callable")
        store = GateFeatureStore(authorizer)
    else:
        raise UnsupportedStoreError(
            f"Unsupported store '{kind}', expected one of: {', '.join(STORE_KINDS)}"
        )

    logger.info(f"Using {kind} feature store")
    return store


__all__ = [
    "GLOBAL_KEY",
    "STORE_KINDS",
    "FeatureStore",
    "InMemoryFeatureStore",
    "DatabaseFeatureStore",
    "RedisFeatureStore",
    "GateFeatureStore",
    "create_store",
]
