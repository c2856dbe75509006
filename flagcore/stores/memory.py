"""In-memory feature store."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from flagcore.errors import StoreConflictError
from flagcore.stores.base import GLOBAL_KEY, FeatureStore


class InMemoryFeatureStore(FeatureStore):
    """Process-local storage, for tests and single-process deployments."""

    name = "memory"

    def __init__(self):
        # {feature: {context_key: value}}
        self._values: Dict[str, Dict[str, Any]] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get(self, feature: str, context_key: str) -> Tuple[bool, Any]:
        async with self._get_lock():
            values = self._values.get(feature, {})
            if context_key in values:
                return True, copy.deepcopy(values[context_key])
            return False, None

    async def insert(self, feature: str, context_key: str, value: Any) -> None:
        async with self._get_lock():
            values = self._values.setdefault(feature, {})
            if context_key in values:
                raise StoreConflictError(feature, context_key)
            values[context_key] = copy.deepcopy(value)

    async def set(self, feature: str, context_key: str, value: Any) -> None:
        async with self._get_lock():
            self._values.setdefault(feature, {})[context_key] = copy.deepcopy(value)

    async def set_for_all(self, feature: str, value: Any) -> None:
        async with self._get_lock():
            values = self._values.setdefault(feature, {})
            for key in list(values):
                values[key] = copy.deepcopy(value)
            values[GLOBAL_KEY] = copy.deepcopy(value)

    async def delete(self, feature: str, context_key: str) -> None:
        async with self._get_lock():
            values = self._values.get(feature)
            if values is not None:
                values.pop(context_key, None)
                if not values:
                    del self._values[feature]

    async def purge(self, features: Optional[Sequence[str]] = None) -> None:
        async with self._get_lock():
            if features is None:
                self._values.clear()
                return
            for feature in features:
                self._values.pop(feature, None)

    async def list_stored(self) -> List[str]:
        async with self._get_lock():
            return [name for name, values in self._values.items() if values]

    async def context_keys(self, feature: str) -> List[str]:
        async with self._get_lock():
            return list(self._values.get(feature, {}))

    async def row_count(self, feature: Optional[str] = None) -> int:
        async with self._get_lock():
            if feature is not None:
                return len(self._values.get(feature, {}))
            return sum(len(values) for values in self._values.values())
