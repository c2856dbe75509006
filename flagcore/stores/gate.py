"""Read-only store backed by an authorization policy.

Answers "is this feature active for this context" by asking an authorizer
callable, so existing access policies can act as feature flags. Nothing can
be written through it.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Optional, Sequence, Tuple

from flagcore.errors import UnsupportedOperationError
from flagcore.stores.base import FeatureStore

Authorizer = Callable[[str, str], Any]


class GateFeatureStore(FeatureStore):
    """Policy gate: ``authorizer(feature, context_key)`` decides, every time."""

    def __init__(self, authorizer: Authorizer, name: str = "gate"):
        self._authorizer = authorizer
        self.name = name

    async def get(self, feature: str, context_key: str) -> Tuple[bool, Any]:
        allowed = self._authorizer(feature, context_key)
        if inspect.isawaitable(allowed):
            allowed = await allowed
        return True, bool(allowed)

    async def insert(self, feature: str, context_key: str, value: Any) -> None:
        raise UnsupportedOperationError.for_store(self.name, "insert")

    async def set(self, feature: str, context_key: str, value: Any) -> None:
        raise UnsupportedOperationError.for_store(self.name, "set")

    async def set_for_all(self, feature: str, value: Any) -> None:
        raise UnsupportedOperationError.for_store(self.name, "set_for_all")

    async def delete(self, feature: str, context_key: str) -> None:
        raise UnsupportedOperationError.for_store(self.name, "delete")

    async def purge(self, features: Optional[Sequence[str]] = None) -> None:
        raise UnsupportedOperationError.for_store(self.name, "purge")
