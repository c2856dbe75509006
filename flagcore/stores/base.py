"""Feature store contract.

Every backend stores raw feature values keyed by (feature, context key) and
enforces at most one row per pair: ``insert`` is the first-write path and
fails with ``StoreConflictError`` when a row already exists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

from flagcore.context import GLOBAL_CONTEXT
from flagcore.errors import UnsupportedOperationError

GLOBAL_KEY = GLOBAL_CONTEXT.cache_key()


class FeatureStore(ABC):
    """Abstract base class for feature value storage."""

    name: str = "store"

    @abstractmethod
    async def get(self, feature: str, context_key: str) -> Tuple[bool, Any]:
        """Get the stored value.

        Returns:
            ``(found, value)``; ``value`` is ``None`` when nothing is stored.
        """
        pass

    @abstractmethod
    async def insert(self, feature: str, context_key: str, value: Any) -> None:
        """Store the first value for a (feature, context) pair.

        Raises:
            StoreConflictError: If a value is already stored for the pair.
        """
        pass

    @abstractmethod
    async def set(self, feature: str, context_key: str, value: Any) -> None:
        """Store or overwrite the value for a (feature, context) pair."""
        pass

    @abstractmethod
    async def set_for_all(self, feature: str, value: Any) -> None:
        """Overwrite every stored value of ``feature`` and its global value."""
        pass

    @abstractmethod
    async def delete(self, feature: str, context_key: str) -> None:
        """Remove the value for a (feature, context) pair."""
        pass

    @abstractmethod
    async def purge(self, features: Optional[Sequence[str]] = None) -> None:
        """Remove all values of ``features``, or of every feature when ``None``."""
        pass

    async def list_stored(self) -> List[str]:
        """Names of features with stored values.

        Raises:
            UnsupportedOperationError: If the backend cannot enumerate.
        """
        raise UnsupportedOperationError.for_store(self.name, "list_stored")

    async def context_keys(self, feature: str) -> List[str]:
        """Context keys with a stored value of ``feature``.

        Raises:
            UnsupportedOperationError: If the backend cannot enumerate.
        """
        raise UnsupportedOperationError.for_store(self.name, "context_keys")
