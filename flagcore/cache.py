"""Per-unit-of-work resolution cache.

Memoizes resolved values by (feature, context key). Entries never expire on
their own: the owner flushes the cache when a request or job finishes, or
when the ambient context changes.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from flagcore.values import FeatureValue


class ResolutionCache:
    """Map of (feature, context key) to resolved ``FeatureValue``."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, FeatureValue]] = {}

    def get(self, feature: str, context_key: str) -> Optional[FeatureValue]:
        return self._entries.get(feature, {}).get(context_key)

    def put(self, feature: str, context_key: str, value: FeatureValue) -> None:
        self._entries.setdefault(feature, {})[context_key] = value

    def forget(self, feature: str, context_key: str) -> None:
        entries = self._entries.get(feature)
        if entries is None:
            return
        entries.pop(context_key, None)
        if not entries:
            del self._entries[feature]

    def forget_feature(self, feature: str) -> None:
        self._entries.pop(feature, None)

    def flush(self) -> None:
        self._entries.clear()

    def __contains__(self, item: Tuple[str, str]) -> bool:
        feature, context_key = item
        return context_key in self._entries.get(feature, {})

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
