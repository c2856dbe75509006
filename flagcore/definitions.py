"""Feature definitions.

Provides:
- Feature definitions (resolver, expiry, prerequisites)
- Expiration checks
- The feature registry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class FeatureDefinition:
    """A named feature and how to resolve it.

    ``resolver`` is called with the normalized ``EvaluationContext``, or with
    no arguments if it takes none. A non-callable resolver is used as a
    constant value.
    """
    name: str
    resolver: Any = True
    expires_at: Optional[datetime] = None
    requires: Tuple[str, ...] = field(default_factory=tuple)
    description: str = ""

    def __post_init__(self):
        if self.expires_at is not None:
            self.expires_at = as_utc(self.expires_at)
        if isinstance(self.requires, str):
            self.requires = (self.requires,)
        else:
            self.requires = tuple(self.requires)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = as_utc(now) if now else utcnow()
        return now > self.expires_at

    def is_expiring_soon(self, days: int, now: Optional[datetime] = None) -> bool:
        """Expires within ``[now, now + days]``."""
        if self.expires_at is None:
            return False
        now = as_utc(now) if now else utcnow()
        return now <= self.expires_at <= now + timedelta(days=days)

    @property
    def is_constant(self) -> bool:
        return not callable(self.resolver)


class FeatureRegistry:
    """Maps feature names to their definitions."""

    def __init__(self, definitions: Optional[Iterable[FeatureDefinition]] = None):
        self._definitions: Dict[str, FeatureDefinition] = {}
        for definition in definitions or []:
            self.define(definition)

    def define(self, definition: FeatureDefinition) -> FeatureDefinition:
        previous = self._definitions.get(definition.name)
        self._definitions[definition.name] = definition
        if previous is not None:
            logger.info(f"Redefined feature: {definition.name}")
        else:
            logger.debug(f"Defined feature: {definition.name}")
        return definition

    def get(self, name: str) -> Optional[FeatureDefinition]:
        return self._definitions.get(name)

    def remove(self, name: str) -> bool:
        return self._definitions.pop(name, None) is not None

    def defined(self) -> List[str]:
        return list(self._definitions.keys())

    def dependencies(self, name: str) -> List[str]:
        definition = self._definitions.get(name)
        return list(definition.requires) if definition else []

    def expiring_soon(self, days: int, now: Optional[datetime] = None) -> List[str]:
        return [
            name for name, definition in self._definitions.items()
            if definition.is_expiring_soon(days, now)
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
