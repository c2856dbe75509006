"""Tri-state feature values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FeatureState(Enum):
    """Outcome of evaluating a feature."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDEFINED = "undefined"  # Never defined and never stored


@dataclass(frozen=True)
class FeatureValue:
    """Result of a feature resolution.

    ``Undefined`` is kept apart from ``Inactive`` so callers can tell a flag
    nobody defined from one that was explicitly switched off.
    """
    state: FeatureState
    payload: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> "FeatureValue":
        """Map a raw stored/resolved value onto a state.

        ``False`` is Inactive, ``None`` is Undefined, anything else is Active
        with the value as payload.
        """
        if isinstance(raw, FeatureValue):
            return raw
        if raw is False:
            return INACTIVE
        if raw is None:
            return UNDEFINED
        return cls(FeatureState.ACTIVE, raw)

    @classmethod
    def active(cls, payload: Any = True) -> "FeatureValue":
        return cls(FeatureState.ACTIVE, payload)

    @property
    def is_active(self) -> bool:
        return self.state == FeatureState.ACTIVE

    @property
    def is_inactive(self) -> bool:
        return self.state == FeatureState.INACTIVE

    @property
    def is_undefined(self) -> bool:
        return self.state == FeatureState.UNDEFINED

    @property
    def is_active_permissive(self) -> bool:
        """Anything that was not explicitly switched off."""
        return self.state != FeatureState.INACTIVE

    def to_value(self) -> Any:
        if self.state == FeatureState.ACTIVE:
            return True if self.payload is None else self.payload
        if self.state == FeatureState.INACTIVE:
            return False
        return None

    def __bool__(self) -> bool:
        return self.is_active


INACTIVE = FeatureValue(FeatureState.INACTIVE)
UNDEFINED = FeatureValue(FeatureState.UNDEFINED)
