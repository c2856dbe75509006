"""Resolver strategies.

Reusable resolvers for feature definitions:
- Boolean on/off
- Percentage rollout (consistent hashing)
- Scheduled activation window
- Fixed time window
- Arbitrary condition
- Weighted variant assignment
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from flagcore.bucketing import calculate_variant, in_rollout, validate_percentage, validate_weights
from flagcore.definitions import as_utc, utcnow


class Strategy(ABC):
    """Abstract base class for resolver strategies."""

    @abstractmethod
    def resolve(self, context: Any) -> Any:
        """Resolve the feature value for ``context``."""
        pass

    def __call__(self, context: Any) -> Any:
        return self.resolve(context)


class BooleanStrategy(Strategy):
    """Same answer for every context."""

    def __init__(self, value: bool = True):
        self.value = value

    def resolve(self, context: Any) -> Any:
        return self.value


class PercentageStrategy(Strategy):
    """Activate a deterministic share of contexts.

    ``seed`` is hashed together with the context identity; using the feature
    name as seed keeps rollouts of different features independent.
    """

    def __init__(self, percentage: float, seed: str = ""):
        self.percentage = validate_percentage(percentage)
        self.seed = seed

    def resolve(self, context: Any) -> Any:
        return in_rollout(self.seed, context, self.percentage)


class ScheduledStrategy(Strategy):
    """Active from ``activate_at`` until ``deactivate_at``; either bound may be open."""

    def __init__(
        self,
        activate_at: Optional[datetime] = None,
        deactivate_at: Optional[datetime] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.activate_at = as_utc(activate_at) if activate_at else None
        self.deactivate_at = as_utc(deactivate_at) if deactivate_at else None
        self._clock = clock

    def resolve(self, context: Any) -> Any:
        now = as_utc(self._clock())
        if self.activate_at and now < self.activate_at:
            return False
        return not (self.deactivate_at and now > self.deactivate_at)


class TimeBasedStrategy(Strategy):
    """Active only between ``start`` and ``end`` (inclusive)."""

    def __init__(
        self,
        start: datetime,
        end: datetime,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.start = as_utc(start)
        self.end = as_utc(end)
        self._clock = clock

    def resolve(self, context: Any) -> Any:
        return self.start <= as_utc(self._clock()) <= self.end


class ConditionalStrategy(Strategy):
    """Delegate to a predicate over the context."""

    def __init__(self, condition: Callable[[Any], Any]):
        self.condition = condition

    def resolve(self, context: Any) -> Any:
        return self.condition(context)


class VariantStrategy(Strategy):
    """Assign one variant of a weighted table per context."""

    def __init__(self, feature: str, weights: Mapping[str, int]):
        self.feature = feature
        self.weights: Dict[str, int] = validate_weights(weights)

    def resolve(self, context: Any) -> Any:
        return calculate_variant(self.feature, context, self.weights)
