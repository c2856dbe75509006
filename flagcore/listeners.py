"""Feature event listeners."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Optional

from flagcore.definitions import utcnow

logger = logging.getLogger(__name__)


class FeatureEventType(Enum):
    """Kinds of feature events."""
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"
    UNKNOWN_FEATURE = "unknown_feature"
    CIRCULAR_DEPENDENCY = "circular_dependency"


@dataclass
class FeatureEvent:
    """Something observable happened to a feature."""
    type: FeatureEventType
    feature: str
    context_key: Optional[str] = None
    value: Any = None
    occurred_at: datetime = field(default_factory=utcnow)


class FeatureListener(ABC):
    """Listener for feature events."""

    @abstractmethod
    def on_feature_event(self, event: FeatureEvent) -> None:
        """Called for every dispatched event."""
        pass


class LoggingFeatureListener(FeatureListener):
    """Listener that logs feature events."""

    def on_feature_event(self, event: FeatureEvent) -> None:
        target = event.context_key or "all contexts"
        if event.type == FeatureEventType.CIRCULAR_DEPENDENCY:
            logger.warning(f"Circular dependency on '{event.feature}' for {target}")
        elif event.type == FeatureEventType.UNKNOWN_FEATURE:
            logger.info(f"Unknown feature '{event.feature}' resolved for {target}")
        else:
            logger.info(f"Feature '{event.feature}' {event.type.value} for {target}")


class EventDispatcher:
    """Fans events out to listeners; a failing listener never breaks resolution."""

    def __init__(self, listeners: Optional[Iterable[FeatureListener]] = None, enabled: bool = True):
        self._listeners: List[FeatureListener] = list(listeners or [])
        self.enabled = enabled

    def add_listener(self, listener: FeatureListener) -> None:
        self._listeners.append(listener)

    @property
    def listeners(self) -> List[FeatureListener]:
        return list(self._listeners)

    def dispatch(self, event: FeatureEvent) -> None:
        if not self.enabled:
            return
        for listener in self._listeners:
            try:
                listener.on_feature_event(event)
            except Exception as e:
                logger.error(f"Listener error: {e}")
