"""Feature manager.

Provides high-level feature management:
- Named stores, each served by its own engine and resolution cache
- One shared registry, group source and listener set
- The ambient evaluation context
- Unit-of-work boundaries that flush cached resolutions
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Union

from flagcore.config import FeatureSettings, get_settings
from flagcore.context import ContextManager, ContextResolver
from flagcore.definitions import FeatureDefinition, FeatureRegistry
from flagcore.engine import FeatureEngine, register_definition
from flagcore.groups import GroupMembershipSource, InMemoryGroupMembership
from flagcore.listeners import EventDispatcher, FeatureListener
from flagcore.stores import FeatureStore, create_store
from flagcore.strategies import VariantStrategy
from flagcore.structured_logging import clear_request_context, set_request_context
from flagcore.values import FeatureValue

logger = logging.getLogger(__name__)


class FeatureManager:
    """Entry point that wires stores, definitions and context together."""

    def __init__(
        self,
        settings: Optional[FeatureSettings] = None,
        stores: Optional[Mapping[str, FeatureStore]] = None,
        registry: Optional[FeatureRegistry] = None,
        groups: Optional[GroupMembershipSource] = None,
        listeners: Optional[Iterable[FeatureListener]] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry if registry is not None else FeatureRegistry()
        self.groups = groups if groups is not None else InMemoryGroupMembership()
        self.dispatcher = EventDispatcher(listeners, enabled=self.settings.EVENTS_ENABLED)
        self.context_resolver = ContextResolver()
        self.context = ContextManager(on_change=self.flush_cache)
        self._stores: Dict[str, FeatureStore] = dict(stores or {})
        self._engines: Dict[str, FeatureEngine] = {}

    def engine(self, name: Optional[str] = None, **options: Any) -> FeatureEngine:
        """Engine for store ``name`` (default ``DEFAULT_STORE``), built on first use.

        ``options`` are passed to ``create_store`` when the store was not
        supplied to the manager.
        """
        name = name or self.settings.DEFAULT_STORE
        engine = self._engines.get(name)
        if engine is None:
            store = self._stores.get(name)
            if store is None:
                store = create_store(name, self.settings, **options)
                self._stores[name] = store
            engine = FeatureEngine(
                store,
                registry=self.registry,
                groups=self.groups,
                dispatcher=self.dispatcher,
                context_manager=self.context,
                context_resolver=self.context_resolver,
                settings=self.settings,
            )
            self._engines[name] = engine
            logger.debug(f"Created feature engine for store '{name}'")
        return engine

    def add_listener(self, listener: FeatureListener) -> None:
        self.dispatcher.add_listener(listener)

    def map_key(self, target: Union[type, str], attribute: str) -> None:
        """Identify instances of ``target`` by ``attribute`` instead of ``id``."""
        self.context_resolver.map_key(target, attribute)

    # Definitions live in the shared registry

    def define(self, name: str, resolver: Any = True, **kwargs: Any) -> FeatureDefinition:
        definition = register_definition(
            self.registry, name, resolver, warn_days=self.settings.EXPIRY_WARN_DAYS, **kwargs
        )
        self._forget_feature(name)
        return definition

    def define_variant(self, name: str, weights: Mapping[str, int], **kwargs: Any) -> FeatureDefinition:
        return self.define(name, VariantStrategy(name, weights), **kwargs)

    def _forget_feature(self, name: str) -> None:
        for engine in self._engines.values():
            engine.cache.forget_feature(name)

    async def resolve(self, feature: str, context: Any = None) -> FeatureValue:
        return await self.engine().resolve(feature, context)

    async def is_active(self, feature: str, context: Any = None) -> bool:
        return await self.engine().is_active(feature, context)

    async def value(self, feature: str, context: Any = None) -> Any:
        return await self.engine().value(feature, context)

    def flush_cache(self) -> None:
        for engine in self._engines.values():
            engine.flush_cache()

    @asynccontextmanager
    async def unit_of_work(self, request_id: Optional[str] = None) -> AsyncIterator["FeatureManager"]:
        """Scope one request or job; cached resolutions never outlive it."""
        set_request_context(request_id)
        try:
            yield self
        finally:
            self.flush_cache()
            clear_request_context()


_manager: Optional[FeatureManager] = None


def get_feature_manager() -> FeatureManager:
    """Get the process-wide feature manager."""
    global _manager
    if _manager is None:
        _manager = FeatureManager()
    return _manager


def reset_feature_manager() -> None:
    global _manager
    _manager = None
