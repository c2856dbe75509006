"""Feature resolution engine.

Resolution pipeline for ``resolve(feature, context)``:

1. Normalize the context (explicit, or the ambient one)
2. Expired definitions short-circuit to Inactive
3. Required features are resolved through the same pipeline, guarded against cycles
4. Resolution cache
5. Store lookup, then the most specific matching scope row for scoped
   contexts; on a miss, the definition's resolver value is persisted
6. Group fallback when the direct value is Inactive or Undefined
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from flagcore.cache import ResolutionCache
from flagcore.config import FeatureSettings, get_settings
from flagcore.context import (
    ContextManager,
    ContextResolver,
    EvaluationContext,
    FeatureScope,
    default_resolver,
)
from flagcore.definitions import FeatureDefinition, FeatureRegistry, utcnow
from flagcore.errors import (
    ConfigurationError,
    MissingContextError,
    StorageError,
    StoreConflictError,
    UnsupportedOperationError,
)
from flagcore.groups import GroupMembershipSource
from flagcore.listeners import EventDispatcher, FeatureEvent, FeatureEventType
from flagcore.stores.base import GLOBAL_KEY, FeatureStore
from flagcore.strategies import VariantStrategy
from flagcore.structured_logging import feature_log_context
from flagcore.values import INACTIVE, UNDEFINED, FeatureValue

logger = logging.getLogger(__name__)

Guard = FrozenSet[str]


def _accepts_context(resolver: Any) -> bool:
    try:
        parameters = inspect.signature(resolver).parameters.values()
    except (TypeError, ValueError):
        return True
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in parameters
    )


def register_definition(
    registry: FeatureRegistry,
    name: str,
    resolver: Any = True,
    *,
    expires_at: Optional[datetime] = None,
    expires_after: Optional[timedelta] = None,
    requires: Iterable[str] = (),
    description: str = "",
    warn_days: int = 7,
) -> FeatureDefinition:
    """Build a definition, register it and warn about imminent expiry."""
    if expires_at is not None and expires_after is not None:
        raise ConfigurationError(f"Feature '{name}' takes expires_at or expires_after, not both")
    if expires_after is not None:
        expires_at = utcnow() + expires_after

    definition = registry.define(
        FeatureDefinition(
            name=name,
            resolver=resolver,
            expires_at=expires_at,
            requires=requires,
            description=description,
        )
    )

    if definition.is_expired():
        logger.warning(f"Feature '{name}' is defined already expired ({definition.expires_at.isoformat()})")
    elif definition.is_expiring_soon(warn_days):
        logger.warning(
            f"Feature '{name}' expires within {warn_days} days ({definition.expires_at.isoformat()})"
        )
    return definition


class FeatureEngine:
    """Resolves, stores and assigns features over a single store."""

    def __init__(
        self,
        store: FeatureStore,
        registry: Optional[FeatureRegistry] = None,
        groups: Optional[GroupMembershipSource] = None,
        cache: Optional[ResolutionCache] = None,
        dispatcher: Optional[EventDispatcher] = None,
        context_manager: Optional[ContextManager] = None,
        context_resolver: Optional[ContextResolver] = None,
        settings: Optional[FeatureSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.registry = registry if registry is not None else FeatureRegistry()
        self.groups = groups
        self.cache = cache if cache is not None else ResolutionCache()
        self.dispatcher = dispatcher or EventDispatcher(enabled=self.settings.EVENTS_ENABLED)
        self.context_manager = context_manager
        self.context_resolver = context_resolver or default_resolver

    # Context

    def _context(self, context: Any) -> EvaluationContext:
        if context is None and self.context_manager is not None:
            context = self.context_manager.current()
        if context is None:
            raise MissingContextError()
        return self.context_resolver.resolve(context)

    def _emit(
        self,
        event_type: FeatureEventType,
        feature: str,
        context_key: Optional[str] = None,
        value: Any = None,
    ) -> None:
        self.dispatcher.dispatch(FeatureEvent(event_type, feature, context_key, value))

    # Resolution

    async def resolve(self, feature: str, context: Any = None) -> FeatureValue:
        """Resolve ``feature`` for ``context`` (or the ambient context).

        Raises:
            MissingContextError: If no context is given and none is ambient.
            UnserializableContextError: If the context has no stable identity.
            StorageError: If the first write conflicts twice in a row.
        """
        ctx = self._context(context)
        with feature_log_context(feature, ctx.cache_key()):
            return await self._resolve(feature, ctx, frozenset())

    async def _resolve(self, feature: str, ctx: EvaluationContext, guard: Guard) -> FeatureValue:
        definition = self.registry.get(feature)
        if definition is not None and definition.is_expired():
            return INACTIVE

        if definition is not None and definition.requires:
            frame = f"{feature}|{ctx.cache_key()}"
            if frame in guard:
                logger.warning(f"Circular dependency detected on '{feature}' for {ctx.cache_key()}")
                self._emit(FeatureEventType.CIRCULAR_DEPENDENCY, feature, ctx.cache_key())
                return INACTIVE
            if not await self._dependencies_met(definition, ctx, guard | {frame}):
                return INACTIVE

        return await self._lookup(feature, ctx, definition)

    async def _dependencies_met(
        self,
        definition: FeatureDefinition,
        ctx: EvaluationContext,
        guard: Guard,
    ) -> bool:
        for required in definition.requires:
            value = await self._resolve(required, ctx, guard)
            if not value.is_active:
                logger.debug(f"'{definition.name}' blocked by '{required}' ({value.state.value})")
                return False
        return True

    async def _lookup(
        self,
        feature: str,
        ctx: EvaluationContext,
        definition: Optional[FeatureDefinition],
    ) -> FeatureValue:
        key = ctx.cache_key()
        cached = self.cache.get(feature, key)
        if cached is not None:
            return cached

        value = await self._read_or_create(feature, ctx, definition)
        if not value.is_active:
            value = await self._check_groups(feature, ctx) or value

        self.cache.put(feature, key, value)
        return value

    async def _read_or_create(
        self,
        feature: str,
        ctx: EvaluationContext,
        definition: Optional[FeatureDefinition],
    ) -> FeatureValue:
        key = ctx.cache_key()
        for attempt in range(2):
            found, raw = await self.store.get(feature, key)
            if found:
                return FeatureValue.from_raw(raw)

            if ctx.scope is not None:
                scoped = await self._scoped_value(feature, ctx.scope)
                if scoped is not None:
                    return scoped

            if definition is None:
                logger.debug(f"Unknown feature '{feature}' for {key}")
                self._emit(FeatureEventType.UNKNOWN_FEATURE, feature, key)
                return UNDEFINED

            raw = await self._evaluate_resolver(definition, ctx)
            if raw is None:
                return UNDEFINED

            try:
                await self.store.insert(feature, key, raw)
            except StoreConflictError as e:
                if attempt:
                    raise StorageError(
                        f"First write of '{feature}' for {key} conflicted twice"
                    ) from e
                logger.info(f"Concurrent first write of '{feature}' for {key}, re-reading")
                continue
            return FeatureValue.from_raw(raw)

        # Unreachable: the second pass either returns or raises
        raise StorageError(f"Could not resolve '{feature}' for {key}")

    async def _scoped_value(self, feature: str, scope: FeatureScope) -> Optional[FeatureValue]:
        try:
            keys = await self.store.context_keys(feature)
        except UnsupportedOperationError:
            return None

        candidates = []
        for key in keys:
            stored_scope = FeatureScope.from_storage_key(key)
            if stored_scope is not None and scope.matches(stored_scope):
                candidates.append((stored_scope.specificity(), key))
        if not candidates:
            return None

        # Most defined constraints win
        _, key = max(candidates)
        found, raw = await self.store.get(feature, key)
        if not found:
            return None
        logger.debug(f"'{feature}' resolved through scope row {key}")
        return FeatureValue.from_raw(raw)

    async def _evaluate_resolver(self, definition: FeatureDefinition, ctx: EvaluationContext) -> Any:
        resolver = definition.resolver
        if callable(resolver):
            value = resolver(ctx) if _accepts_context(resolver) else resolver()
        else:
            value = resolver

        if inspect.isawaitable(value):
            value = await value
        # Lazy values are settled before caching
        if callable(value):
            value = value()
            if inspect.isawaitable(value):
                value = await value
        if isinstance(value, FeatureValue):
            value = value.to_value()
        return value

    async def _check_groups(self, feature: str, ctx: EvaluationContext) -> Optional[FeatureValue]:
        if self.groups is None:
            return None

        for group in await self.groups.groups_for(ctx.serialize()):
            if feature not in await self.groups.features_in(group):
                continue
            found, raw = await self.store.get(feature, GLOBAL_KEY)
            if not found:
                continue
            value = FeatureValue.from_raw(raw)
            if value.is_active:
                logger.debug(f"'{feature}' active for {ctx.cache_key()} through group '{group}'")
                return value
        return None

    async def is_active(self, feature: str, context: Any = None) -> bool:
        return (await self.resolve(feature, context)).is_active

    async def is_inactive(self, feature: str, context: Any = None) -> bool:
        return not (await self.resolve(feature, context)).is_active

    async def value(self, feature: str, context: Any = None) -> Any:
        """Plain value: the payload when active, ``False`` when inactive, ``None`` when undefined."""
        return (await self.resolve(feature, context)).to_value()

    async def values(self, features: Iterable[str], context: Any = None) -> Dict[str, Any]:
        return {feature: await self.value(feature, context) for feature in features}

    async def all_active(self, features: Iterable[str], context: Any = None) -> bool:
        for feature in features:
            if not await self.is_active(feature, context):
                return False
        return True

    async def some_active(self, features: Iterable[str], context: Any = None) -> bool:
        for feature in features:
            if await self.is_active(feature, context):
                return True
        return False

    async def dependencies_met(self, feature: str, context: Any = None) -> bool:
        """Whether every feature ``feature`` requires is active for ``context``."""
        definition = self.registry.get(feature)
        if definition is None or not definition.requires:
            return True
        ctx = self._context(context)
        frame = f"{feature}|{ctx.cache_key()}"
        return await self._dependencies_met(definition, ctx, frozenset({frame}))

    # Writes

    async def set(self, feature: str, context: Any, value: Any) -> None:
        ctx = self._context(context)
        key = ctx.cache_key()
        await self.store.set(feature, key, value)

        resolved = FeatureValue.from_raw(value)
        if ctx.scope is not None:
            # Other contexts under the scope may have cached the old value
            await self.store.set(feature, ctx.scope.storage_key(), value)
            self.cache.forget_feature(feature)
        else:
            self.cache.forget(feature, key)
        if resolved.is_active:
            self.cache.put(feature, key, resolved)

        event_type = FeatureEventType.ACTIVATED if resolved.is_active else FeatureEventType.DEACTIVATED
        self._emit(event_type, feature, key, value)

    async def activate(self, feature: str, context: Any = None, value: Any = True) -> None:
        await self.set(feature, context, value)

    async def deactivate(self, feature: str, context: Any = None) -> None:
        await self.set(feature, context, False)

    async def set_for_all_contexts(self, feature: str, value: Any) -> None:
        await self.store.set_for_all(feature, value)
        self.cache.forget_feature(feature)

        resolved = FeatureValue.from_raw(value)
        event_type = FeatureEventType.ACTIVATED if resolved.is_active else FeatureEventType.DEACTIVATED
        self._emit(event_type, feature, None, value)

    async def activate_for_everyone(self, feature: str, value: Any = True) -> None:
        await self.set_for_all_contexts(feature, value)

    async def deactivate_for_everyone(self, feature: str) -> None:
        await self.set_for_all_contexts(feature, False)

    async def delete(self, feature: str, context: Any = None) -> None:
        ctx = self._context(context)
        await self.store.delete(feature, ctx.cache_key())
        if ctx.scope is not None:
            await self.store.delete(feature, ctx.scope.storage_key())
            self.cache.forget_feature(feature)
        else:
            self.cache.forget(feature, ctx.cache_key())

    async def purge(self, features: Optional[Iterable[str]] = None) -> None:
        if isinstance(features, str):
            features = [features]
        elif features is not None:
            features = list(features)
        await self.store.purge(features)
        if features is None:
            self.cache.flush()
            return
        for feature in features:
            self.cache.forget_feature(feature)

    async def stored(self) -> List[str]:
        """Features with stored values.

        Raises:
            UnsupportedOperationError: If the store cannot enumerate.
        """
        return await self.store.list_stored()

    def flush_cache(self) -> None:
        self.cache.flush()

    # Definitions

    def define(
        self,
        name: str,
        resolver: Any = True,
        *,
        expires_at: Optional[datetime] = None,
        expires_after: Optional[timedelta] = None,
        requires: Iterable[str] = (),
        description: str = "",
    ) -> FeatureDefinition:
        """Define or redefine a feature.

        Args:
            name: Feature name
            resolver: Callable taking the evaluation context, or a constant value
            expires_at: Moment after which the feature resolves Inactive
            expires_after: Alternative to ``expires_at``, relative to now
            requires: Features that must be active first
            description: Free text
        """
        definition = register_definition(
            self.registry,
            name,
            resolver,
            expires_at=expires_at,
            expires_after=expires_after,
            requires=requires,
            description=description,
            warn_days=self.settings.EXPIRY_WARN_DAYS,
        )
        self.cache.forget_feature(name)
        return definition

    def define_variant(
        self,
        name: str,
        weights: Mapping[str, int],
        *,
        expires_at: Optional[datetime] = None,
        requires: Iterable[str] = (),
        description: str = "",
    ) -> FeatureDefinition:
        """Define an A/B feature whose value is one of ``weights``' variants.

        Raises:
            InvalidVariantWeightsError: If the table is empty or does not sum to 100.
        """
        return self.define(
            name,
            VariantStrategy(name, weights),
            expires_at=expires_at,
            requires=requires,
            description=description,
        )

    async def resolve_variant(self, name: str, context: Any = None) -> Optional[str]:
        """Variant assigned to ``context``; a stored assignment always wins.

        An active value that is not a variant name (e.g. after a plain
        ``activate``) carries no assignment, so one is bucketed and stored.
        """
        ctx = self._context(context)
        value = await self.resolve(name, ctx)
        if not value.is_active:
            return None
        if isinstance(value.payload, str):
            return value.payload

        definition = self.registry.get(name)
        if definition is None or not isinstance(definition.resolver, VariantStrategy):
            return None
        variant = definition.resolver.resolve(ctx)
        key = ctx.cache_key()
        await self.store.set(name, key, variant)
        self.cache.put(name, key, FeatureValue.active(variant))
        return variant

    def variants(self, name: str) -> Dict[str, int]:
        """Weight table of a variant feature; empty for other features."""
        definition = self.registry.get(name)
        if definition is None or not isinstance(definition.resolver, VariantStrategy):
            return {}
        return dict(definition.resolver.weights)

    def variant_names(self, name: str) -> List[str]:
        return list(self.variants(name).keys())

    def defined(self) -> List[str]:
        return self.registry.defined()

    # Expiration

    def is_expired(self, name: str) -> bool:
        definition = self.registry.get(name)
        return definition.is_expired() if definition else False

    def expires_at(self, name: str) -> Optional[datetime]:
        definition = self.registry.get(name)
        return definition.expires_at if definition else None

    def is_expiring_soon(self, name: str, days: Optional[int] = None) -> bool:
        definition = self.registry.get(name)
        if definition is None:
            return False
        return definition.is_expiring_soon(self.settings.EXPIRY_WARN_DAYS if days is None else days)

    def expiring_soon(self, days: Optional[int] = None) -> List[str]:
        return self.registry.expiring_soon(self.settings.EXPIRY_WARN_DAYS if days is None else days)

    # Groups

    def _require_groups(self) -> GroupMembershipSource:
        if self.groups is None:
            raise ConfigurationError("No group membership source is configured")
        return self.groups

    async def activate_group(self, name: str, value: Any = True) -> None:
        """Activate every feature of group ``name`` for the group's members."""
        features = await self._require_groups().features_in(name)
        for feature in features:
            await self.store.set(feature, GLOBAL_KEY, value)
            self.cache.forget_feature(feature)
        logger.info(f"Activated group '{name}' ({len(features)} features)")

    async def deactivate_group(self, name: str) -> None:
        features = await self._require_groups().features_in(name)
        for feature in features:
            await self.store.set(feature, GLOBAL_KEY, False)
            self.cache.forget_feature(feature)
        logger.info(f"Deactivated group '{name}' ({len(features)} features)")

    async def active_in_group(self, name: str, context: Any = None) -> bool:
        """All features of the group are active; an empty group counts as active."""
        features = await self._require_groups().features_in(name)
        return await self.all_active(features, context)

    async def some_active_in_group(self, name: str, context: Any = None) -> bool:
        features = await self._require_groups().features_in(name)
        return await self.some_active(features, context)
