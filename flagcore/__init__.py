"""flagcore: feature flag resolution.

Provides:
- Context identity normalization
- Tri-state feature values
- Consistent-hash percentage rollouts and A/B variants
- Expiring features and prerequisite chains
- Group activation
- Per-unit-of-work resolution caching
- In-memory, SQLite, Redis and policy-gate stores
"""

from flagcore.bucketing import (
    bucket_for,
    calculate_variant,
    in_rollout,
    pick_variant,
    validate_weights,
)
from flagcore.cache import ResolutionCache
from flagcore.config import FeatureSettings, get_settings, reset_settings
from flagcore.context import (
    GLOBAL_CONTEXT,
    NULL_CONTEXT_TOKEN,
    ContextManager,
    ContextResolver,
    Contextable,
    EvaluationContext,
    FeatureScope,
    Serializable,
    resolve_context,
    serialize_context,
)
from flagcore.definitions import FeatureDefinition, FeatureRegistry
from flagcore.engine import FeatureEngine
from flagcore.errors import (
    ConfigurationError,
    ContextError,
    ErrorCode,
    FeatureFlagError,
    FeatureGroupNotFoundError,
    InvalidPercentageError,
    InvalidVariantWeightsError,
    KeyMapConflictError,
    MissingContextError,
    StorageError,
    StoreConflictError,
    UnserializableContextError,
    UnsupportedOperationError,
    UnsupportedStoreError,
)
from flagcore.groups import GroupMembershipSource, InMemoryGroupMembership
from flagcore.listeners import (
    EventDispatcher,
    FeatureEvent,
    FeatureEventType,
    FeatureListener,
    LoggingFeatureListener,
)
from flagcore.manager import FeatureManager, get_feature_manager, reset_feature_manager
from flagcore.stores import (
    DatabaseFeatureStore,
    FeatureStore,
    GateFeatureStore,
    InMemoryFeatureStore,
    RedisFeatureStore,
    create_store,
)
from flagcore.strategies import (
    BooleanStrategy,
    ConditionalStrategy,
    PercentageStrategy,
    ScheduledStrategy,
    Strategy,
    TimeBasedStrategy,
    VariantStrategy,
)
from flagcore.values import FeatureState, FeatureValue

__version__ = "0.1.0"

__all__ = [
    # Context
    "GLOBAL_CONTEXT",
    "NULL_CONTEXT_TOKEN",
    "ContextManager",
    "ContextResolver",
    "Contextable",
    "EvaluationContext",
    "FeatureScope",
    "Serializable",
    "resolve_context",
    "serialize_context",
    # Values
    "FeatureState",
    "FeatureValue",
    # Bucketing
    "bucket_for",
    "calculate_variant",
    "in_rollout",
    "pick_variant",
    "validate_weights",
    # Definitions
    "FeatureDefinition",
    "FeatureRegistry",
    # Strategies
    "Strategy",
    "BooleanStrategy",
    "PercentageStrategy",
    "ScheduledStrategy",
    "TimeBasedStrategy",
    "ConditionalStrategy",
    "VariantStrategy",
    # Engine
    "FeatureEngine",
    "FeatureManager",
    "ResolutionCache",
    "get_feature_manager",
    "reset_feature_manager",
    # Groups
    "GroupMembershipSource",
    "InMemoryGroupMembership",
    # Stores
    "FeatureStore",
    "InMemoryFeatureStore",
    "DatabaseFeatureStore",
    "RedisFeatureStore",
    "GateFeatureStore",
    "create_store",
    # Events
    "EventDispatcher",
    "FeatureEvent",
    "FeatureEventType",
    "FeatureListener",
    "LoggingFeatureListener",
    # Config
    "FeatureSettings",
    "get_settings",
    "reset_settings",
    # Errors
    "ErrorCode",
    "FeatureFlagError",
    "ConfigurationError",
    "ContextError",
    "FeatureGroupNotFoundError",
    "InvalidPercentageError",
    "InvalidVariantWeightsError",
    "KeyMapConflictError",
    "MissingContextError",
    "StorageError",
    "StoreConflictError",
    "UnserializableContextError",
    "UnsupportedOperationError",
    "UnsupportedStoreError",
]
