"""Error types for feature resolution.

Centralizes error codes so callers can branch on ``error.code`` instead of
matching message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_VARIANT_WEIGHTS = "INVALID_VARIANT_WEIGHTS"
    INVALID_PERCENTAGE = "INVALID_PERCENTAGE"
    KEY_MAP_CONFLICT = "KEY_MAP_CONFLICT"
    UNSUPPORTED_STORE = "UNSUPPORTED_STORE"
    UNSERIALIZABLE_CONTEXT = "UNSERIALIZABLE_CONTEXT"
    MISSING_CONTEXT = "MISSING_CONTEXT"
    STORAGE_ERROR = "STORAGE_ERROR"
    STORE_CONFLICT = "STORE_CONFLICT"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"


class FeatureFlagError(Exception):
    """Base class for all flagcore errors."""

    code: ErrorCode = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {super().__str__()}"


# Configuration errors: raised at definition/registration time


class ConfigurationError(FeatureFlagError):
    code = ErrorCode.CONFIGURATION_ERROR


class InvalidVariantWeightsError(ConfigurationError):
    code = ErrorCode.INVALID_VARIANT_WEIGHTS

    @classmethod
    def must_sum_to_100(cls, total: int) -> "InvalidVariantWeightsError":
        return cls(f"Variant weights must sum to 100, got {total}")

    @classmethod
    def cannot_be_empty(cls) -> "InvalidVariantWeightsError":
        return cls("Variant weights cannot be empty")

    @classmethod
    def invalid_weight(cls, variant: str, weight: Any) -> "InvalidVariantWeightsError":
        return cls(f"Weight for variant '{variant}' must be a non-negative integer, got {weight!r}")


class InvalidPercentageError(ConfigurationError):
    code = ErrorCode.INVALID_PERCENTAGE

    @classmethod
    def out_of_range(cls, percentage: Any) -> "InvalidPercentageError":
        return cls(f"Percentage must be between 0 and 100, got {percentage!r}")


class KeyMapConflictError(ConfigurationError):
    code = ErrorCode.KEY_MAP_CONFLICT


class UnsupportedStoreError(ConfigurationError):
    code = ErrorCode.UNSUPPORTED_STORE


# Identity errors


class ContextError(FeatureFlagError):
    code = ErrorCode.UNSERIALIZABLE_CONTEXT


class UnserializableContextError(ContextError):
    code = ErrorCode.UNSERIALIZABLE_CONTEXT

    @classmethod
    def for_value(cls, value: Any) -> "UnserializableContextError":
        return cls(f"Cannot serialize context of type {type(value).__name__}")


class MissingContextError(ContextError):
    code = ErrorCode.MISSING_CONTEXT

    def __init__(self, message: str = "No evaluation context was given and no ambient context is set"):
        super().__init__(message)


# Storage errors


class StorageError(FeatureFlagError):
    code = ErrorCode.STORAGE_ERROR


class StoreConflictError(StorageError):
    """A first write collided with an existing (feature, context) row."""

    code = ErrorCode.STORE_CONFLICT

    def __init__(self, feature: str, context_key: str):
        super().__init__(f"Value for '{feature}' already stored for context '{context_key}'")
        self.feature = feature
        self.context_key = context_key


class UnsupportedOperationError(FeatureFlagError):
    code = ErrorCode.UNSUPPORTED_OPERATION

    @classmethod
    def for_store(cls, store: str, operation: str) -> "UnsupportedOperationError":
        return cls(f"Store '{store}' does not support '{operation}'")


class FeatureGroupNotFoundError(FeatureFlagError):
    code = ErrorCode.GROUP_NOT_FOUND

    @classmethod
    def for_name(cls, name: str) -> "FeatureGroupNotFoundError":
        return cls(f"Feature group '{name}' is not defined")


__all__ = [
    "ErrorCode",
    "FeatureFlagError",
    "ConfigurationError",
    "InvalidVariantWeightsError",
    "InvalidPercentageError",
    "KeyMapConflictError",
    "UnsupportedStoreError",
    "ContextError",
    "UnserializableContextError",
    "MissingContextError",
    "StorageError",
    "StoreConflictError",
    "UnsupportedOperationError",
    "FeatureGroupNotFoundError",
]
