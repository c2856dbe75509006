"""Evaluation context identity.

Normalizes whatever a caller evaluates a feature against (a user record, a
tenant id, a custom object) into an immutable ``EvaluationContext`` with a
stable serialized form used for caching, storage and bucketing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union, runtime_checkable

from flagcore.errors import (
    KeyMapConflictError,
    MissingContextError,
    UnserializableContextError,
)

NULL_CONTEXT_TOKEN = "__null__"
SCALAR_TYPE = "scalar"
SERIALIZED_TYPE = "serialized"

# Store rows holding a value for every context whose scope matches
SCOPE_KEY_PREFIX = "__scope__|"

# Context kinds whose serialized form is the bare id
_BARE_TYPES = frozenset({SCALAR_TYPE, SERIALIZED_TYPE})


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, sort_keys=True, default=str)


@dataclass(frozen=True)
class FeatureScope:
    """Structured constraints attached to a context (e.g. a team within a tenant)."""
    kind: str
    constraints: Mapping[str, Any] = field(default_factory=dict)

    def defined_constraints(self) -> Dict[str, Any]:
        """Constraints with a non-null value."""
        return {k: v for k, v in self.constraints.items() if v is not None}

    def matches(self, target: "FeatureScope") -> bool:
        """Whether this scope falls under ``target``.

        Kinds must be equal and every non-null constraint of ``target`` must
        be present here with the same value. Null constraints in ``target``
        are wildcards, so ``{"company_id": 3, "team_id": None}`` covers every
        team of company 3.
        """
        if self.kind != target.kind:
            return False
        for key, value in target.defined_constraints().items():
            if key not in self.constraints or self.constraints[key] != value:
                return False
        return True

    def storage_key(self) -> str:
        """Store key of a value shared by every context this scope covers."""
        return SCOPE_KEY_PREFIX + json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_storage_key(cls, key: str) -> Optional["FeatureScope"]:
        if not key.startswith(SCOPE_KEY_PREFIX):
            return None
        return cls.from_dict(json.loads(key[len(SCOPE_KEY_PREFIX):]))

    def specificity(self) -> int:
        return len(self.defined_constraints())

    def cache_key(self) -> str:
        parts = [f"{key}={_render(self.constraints[key])}" for key in sorted(self.constraints, key=str)]
        return f"{self.kind}:{'|'.join(parts)}"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "scopes": dict(self.constraints)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureScope":
        return cls(kind=data["kind"], constraints=dict(data.get("scopes", {})))

    def __hash__(self) -> int:
        return hash(self.cache_key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeatureScope):
            return NotImplemented
        return self.cache_key() == other.cache_key()


@dataclass(frozen=True)
class EvaluationContext:
    """Normalized context a feature is evaluated against."""
    id: Any
    type: str
    scope: Optional[FeatureScope] = None

    def with_scope(self, scope: Optional[FeatureScope]) -> "EvaluationContext":
        return EvaluationContext(self.id, self.type, scope)

    @property
    def has_scope(self) -> bool:
        return self.scope is not None

    @property
    def kind(self) -> str:
        if self.scope is not None:
            return self.scope.kind
        return self.type.lower()

    def serialize(self) -> str:
        """Identity string used for bucketing and group membership."""
        ident = NULL_CONTEXT_TOKEN if self.id is None else str(self.id)
        if self.type in _BARE_TYPES:
            return ident
        return f"{self.type}|{ident}"

    def cache_key(self) -> str:
        """Key for the resolution cache and the stores; folds in the scope."""
        ident = NULL_CONTEXT_TOKEN if self.id is None else str(self.id)
        key = f"{self.type}:{ident}"
        if self.scope is not None:
            key += "|" + self.scope.cache_key()
        return key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "scope": self.scope.to_dict() if self.scope else None,
        }


# Synthetic "every context" key used for global and group activation
GLOBAL_CONTEXT = EvaluationContext("__global__", "__all__")


@runtime_checkable
class Contextable(Protocol):
    """Objects that know how to describe themselves as a context."""

    def to_feature_context(self) -> EvaluationContext: ...


@runtime_checkable
class Serializable(Protocol):
    """Objects that provide their own stable serialized identity."""

    def serialize(self) -> str: ...


class ContextResolver:
    """Turns arbitrary values into ``EvaluationContext`` instances.

    Entities are identified through an attribute, ``id`` by default. The key
    map overrides that per class; mapping one class to two different
    attributes is a configuration error and is rejected on registration.
    """

    DEFAULT_KEY = "id"

    def __init__(self, key_map: Optional[Mapping[Union[type, str], str]] = None):
        self._key_map: Dict[str, str] = {}
        for target, attribute in (key_map or {}).items():
            self.map_key(target, attribute)

    @staticmethod
    def _type_name(target: Union[type, str]) -> str:
        return target if isinstance(target, str) else target.__name__

    def map_key(self, target: Union[type, str], attribute: str) -> None:
        """Register the identity attribute for a class."""
        name = self._type_name(target)
        existing = self._key_map.get(name)
        if existing is not None and existing != attribute:
            raise KeyMapConflictError(
                f"Class '{name}' is already keyed by '{existing}', cannot key it by '{attribute}'"
            )
        self._key_map[name] = attribute

    def key_for(self, target: Union[type, str]) -> str:
        return self._key_map.get(self._type_name(target), self.DEFAULT_KEY)

    def key_map(self) -> Dict[str, str]:
        return dict(self._key_map)

    def resolve(self, value: Any) -> EvaluationContext:
        if isinstance(value, EvaluationContext):
            return value

        if value is None:
            raise MissingContextError()

        if isinstance(value, Contextable):
            context = value.to_feature_context()
            if not isinstance(context, EvaluationContext):
                raise UnserializableContextError.for_value(value)
            return context

        # bool is an int subclass but says nothing about identity
        if isinstance(value, bool):
            raise UnserializableContextError.for_value(value)

        if isinstance(value, (str, int, float)):
            return EvaluationContext(value, SCALAR_TYPE)

        if isinstance(value, (dict, list, set, frozenset, tuple, type)):
            raise UnserializableContextError.for_value(value)

        type_name = type(value).__name__
        ident = getattr(value, self.key_for(type_name), None)
        if isinstance(ident, (str, int)) and not isinstance(ident, bool):
            return EvaluationContext(ident, type_name)

        if isinstance(value, Serializable):
            return EvaluationContext(value.serialize(), SERIALIZED_TYPE)

        raise UnserializableContextError.for_value(value)

    def serialize(self, value: Any) -> str:
        if value is None:
            return NULL_CONTEXT_TOKEN
        return self.resolve(value).serialize()


default_resolver = ContextResolver()


def resolve_context(value: Any) -> EvaluationContext:
    """Normalize ``value`` with the default resolver."""
    return default_resolver.resolve(value)


def serialize_context(value: Any) -> str:
    """Stable identity string for ``value``; ``None`` maps to a sentinel."""
    return default_resolver.serialize(value)


class ContextManager:
    """Ambient evaluation context.

    Changing or clearing the ambient context invokes ``on_change`` so cached
    resolutions for the previous context cannot leak into the next one.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None):
        self._context: Any = None
        self._on_change = on_change

    def to(self, value: Any) -> "ContextManager":
        self._context = value
        self._changed()
        return self

    def current(self) -> Any:
        return self._context

    def has_context(self) -> bool:
        return self._context is not None

    def clear(self) -> "ContextManager":
        self._context = None
        self._changed()
        return self

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
