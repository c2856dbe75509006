"""Tests for flagcore/context.py.

Covers:
- EvaluationContext serialization and cache keys
- FeatureScope canonical ordering and matching
- ContextResolver normalization rules and key map
- ContextManager change notifications
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from flagcore.context import (
    GLOBAL_CONTEXT,
    NULL_CONTEXT_TOKEN,
    ContextManager,
    ContextResolver,
    EvaluationContext,
    FeatureScope,
    resolve_context,
    serialize_context,
)
from flagcore.errors import (
    KeyMapConflictError,
    MissingContextError,
    UnserializableContextError,
)


@dataclass
class User:
    id: int
    email: str = ""


@dataclass
class Team:
    slug: str


class Token:
    def __init__(self, value: str):
        self.value = value

    def serialize(self) -> str:
        return f"token:{self.value}"


class Tenant:
    def __init__(self, code: str):
        self.code = code

    def to_feature_context(self) -> EvaluationContext:
        return EvaluationContext(self.code, "tenant")


class TestEvaluationContext:
    """Tests for EvaluationContext."""

    def test_entity_serialize(self):
        assert EvaluationContext(42, "User").serialize() == "User|42"

    def test_scalar_serialize_is_bare(self):
        assert EvaluationContext("abc", "scalar").serialize() == "abc"
        assert EvaluationContext(7, "scalar").serialize() == "7"

    def test_cache_key(self):
        assert EvaluationContext(42, "User").cache_key() == "User:42"

    def test_cache_key_null_id(self):
        assert EvaluationContext(None, "User").cache_key() == f"User:{NULL_CONTEXT_TOKEN}"

    def test_with_scope_returns_new_instance(self):
        ctx = EvaluationContext(1, "User")
        scoped = ctx.with_scope(FeatureScope("team", {"team": "core"}))

        assert ctx.scope is None
        assert scoped.has_scope
        assert scoped.id == 1
        assert scoped.cache_key() == "User:1|team:team=core"

    def test_contexts_are_immutable(self):
        ctx = EvaluationContext(1, "User")
        with pytest.raises(Exception):
            ctx.id = 2

    def test_global_context_key(self):
        assert GLOBAL_CONTEXT.cache_key() == "__all__:__global__"


class TestFeatureScope:
    """Tests for FeatureScope."""

    def test_key_independent_of_construction_order(self):
        a = FeatureScope("tenant", {"region": "eu", "plan": "pro"})
        b = FeatureScope("tenant", {"plan": "pro", "region": "eu"})

        assert a.cache_key() == b.cache_key() == "tenant:plan=pro|region=eu"
        assert a == b
        assert hash(a) == hash(b)

    def test_null_and_structured_constraints(self):
        scope = FeatureScope("tenant", {"b": None, "a": {"y": 2, "x": 1}})
        assert scope.cache_key() == 'tenant:a={"x": 1, "y": 2}|b=null'

    def test_defined_constraints_drop_none(self):
        scope = FeatureScope("tenant", {"a": 1, "b": None})
        assert scope.defined_constraints() == {"a": 1}

    def test_dict_round_trip(self):
        scope = FeatureScope("tenant", {"a": 1})
        assert FeatureScope.from_dict(scope.to_dict()) == scope

    def test_null_constraint_is_wildcard(self):
        company = FeatureScope("user", {"company_id": 3, "team_id": None})
        team = FeatureScope("user", {"company_id": 3, "team_id": 7})

        assert team.matches(company)
        assert not company.matches(team)

    def test_match_requires_kind_and_values(self):
        target = FeatureScope("user", {"company_id": 3})

        assert not FeatureScope("team", {"company_id": 3}).matches(target)
        assert not FeatureScope("user", {"company_id": 4}).matches(target)
        assert not FeatureScope("user", {"team_id": 7}).matches(target)
        assert FeatureScope("user", {}).matches(FeatureScope("user", {"company_id": None}))

    def test_storage_key(self):
        scope = FeatureScope("user", {"team_id": None, "company_id": 3})

        assert FeatureScope.from_storage_key(scope.storage_key()) == scope
        assert FeatureScope.from_storage_key("User:1") is None
        assert scope.specificity() == 1


class TestContextResolver:
    """Tests for ContextResolver."""

    @pytest.fixture
    def resolver(self):
        return ContextResolver()

    def test_passthrough(self, resolver):
        ctx = EvaluationContext(1, "User")
        assert resolver.resolve(ctx) is ctx

    def test_entity(self, resolver):
        ctx = resolver.resolve(User(42))
        assert ctx == EvaluationContext(42, "User")
        assert ctx.serialize() == "User|42"

    def test_scalars(self, resolver):
        assert resolver.resolve("abc") == EvaluationContext("abc", "scalar")
        assert resolver.resolve(5) == EvaluationContext(5, "scalar")
        assert resolver.resolve(1.5).serialize() == "1.5"

    def test_serializable(self, resolver):
        ctx = resolver.resolve(Token("x"))
        assert ctx.serialize() == "token:x"
        assert ctx.type == "serialized"

    def test_contextable(self, resolver):
        assert resolver.resolve(Tenant("acme")) == EvaluationContext("acme", "tenant")

    def test_none_is_missing(self, resolver):
        with pytest.raises(MissingContextError):
            resolver.resolve(None)

    @pytest.mark.parametrize("value", [{"a": 1}, [1, 2], {1, 2}, (1,), True, object()])
    def test_unserializable(self, resolver, value):
        with pytest.raises(UnserializableContextError):
            resolver.resolve(value)

    def test_key_map(self, resolver):
        resolver.map_key(Team, "slug")
        assert resolver.resolve(Team("core")) == EvaluationContext("core", "Team")

    def test_key_map_conflict(self, resolver):
        resolver.map_key(Team, "slug")
        resolver.map_key("Team", "slug")

        with pytest.raises(KeyMapConflictError):
            resolver.map_key(Team, "name")

    def test_key_map_from_constructor(self):
        resolver = ContextResolver({User: "email"})
        assert resolver.resolve(User(1, "a@b.c")).id == "a@b.c"

    def test_serialize_none_is_sentinel(self, resolver):
        assert resolver.serialize(None) == NULL_CONTEXT_TOKEN

    def test_module_helpers(self):
        assert resolve_context(User(3)).cache_key() == "User:3"
        assert serialize_context(User(3)) == "User|3"
        assert serialize_context(None) == NULL_CONTEXT_TOKEN


class TestContextManager:
    """Tests for the ambient ContextManager."""

    def test_change_and_clear_notify(self):
        calls = []
        manager = ContextManager(on_change=lambda: calls.append(1))

        manager.to(User(1))
        assert manager.has_context()
        assert manager.current() == User(1)

        manager.clear()
        assert not manager.has_context()
        assert len(calls) == 2

    def test_without_callback(self):
        manager = ContextManager()
        assert manager.to("x").current() == "x"
