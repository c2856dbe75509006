"""Consistent-hash bucketing for percentage rollouts and variants.

A (feature, context) pair hashes to one of 100 buckets. The hash is CRC32,
which is stable across processes and platforms, so the same context lands in
the same bucket without any stored decision.
"""

from __future__ import annotations

import zlib
from typing import Any, Dict, Mapping

from flagcore.context import serialize_context
from flagcore.errors import InvalidPercentageError, InvalidVariantWeightsError

BUCKET_COUNT = 100


def hash_input(feature: str, context: Any) -> str:
    return f"{feature}|{serialize_context(context)}"


def bucket_for(feature: str, context: Any) -> int:
    """Bucket (0-99) for ``context`` under ``feature``."""
    return zlib.crc32(hash_input(feature, context).encode("utf-8")) % BUCKET_COUNT


def validate_weights(weights: Mapping[str, int]) -> Dict[str, int]:
    """Check a variant weight table and return an ordered copy.

    Weights must be non-negative integers summing to exactly 100. Tables that
    don't are rejected, never normalized.
    """
    if not weights:
        raise InvalidVariantWeightsError.cannot_be_empty()

    table: Dict[str, int] = {}
    for variant, weight in weights.items():
        if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
            raise InvalidVariantWeightsError.invalid_weight(variant, weight)
        table[variant] = weight

    total = sum(table.values())
    if total != BUCKET_COUNT:
        raise InvalidVariantWeightsError.must_sum_to_100(total)
    return table


def pick_variant(bucket: int, weights: Mapping[str, int]) -> str:
    """First variant whose cumulative weight exceeds ``bucket``."""
    if not weights:
        raise InvalidVariantWeightsError.cannot_be_empty()

    cumulative = 0
    for variant, weight in weights.items():
        cumulative += weight
        if bucket < cumulative:
            return variant

    # Only reachable for tables that skipped validation
    return list(weights.keys())[-1]


def calculate_variant(feature: str, context: Any, weights: Mapping[str, int]) -> str:
    return pick_variant(bucket_for(feature, context), weights)


def validate_percentage(percentage: float) -> float:
    if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
        raise InvalidPercentageError.out_of_range(percentage)
    if not 0 <= percentage <= 100:
        raise InvalidPercentageError.out_of_range(percentage)
    return percentage


def in_rollout(feature: str, context: Any, percentage: float) -> bool:
    """Whether ``context`` falls inside a ``percentage`` rollout of ``feature``."""
    validate_percentage(percentage)
    return bucket_for(feature, context) < percentage
