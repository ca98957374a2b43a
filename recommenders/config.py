"""
Builders for RecommendationConfig.
Every function returns a complete, new config; inputs are never mutated.
"""

import copy
from typing import Any, Dict, Optional

from common.constants import ALGORITHMS, CACHE, FALLBACK, RERANK
from common.errors import InvalidInput

from .data_models import RecommendationConfig

ALGORITHM_NAMES = tuple(ALGORITHMS.keys())
POPULARITY_PERIODS = ("daily", "weekly", "monthly")


def default_config() -> RecommendationConfig:
    return {
        "algorithms": copy.deepcopy(ALGORITHMS),
        "caching": dict(CACHE),
        "fallback": dict(FALLBACK),
        "rerank": dict(RERANK),
    }


def build_recommendation_config(overrides: Optional[Dict[str, Any]] = None) -> RecommendationConfig:
    """Deep-merge overrides onto the defaults and validate the result."""
    config = default_config()
    overrides = overrides or {}

    unknown_sections = set(overrides) - set(config)
    if unknown_sections:
        raise InvalidInput(f"Unknown config sections: {sorted(unknown_sections)}")

    for name, algo in (overrides.get("algorithms") or {}).items():
        config = with_algorithm(config, name, **algo)
    if "caching" in overrides:
        config = with_cache(config, **overrides["caching"])
    if "fallback" in overrides:
        config = with_fallback(config, **overrides["fallback"])
    if "rerank" in overrides:
        config = with_rerank(config, **overrides["rerank"])

    return config


def with_algorithm(
    config: RecommendationConfig,
    name: str,
    enabled: Optional[bool] = None,
    weight: Optional[float] = None,
    period: Optional[str] = None,
    growth_threshold: Optional[float] = None,
) -> RecommendationConfig:
    if name not in ALGORITHM_NAMES:
        raise InvalidInput(f"Unknown algorithm '{name}', expected one of {ALGORITHM_NAMES}")
    if weight is not None and weight < 0:
        raise InvalidInput(f"Algorithm weight must be non-negative, got {weight}")
    if period is not None and period not in POPULARITY_PERIODS:
        raise InvalidInput(f"Unknown popularity period '{period}'")

    updated = copy.deepcopy(config)
    algo = updated["algorithms"][name]
    if enabled is not None:
        algo["enabled"] = bool(enabled)
    if weight is not None:
        algo["weight"] = float(weight)
    if period is not None:
        algo["period"] = period
    if growth_threshold is not None:
        algo["growth_threshold"] = float(growth_threshold)
    return updated


def with_cache(
    config: RecommendationConfig,
    ttl: Optional[float] = None,
    max_size: Optional[int] = None,
    enabled: Optional[bool] = None,
) -> RecommendationConfig:
    if ttl is not None and ttl <= 0:
        raise InvalidInput(f"Cache ttl must be positive, got {ttl}")
    if max_size is not None and max_size <= 0:
        raise InvalidInput(f"Cache max_size must be positive, got {max_size}")

    updated = copy.deepcopy(config)
    if ttl is not None:
        updated["caching"]["ttl"] = float(ttl)
    if max_size is not None:
        updated["caching"]["max_size"] = int(max_size)
    if enabled is not None:
        updated["caching"]["enabled"] = bool(enabled)
    return updated


def with_fallback(
    config: RecommendationConfig,
    use_popular: Optional[bool] = None,
    use_random: Optional[bool] = None,
    min_recommendations: Optional[int] = None,
) -> RecommendationConfig:
    if min_recommendations is not None and min_recommendations < 0:
        raise InvalidInput(f"min_recommendations must be non-negative, got {min_recommendations}")

    updated = copy.deepcopy(config)
    if use_popular is not None:
        updated["fallback"]["use_popular"] = bool(use_popular)
    if use_random is not None:
        updated["fallback"]["use_random"] = bool(use_random)
    if min_recommendations is not None:
        updated["fallback"]["min_recommendations"] = int(min_recommendations)
    return updated


def with_rerank(
    config: RecommendationConfig,
    diversity_weight: Optional[float] = None,
    recency_weight: Optional[float] = None,
) -> RecommendationConfig:
    for label, value in (("diversity_weight", diversity_weight), ("recency_weight", recency_weight)):
        if value is not None and value < 0:
            raise InvalidInput(f"{label} must be non-negative, got {value}")

    updated = copy.deepcopy(config)
    if diversity_weight is not None:
        updated["rerank"]["diversity_weight"] = float(diversity_weight)
    if recency_weight is not None:
        updated["rerank"]["recency_weight"] = float(recency_weight)
    return updated
