"""
Recommendation orchestrator that coordinates the scoring branches.
Hybrid requests fan out to collaborative, content-based, popularity and trending branches,
merge their weighted results, apply business rules and cache the response.
Any failure while generating degrades to popularity / random fallback.
"""

import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

import numpy as np

from common.cache import TTLCache
from common.constants import PATHS, RECOMMEND
from common.errors import InvalidInput
from common.helpers import apply_diversity_penalty, apply_recency_boost
from common.logging import log_recommendation_config, log_response_summary
from common.utils import setup_logging

from .collaborative import CollaborativeFilteringEngine
from .config import build_recommendation_config
from .content_based import ContentBasedFilteringEngine, default_preferences
from .data_models import (
    BehaviorStore,
    CatalogReader,
    Recommendation,
    RecommendationConfig,
    RecommendationRequest,
    RecommendationResponse,
    User,
)
from .popularity import PopularityEngine, popular_recommendations, trending_recommendations

logger = setup_logging(__name__, PATHS["app_log_file"])

HYBRID = "hybrid"
# Request algorithm name -> config section
BRANCHES = ("collaborative", "content_based", "popularity", "trending")


def apply_business_rules(recommendations: List[Recommendation], request: RecommendationRequest) -> List[Recommendation]:
    """Drop excluded products, products outside the requested category and low scores."""
    filtered = recommendations

    exclude = set(request.get("exclude_product_ids") or [])
    if exclude:
        filtered = [rec for rec in filtered if rec["product_id"] not in exclude]

    category = request.get("category")
    if category:
        filtered = [rec for rec in filtered if rec["product"].get("category") == category]

    return [rec for rec in filtered if rec["score"] > RECOMMEND["min_score"]]


def deduplicate_and_sort(recommendations: List[Recommendation]) -> List[Recommendation]:
    """First occurrence of a product id wins; then stable sort by score, highest first."""
    seen = set()
    unique = []
    for rec in recommendations:
        if rec["product_id"] in seen:
            continue
        seen.add(rec["product_id"])
        unique.append(rec)
    return sorted(unique, key=lambda rec: rec["score"], reverse=True)


class RecommendationOrchestrator:
    """Entry point for recommendation requests. Config is fixed at construction."""

    def __init__(
        self,
        catalog: CatalogReader,
        behavior_store: BehaviorStore,
        config: Optional[RecommendationConfig] = None,
        response_cache: Optional[TTLCache] = None,
        collaborative: Optional[CollaborativeFilteringEngine] = None,
        content_based: Optional[ContentBasedFilteringEngine] = None,
        popularity: Optional[PopularityEngine] = None,
        rng: Optional[np.random.Generator] = None,
        max_workers: int = RECOMMEND["max_workers"],
    ):
        self.catalog = catalog
        self.behavior_store = behavior_store
        self.config = config or build_recommendation_config()
        self.response_cache = (
            response_cache
            if response_cache is not None
            else TTLCache(max_size=self.config["caching"]["max_size"], ttl=self.config["caching"]["ttl"])
        )
        self.collaborative = collaborative or CollaborativeFilteringEngine(catalog, behavior_store)
        self.content_based = content_based or ContentBasedFilteringEngine(catalog, behavior_store)
        self.popularity = popularity or PopularityEngine(catalog, behavior_store)
        self.rng = rng or np.random.default_rng()
        self.max_workers = max_workers

        self._branches: Dict[str, Callable[[RecommendationRequest], List[Recommendation]]] = {
            "collaborative": self._collaborative_branch,
            "content_based": self._content_branch,
            "popularity": self._popularity_branch,
            "trending": self._trending_branch,
        }
        log_recommendation_config(logger, self.config)

    # ===================================================================
    # Request entry point
    # ===================================================================
    def get_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        """
        CacheCheck -> (hit) return
                   -> (miss) Generate -> BusinessRules -> DedupeSort -> Cache -> return
        Generate failures switch to the fallback path instead of raising.
        """
        start = time.perf_counter()
        request = self._validate_request(request)
        algorithm = request["algorithm"] or HYBRID
        cache_key = self._cache_key(request)
        caching = self.config["caching"]["enabled"]

        logger.info(
            f"Request user={request['user_id']} product={request['product_id']} "
            f"category={request['category']} algorithm={algorithm} limit={request['limit']}"
        )

        if caching:
            cached = self.response_cache.get(cache_key)
            if cached is not None:
                response: RecommendationResponse = {
                    "recommendations": _copy_recommendations(cached["recommendations"]),
                    "metadata": {**cached["metadata"], "cache_hit": True, "execution_time": _elapsed_ms(start)},
                }
                log_response_summary(logger, response)
                return response

        try:
            recommendations = self._generate(request)
        except Exception as e:
            logger.error(f"Error generating recommendations, using fallback: {e}\n{traceback.format_exc()}")
            return self._fallback(request, start)

        response = {
            "recommendations": recommendations[: request["limit"]],
            "metadata": {
                "total_count": len(recommendations),
                "algorithm": algorithm,
                "execution_time": _elapsed_ms(start),
                "cache_hit": False,
                "fallback": False,
            },
        }

        if caching:
            self.response_cache.set(
                cache_key,
                {"recommendations": _copy_recommendations(response["recommendations"]), "metadata": dict(response["metadata"])},
            )

        log_response_summary(logger, response)
        return response

    def get_similar_products(self, product_id: str, limit: int = 10) -> List[Recommendation]:
        """Content-based similar items for one product; raises NotFound for unknown ids."""
        return self.content_based.get_similar_products(product_id, limit)

    def clear_cache(self) -> None:
        self.response_cache.clear()
        self.collaborative.clear_cache()
        self.content_based.clear_cache()
        logger.info("Cleared response, neighbor and product-similarity caches")

    # ===================================================================
    # Generate
    # ===================================================================
    def _generate(self, request: RecommendationRequest) -> List[Recommendation]:
        algorithm = request["algorithm"] or HYBRID

        if algorithm == HYBRID:
            recommendations = self._hybrid(request)
        else:
            recommendations = self._branches[algorithm](request)

        recommendations = apply_business_rules(recommendations, request)
        recommendations = deduplicate_and_sort(recommendations)
        return self._rerank(recommendations)

    def _hybrid(self, request: RecommendationRequest) -> List[Recommendation]:
        """Run every branch concurrently, join, then scale each by its configured weight."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {name: executor.submit(self._branches[name], request) for name in BRANCHES}
            # result() re-raises the first branch failure, aborting the whole generate step
            results = {name: future.result() for name, future in futures.items()}

        branch_counts = {name: len(recs) for name, recs in results.items()}
        logger.info(f"Branch candidates: {branch_counts}")

        weighted: List[Recommendation] = []
        for name in BRANCHES:
            weight = self.config["algorithms"][name]["weight"]
            weighted.extend({**rec, "score": rec["score"] * weight} for rec in results[name])
        return weighted

    def _rerank(self, recommendations: List[Recommendation]) -> List[Recommendation]:
        rerank = self.config["rerank"]
        if not (rerank["diversity_weight"] or rerank["recency_weight"]):
            return recommendations

        if rerank["diversity_weight"]:
            recommendations = apply_diversity_penalty(recommendations, rerank["diversity_weight"])
        if rerank["recency_weight"]:
            recommendations = apply_recency_boost(recommendations, rerank["recency_weight"])
        return sorted(recommendations, key=lambda rec: rec["score"], reverse=True)

    def _candidate_count(self, request: RecommendationRequest) -> int:
        return request["limit"] * RECOMMEND["candidate_multiplier"]

    def _collaborative_branch(self, request: RecommendationRequest) -> List[Recommendation]:
        if not self.config["algorithms"]["collaborative"]["enabled"]:
            return []

        user = self._get_user(request["user_id"])
        recommendations = self.collaborative.get_recommendations(
            user, user["behavior_history"], self._candidate_count(request)
        )
        if request["product_id"]:
            recommendations = recommendations + self.collaborative.get_item_based_recommendations(
                request["user_id"], request["product_id"], self._candidate_count(request)
            )
        return recommendations

    def _content_branch(self, request: RecommendationRequest) -> List[Recommendation]:
        if not self.config["algorithms"]["content_based"]["enabled"]:
            return []

        user = self._get_user(request["user_id"])
        products = self.catalog.get_products(request["category"])
        return self.content_based.get_recommendations(
            user, products, request["product_id"], self._candidate_count(request)
        )

    def _popularity_branch(self, request: RecommendationRequest) -> List[Recommendation]:
        algo = self.config["algorithms"]["popularity"]
        if not algo["enabled"]:
            return []

        products = self.popularity.get_popular_products(request["category"], algo.get("period", "weekly"))
        return popular_recommendations(products)

    def _trending_branch(self, request: RecommendationRequest) -> List[Recommendation]:
        algo = self.config["algorithms"]["trending"]
        if not algo["enabled"]:
            return []

        trending = self.popularity.get_trending_products(request["category"], algo.get("growth_threshold", 0.2))
        return trending_recommendations(trending)

    def _get_user(self, user_id: str) -> User:
        """User read model; preferences are derived later from the behavior history."""
        return {
            "id": user_id,
            "preferences": default_preferences(),
            "demographics": {},
            "behavior_history": self.behavior_store.get_user_behaviors(user_id),
        }

    # ===================================================================
    # Fallback
    # ===================================================================
    def _fallback(self, request: RecommendationRequest, start: float) -> RecommendationResponse:
        """Popular products, padded with random catalog picks up to the configured minimum. Never raises."""
        fallback = self.config["fallback"]
        limit = request["limit"]
        exclude = set(request["exclude_product_ids"])
        recommendations: List[Recommendation] = []

        try:
            if fallback["use_popular"]:
                popular = [
                    p
                    for p in self.popularity.get_popular_products(request["category"], "weekly")
                    if p["id"] not in exclude
                ]
                recommendations = popular_recommendations(
                    popular,
                    explanation="Fallback to popular products",
                    confidence=0.5,
                    factors=["fallback_mode"],
                )[:limit]

            if len(recommendations) < fallback["min_recommendations"] and fallback["use_random"]:
                needed = fallback["min_recommendations"] - len(recommendations)
                taken = exclude | {rec["product_id"] for rec in recommendations}
                recommendations = recommendations + self._random_recommendations(needed, request["category"], taken)
        except Exception as e:
            logger.error(f"Fallback failed, returning {len(recommendations)} recommendations: {e}")

        logger.warning(f"Served fallback with {len(recommendations)} recommendations for user={request['user_id']}")

        return {
            "recommendations": recommendations[:limit],
            "metadata": {
                "total_count": len(recommendations),
                "algorithm": "popularity",
                "execution_time": _elapsed_ms(start),
                "cache_hit": False,
                "fallback": True,
            },
        }

    def _random_recommendations(self, count: int, category: Optional[str], exclude: set) -> List[Recommendation]:
        candidates = [p for p in self.catalog.get_products(category) if p["id"] not in exclude]
        if not candidates or count <= 0:
            return []

        picks = self.rng.permutation(len(candidates))[:count]
        return [
            {
                "product_id": candidates[i]["id"],
                "product": candidates[i],
                "score": float(self.rng.uniform(0.0, 0.5)),
                "reason": {
                    "type": "popular",
                    "explanation": "Random product selection",
                    "confidence": 0.3,
                    "factors": ["random_fallback"],
                },
                "algorithm": "popularity",
            }
            for i in picks
        ]

    # ===================================================================
    # Helpers
    # ===================================================================
    def _validate_request(self, request: RecommendationRequest) -> RecommendationRequest:
        """Fill defaults so every field is present. Malformed requests fail fast."""
        user_id = request.get("user_id")
        if not user_id:
            raise InvalidInput("user_id is required")

        limit = request.get("limit", RECOMMEND["k"])
        if not isinstance(limit, int) or limit <= 0:
            raise InvalidInput(f"limit must be a positive integer, got {limit!r}")

        algorithm = request.get("algorithm")
        if algorithm is not None and algorithm != HYBRID and algorithm not in BRANCHES:
            raise InvalidInput(f"Unknown algorithm '{algorithm}'")

        return {
            "user_id": user_id,
            "product_id": request.get("product_id"),
            "category": request.get("category"),
            "limit": limit,
            "algorithm": algorithm,
            "exclude_product_ids": list(request.get("exclude_product_ids") or []),
        }

    @staticmethod
    def _cache_key(request: RecommendationRequest) -> tuple:
        return (
            request["user_id"],
            request["product_id"] or "none",
            request["category"] or "all",
            request["algorithm"] or HYBRID,
            request["limit"],
            tuple(sorted(request["exclude_product_ids"])),
        )


def _copy_recommendations(recommendations: List[Recommendation]) -> List[Recommendation]:
    # Products are shared catalog snapshots; the recommendation and its reason are per response
    return [{**rec, "reason": {**rec["reason"], "factors": list(rec["reason"]["factors"])}} for rec in recommendations]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
