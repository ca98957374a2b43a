"""
Collaborative filtering based recommendations.
User-based neighbors from implicit behavior weights, plus an item-based path over a
precomputed product-to-product similarity table.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import scipy.sparse as sp
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine

from common.cache import TTLCache
from common.constants import BEHAVIOR_WEIGHTS, COLLABORATIVE, PATHS
from common.errors import InvalidInput
from common.helpers import cosine_similarity, pearson_correlation
from common.utils import setup_logging

from .data_models import (
    BehaviorStore,
    CatalogReader,
    ProductSimilarity,
    Recommendation,
    SimilarityScore,
    User,
    UserBehavior,
)

logger = setup_logging(__name__, PATHS["app_log_file"], logging.DEBUG)


def extract_user_items(behaviors: Iterable[UserBehavior]) -> Dict[str, float]:
    """Map product id -> strongest implicit weight the user has shown for it."""
    items: Dict[str, float] = {}
    for behavior in behaviors:
        product_id = behavior.get("product_id")
        if not product_id:
            continue
        if behavior.get("type") == "rating":
            weight = float(behavior.get("value") or 0.0)
        else:
            weight = BEHAVIOR_WEIGHTS.get(behavior.get("type"), 1.0)
        items[product_id] = max(items.get(product_id, 0.0), weight)
    return items


def _common_items(items_a: Mapping[str, float], items_b: Mapping[str, float]) -> List[str]:
    return [product_id for product_id in items_a if product_id in items_b]


def user_cosine_similarity(items_a: Mapping[str, float], items_b: Mapping[str, float]) -> float:
    """Cosine similarity restricted to the products both users interacted with."""
    common = _common_items(items_a, items_b)
    if not common:
        return 0.0
    return cosine_similarity([items_a[p] for p in common], [items_b[p] for p in common])


def user_pearson_similarity(items_a: Mapping[str, float], items_b: Mapping[str, float]) -> float:
    common = _common_items(items_a, items_b)
    if len(common) < 2:
        return 0.0
    return pearson_correlation([items_a[p] for p in common], [items_b[p] for p in common])


SIMILARITY_METRICS = {
    "cosine": user_cosine_similarity,
    "pearson": user_pearson_similarity,
}


def score_candidates(
    user_items: Mapping[str, float],
    neighbors: Iterable[SimilarityScore],
    neighbor_items: Mapping[str, Mapping[str, float]],
) -> Dict[str, float]:
    """
    Accumulate neighbor_item_weight * neighbor_similarity per unseen product,
    then scale so the best candidate scores 1.0.
    """
    scores: Dict[str, float] = {}
    for neighbor in neighbors:
        for product_id, weight in neighbor_items.get(neighbor["user_id_2"], {}).items():
            if product_id in user_items:
                continue
            scores[product_id] = scores.get(product_id, 0.0) + weight * neighbor["score"]

    max_score = max(scores.values(), default=0.0)
    if max_score > 0:
        scores = {product_id: score / max_score for product_id, score in scores.items()}
    return scores


class CollaborativeFilteringEngine:
    """User-based and item-based collaborative filtering over the behavior store."""

    def __init__(
        self,
        catalog: CatalogReader,
        behavior_store: BehaviorStore,
        similarity_cache: Optional[TTLCache] = None,
        min_similarity: float = COLLABORATIVE["min_similarity"],
        max_neighbors: int = COLLABORATIVE["max_neighbors"],
        similarity_metric: str = COLLABORATIVE["similarity_metric"],
    ):
        if similarity_metric not in SIMILARITY_METRICS:
            raise InvalidInput(f"Unknown similarity metric '{similarity_metric}'")

        self.catalog = catalog
        self.behavior_store = behavior_store
        self.similarity_cache = (
            similarity_cache
            if similarity_cache is not None
            else TTLCache(max_size=COLLABORATIVE["cache_max_size"], ttl=COLLABORATIVE["cache_ttl"])
        )
        # product id -> neighbors; rebuilt wholesale by precompute_item_similarities
        self.item_similarities: Dict[str, List[ProductSimilarity]] = {}
        self.min_similarity = min_similarity
        self.max_neighbors = max_neighbors
        self._similarity = SIMILARITY_METRICS[similarity_metric]

    # ===================================================================
    # User-based
    # ===================================================================
    def get_recommendations(self, user: User, behaviors: List[UserBehavior], limit: int = 10) -> List[Recommendation]:
        """Score unseen products by what behaviorally similar users interacted with."""
        user_id = user["id"]
        neighbors = self.find_similar_users(user_id, behaviors)
        if not neighbors:
            logger.debug(f"[CF] No similar users for user={user_id}")
            return []

        user_items = extract_user_items(behaviors)
        neighbor_items = {
            n["user_id_2"]: extract_user_items(self.behavior_store.get_user_behaviors(n["user_id_2"]))
            for n in neighbors
        }
        product_scores = score_candidates(user_items, neighbors, neighbor_items)
        logger.debug(f"[CF] user={user_id}: {len(neighbors)} neighbors, {len(product_scores)} candidates")

        recommendations: List[Recommendation] = []
        for product_id, score in product_scores.items():
            product = self.catalog.get_product(product_id)
            if product is None:
                continue
            recommendations.append(
                {
                    "product_id": product_id,
                    "product": product,
                    "score": score,
                    "reason": {
                        "type": "collaborative",
                        "explanation": "Users with similar preferences also liked this product",
                        "confidence": min(score, 0.9),
                        "factors": ["user_similarity", "behavior_patterns"],
                    },
                    "algorithm": "user_based_cf",
                }
            )

        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        return recommendations[:limit]

    def find_similar_users(self, user_id: str, behaviors: List[UserBehavior]) -> List[SimilarityScore]:
        """Top neighbors above min_similarity, cached per user id."""
        cached = self.similarity_cache.get(user_id)
        if cached is not None:
            logger.debug(f"[CF] Neighbor cache hit for user={user_id}")
            return cached

        current_items = extract_user_items(behaviors)
        similarities: List[SimilarityScore] = []

        if current_items:
            for other_id, other_behaviors in self.behavior_store.get_all_user_behaviors().items():
                if other_id == user_id:
                    continue
                other_items = extract_user_items(other_behaviors)
                score = self._similarity(current_items, other_items)
                if score > self.min_similarity:
                    similarities.append(
                        {
                            "user_id_1": user_id,
                            "user_id_2": other_id,
                            "score": score,
                            "common_items": len(_common_items(current_items, other_items)),
                        }
                    )

        similarities.sort(key=lambda s: s["score"], reverse=True)
        neighbors = similarities[: self.max_neighbors]
        self.similarity_cache.set(user_id, neighbors)
        return neighbors

    def precompute_similarities(self) -> int:
        """Warm the neighbor cache for every known user. Returns the number of users processed."""
        logger.info("Starting similarity precomputation...")
        all_behaviors = self.behavior_store.get_all_user_behaviors()
        for user_id, behaviors in all_behaviors.items():
            self.similarity_cache.delete(user_id)
            self.find_similar_users(user_id, behaviors)
        logger.info(f"Similarity precomputation completed for {len(all_behaviors)} users")
        return len(all_behaviors)

    # ===================================================================
    # Item-based
    # ===================================================================
    def precompute_item_similarities(self) -> int:
        """
        Build the product-to-product table from a sparse user x product matrix and
        swap it in whole. Returns the number of products indexed.
        """
        all_behaviors = self.behavior_store.get_all_user_behaviors()
        user_items = [extract_user_items(behaviors) for behaviors in all_behaviors.values()]
        product_ids = sorted({product_id for items in user_items for product_id in items})
        if not product_ids:
            logger.debug("[CF] No behaviors available for item similarity precomputation")
            self.item_similarities = {}
            return 0

        product_index = {product_id: i for i, product_id in enumerate(product_ids)}
        rows, cols, data = [], [], []
        for row, items in enumerate(user_items):
            for product_id, weight in items.items():
                rows.append(row)
                cols.append(product_index[product_id])
                data.append(weight)

        matrix = sp.csr_matrix((data, (rows, cols)), shape=(len(user_items), len(product_ids)))
        item_similarity = pairwise_cosine(matrix.T, dense_output=True)
        np.fill_diagonal(item_similarity, 0.0)

        table: Dict[str, List[ProductSimilarity]] = {}
        for i, product_id in enumerate(product_ids):
            order = np.argsort(item_similarity[i])[::-1]
            similar: List[ProductSimilarity] = [
                {
                    "product_id_1": product_id,
                    "product_id_2": product_ids[j],
                    "score": float(item_similarity[i, j]),
                    "reasons": ["co_interaction"],
                }
                for j in order
                if item_similarity[i, j] > self.min_similarity
            ]
            table[product_id] = similar
        self.item_similarities = table

        logger.info(f"Item similarity precomputation completed for {len(product_ids)} products")
        return len(product_ids)

    def find_similar_items(self, product_id: str) -> List[ProductSimilarity]:
        """Precomputed neighbors of product_id; empty until precompute_item_similarities runs."""
        return self.item_similarities.get(product_id, [])

    def get_item_based_recommendations(
        self, user_id: str, target_product_id: str, limit: int = 10
    ) -> List[Recommendation]:
        user_items = extract_user_items(self.behavior_store.get_user_behaviors(user_id))
        recommendations: List[Recommendation] = []

        for similar in self.find_similar_items(target_product_id):
            if len(recommendations) >= limit:
                break
            candidate_id = similar["product_id_2"]
            if candidate_id in user_items:
                continue
            product = self.catalog.get_product(candidate_id)
            if product is None:
                continue
            recommendations.append(
                {
                    "product_id": candidate_id,
                    "product": product,
                    "score": similar["score"],
                    "reason": {
                        "type": "collaborative",
                        "explanation": "Similar to products you've shown interest in",
                        "confidence": similar["score"],
                        "factors": ["item_similarity", "user_preferences"],
                    },
                    "algorithm": "item_based_cf",
                }
            )

        return recommendations

    def clear_cache(self) -> None:
        self.similarity_cache.clear()
        self.item_similarities = {}
