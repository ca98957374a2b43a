"""
Content-based recommendations from catalog attributes.
Personalized mode scores products against a behavior-derived preference profile;
similar-items mode scores products against a target product.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from common.cache import TTLCache
from common.constants import CONTENT, PATHS
from common.errors import InvalidInput, NotFound
from common.helpers import jaccard_similarity
from common.utils import setup_logging

from .data_models import (
    BehaviorStore,
    CatalogReader,
    PriceRange,
    Product,
    ProductSimilarity,
    Recommendation,
    User,
    UserPreferences,
)

logger = setup_logging(__name__, PATHS["app_log_file"], logging.DEBUG)

PROFILE_BEHAVIOR_TYPES = ("purchase", "view", "cart")
TAG_MATCH_THRESHOLD = 0.3


def default_preferences() -> UserPreferences:
    return {
        "categories": [],
        "brands": [],
        "price_range": dict(CONTENT["default_price_range"]),
        "tags": [],
        "attributes": {},
    }


def price_score(price_range: PriceRange, price: float) -> float:
    """1.0 inside [min, max], falling linearly to 0 with relative distance outside it."""
    low, high = price_range["min"], price_range["max"]
    if low <= price <= high:
        return 1.0
    if price < low:
        return max(0.0, 1.0 - (low - price) / low) if low > 0 else 0.0
    return max(0.0, 1.0 - (price - high) / high) if high > 0 else 0.0


def tag_overlap(user_tags: Sequence[str], product_tags: Sequence[str]) -> float:
    if not user_tags or not product_tags:
        return 0.0
    return jaccard_similarity(set(user_tags), set(product_tags))


def attribute_similarity(attrs_a: Mapping[str, Any], attrs_b: Mapping[str, Any]) -> float:
    """Fraction of keys (across both maps) whose values match."""
    attrs_a, attrs_b = attrs_a or {}, attrs_b or {}
    all_keys = set(attrs_a) | set(attrs_b)
    if not all_keys:
        return 0.0
    matches = sum(1 for key in all_keys if key in attrs_a and key in attrs_b and attrs_a[key] == attrs_b[key])
    return matches / len(all_keys)


class ContentBasedFilteringEngine:
    """Attribute-overlap scoring for personalized and similar-items recommendations."""

    def __init__(
        self,
        catalog: CatalogReader,
        behavior_store: BehaviorStore,
        similarity_cache: Optional[TTLCache] = None,
        attribute_weights: Optional[Dict[str, float]] = None,
    ):
        self.catalog = catalog
        self.behavior_store = behavior_store
        self.similarity_cache = (
            similarity_cache
            if similarity_cache is not None
            else TTLCache(max_size=CONTENT["cache_max_size"], ttl=CONTENT["cache_ttl"])
        )
        self.attribute_weights: Dict[str, float] = dict(CONTENT["attribute_weights"])
        if attribute_weights:
            self.update_attribute_weights(attribute_weights)

    def get_recommendations(
        self,
        user: User,
        products: List[Product],
        target_product_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[Recommendation]:
        if target_product_id:
            return self._get_similar_product_recommendations(target_product_id, products, limit)
        return self._get_personalized_recommendations(user, products, limit)

    # ===================================================================
    # Personalized mode
    # ===================================================================
    def _get_personalized_recommendations(self, user: User, products: List[Product], limit: int) -> List[Recommendation]:
        profile = self.build_user_profile(user)
        logger.debug(
            f"[CB] Profile for user={user.get('id')}: categories={profile['categories'][:3]}, "
            f"brands={profile['brands'][:3]}, price_range={profile['price_range']}"
        )

        recommendations: List[Recommendation] = []
        for product in products:
            score = self.score_user_product(profile, product)
            if score <= CONTENT["min_score"]:
                continue
            recommendations.append(
                {
                    "product_id": product["id"],
                    "product": product,
                    "score": score,
                    "reason": {
                        "type": "content",
                        "explanation": self.generate_explanation(profile, product),
                        "confidence": min(score, 0.9),
                        "factors": self.get_matching_factors(profile, product),
                    },
                    "algorithm": "content_based",
                }
            )

        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        logger.debug(f"[CB] {len(recommendations)} of {len(products)} products above threshold")
        return recommendations[:limit]

    def build_user_profile(self, user: User) -> UserPreferences:
        """Rank categories, brands and tags by interaction frequency; derive price range from purchases."""
        preferences = default_preferences()
        stated = user.get("preferences") or {}
        for key in preferences:
            if key in stated:
                preferences[key] = stated[key]

        category_freq: Counter = Counter()
        brand_freq: Counter = Counter()
        tag_freq: Counter = Counter()
        total_price = 0.0
        price_count = 0

        for behavior in self.behavior_store.get_user_behaviors(user["id"]):
            if behavior.get("type") not in PROFILE_BEHAVIOR_TYPES:
                continue
            product = self.catalog.get_product(behavior.get("product_id"))
            if product is None:
                continue

            if product.get("category"):
                category_freq[product["category"]] += 1
            if product.get("brand"):
                brand_freq[product["brand"]] += 1
            for tag in product.get("tags") or []:
                tag_freq[tag] += 1

            if behavior["type"] == "purchase":
                total_price += float(product.get("price") or 0.0)
                price_count += 1

        if category_freq:
            preferences["categories"] = [c for c, _ in category_freq.most_common(CONTENT["top_categories"])]
        if brand_freq:
            preferences["brands"] = [b for b, _ in brand_freq.most_common(CONTENT["top_brands"])]
        if tag_freq:
            preferences["tags"] = [t for t, _ in tag_freq.most_common(CONTENT["top_tags"])]
        if price_count > 0:
            avg_price = total_price / price_count
            preferences["price_range"] = {"min": max(0.0, avg_price * 0.5), "max": avg_price * 2}

        return preferences

    def score_user_product(self, profile: UserPreferences, product: Product) -> float:
        """Weighted attribute match divided by the total weight applied."""
        weights = self.attribute_weights
        score = 0.0
        total_weight = 0.0

        if product.get("category") is not None:
            if product["category"] in profile["categories"]:
                score += weights["category"]
            total_weight += weights["category"]

        if product.get("brand") is not None:
            if product["brand"] in profile["brands"]:
                score += weights["brand"]
            total_weight += weights["brand"]

        if product.get("price") is not None:
            score += price_score(profile["price_range"], float(product["price"])) * weights["price"]
            total_weight += weights["price"]

        if product.get("tags") is not None:
            score += tag_overlap(profile["tags"], product["tags"]) * weights["tags"]
            total_weight += weights["tags"]

        if product.get("rating") is not None:
            score += min(float(product["rating"]) / 5, 1.0) * weights["rating"]
            total_weight += weights["rating"]

        return score / total_weight if total_weight > 0 else 0.0

    def generate_explanation(self, profile: UserPreferences, product: Product) -> str:
        reasons = []

        if product.get("category") in profile["categories"]:
            reasons.append(f"you often browse {product['category']} products")

        if product.get("brand") in profile["brands"]:
            reasons.append(f"you like {product['brand']} brand")

        product_tags = product.get("tags") or []
        if tag_overlap(profile["tags"], product_tags) >= TAG_MATCH_THRESHOLD:
            common_tags = [tag for tag in profile["tags"] if tag in product_tags]
            reasons.append(f"it has features you like: {', '.join(common_tags[:3])}")

        if not reasons:
            return "This product matches your preferences"
        return f"Recommended because {' and '.join(reasons)}"

    def get_matching_factors(self, profile: UserPreferences, product: Product) -> List[str]:
        factors = []

        if product.get("category") in profile["categories"]:
            factors.append("category_match")

        if product.get("brand") in profile["brands"]:
            factors.append("brand_preference")

        price = product.get("price")
        if price is not None and profile["price_range"]["min"] <= price <= profile["price_range"]["max"]:
            factors.append("price_range")

        if tag_overlap(profile["tags"], product.get("tags") or []) >= TAG_MATCH_THRESHOLD:
            factors.append("feature_match")

        if (product.get("rating") or 0) >= 4.0:
            factors.append("high_rating")

        return factors

    # ===================================================================
    # Similar-items mode
    # ===================================================================
    def _get_similar_product_recommendations(
        self, target_product_id: str, products: List[Product], limit: int
    ) -> List[Recommendation]:
        target = next((p for p in products if p["id"] == target_product_id), None)
        if target is None:
            target = self.catalog.get_product(target_product_id)
        if target is None:
            logger.debug(f"[CB] Target product {target_product_id} not found")
            return []

        by_id = {p["id"]: p for p in products}
        recommendations: List[Recommendation] = []
        for similarity in self.find_similar_products(target, products)[:limit]:
            product = by_id.get(similarity["product_id_2"])
            if product is None:
                continue
            recommendations.append(
                {
                    "product_id": product["id"],
                    "product": product,
                    "score": similarity["score"],
                    "reason": {
                        "type": "content",
                        "explanation": f"Similar to \"{target.get('name', target['id'])}\" based on "
                        f"{', '.join(similarity['reasons'])}",
                        "confidence": similarity["score"],
                        "factors": list(similarity["reasons"]),
                    },
                    "algorithm": "content_based",
                }
            )
        return recommendations

    def get_similar_products(self, target_product_id: str, limit: int = 10) -> List[Recommendation]:
        """Similar items for one explicitly requested product; raises NotFound if it is unknown."""
        target = self.catalog.get_product(target_product_id)
        if target is None:
            raise NotFound(f"Product {target_product_id} not found")
        return self._get_similar_product_recommendations(target_product_id, self.catalog.get_products(), limit)

    def find_similar_products(self, target: Product, products: List[Product]) -> List[ProductSimilarity]:
        """Pairwise similarity to every other candidate, cached per target and candidate set."""
        cache_key = (target["id"], hash(tuple(p["id"] for p in products)))
        cached = self.similarity_cache.get(cache_key)
        if cached is not None:
            return cached

        similarities = []
        for product in products:
            if product["id"] == target["id"]:
                continue
            similarity = self.product_similarity(target, product)
            if similarity["score"] > CONTENT["min_score"]:
                similarities.append(similarity)

        similarities.sort(key=lambda s: s["score"], reverse=True)
        self.similarity_cache.set(cache_key, similarities)
        return similarities

    def product_similarity(self, product_a: Product, product_b: Product) -> ProductSimilarity:
        weights = self.attribute_weights
        score = 0.0
        reasons = []

        if product_a.get("category") and product_a.get("category") == product_b.get("category"):
            score += weights["category"]
            reasons.append("same category")

        if product_a.get("brand") and product_a.get("brand") == product_b.get("brand"):
            score += weights["brand"]
            reasons.append("same brand")

        price_a, price_b = float(product_a.get("price") or 0.0), float(product_b.get("price") or 0.0)
        avg_price = (price_a + price_b) / 2
        if avg_price > 0:
            closeness = max(0.0, 1 - abs(price_a - price_b) / avg_price)
            if closeness > 0.7:
                score += closeness * weights["price"]
                reasons.append("similar price")

        tag_score = tag_overlap(product_a.get("tags") or [], product_b.get("tags") or [])
        if tag_score > TAG_MATCH_THRESHOLD:
            score += tag_score * weights["tags"]
            reasons.append("similar features")

        if product_a.get("rating") is not None and product_b.get("rating") is not None:
            rating_score = max(0.0, 1 - abs(product_a["rating"] - product_b["rating"]) / 5)
            if rating_score > 0.8:
                score += rating_score * weights["rating"]
                reasons.append("similar rating")

        attr_score = attribute_similarity(product_a.get("attributes"), product_b.get("attributes"))
        if attr_score > TAG_MATCH_THRESHOLD:
            score += attr_score * CONTENT["attribute_map_weight"]
            reasons.append("similar attributes")

        return {
            "product_id_1": product_a["id"],
            "product_id_2": product_b["id"],
            "score": min(score, 1.0),
            "reasons": reasons,
        }

    def update_attribute_weights(self, weights: Dict[str, float]) -> Dict[str, float]:
        """Replace individual weights, keeping every attribute present. Clears cached similarities."""
        unknown = set(weights) - set(self.attribute_weights)
        if unknown:
            raise InvalidInput(f"Unknown attribute weights: {sorted(unknown)}")
        if any(w < 0 for w in weights.values()):
            raise InvalidInput("Attribute weights must be non-negative")

        self.attribute_weights = {**self.attribute_weights, **{k: float(v) for k, v in weights.items()}}
        self.similarity_cache.clear()
        return dict(self.attribute_weights)

    def clear_cache(self) -> None:
        self.similarity_cache.clear()
