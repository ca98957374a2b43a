"""
Popularity and trending lookups computed from the behavior store.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from common.constants import BEHAVIOR_WEIGHTS, PATHS, POPULARITY, TRENDING
from common.errors import InvalidInput
from common.utils import setup_logging

from .data_models import BehaviorStore, CatalogReader, Product, Recommendation, TrendingProduct

logger = setup_logging(__name__, PATHS["app_log_file"], logging.DEBUG)


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def _behavior_weight(behavior) -> float:
    # Ratings count as a single interaction regardless of their value
    return BEHAVIOR_WEIGHTS.get(behavior.get("type"), 1.0)


def popular_recommendations(
    products: List[Product],
    explanation: str = "This product is popular among other customers",
    confidence: float = 0.8,
    factors: Optional[List[str]] = None,
) -> List[Recommendation]:
    """Rank-ordered products → recommendations scored 1 - rank / n."""
    factors = factors or ["high_purchase_rate", "good_ratings"]
    n = len(products)
    return [
        {
            "product_id": product["id"],
            "product": product,
            "score": 1 - (index / n),
            "reason": {
                "type": "popular",
                "explanation": explanation,
                "confidence": confidence,
                "factors": list(factors),
            },
            "algorithm": "popularity",
        }
        for index, product in enumerate(products)
    ]


def trending_recommendations(trending: List[TrendingProduct]) -> List[Recommendation]:
    return [
        {
            "product_id": item["product_id"],
            "product": item["product"],
            "score": item["trend_score"],
            "reason": {
                "type": "trending",
                "explanation": f"This product is trending with {item['growth_rate']:.0f}% growth",
                "confidence": 0.7,
                "factors": ["high_growth_rate", "increasing_views"],
            },
            "algorithm": "trending",
        }
        for item in trending
    ]


class PopularityEngine:
    """Weighted interaction counts per product over rolling windows."""

    def __init__(self, catalog: CatalogReader, behavior_store: BehaviorStore):
        self.catalog = catalog
        self.behavior_store = behavior_store

    def _interaction_counts(self, windows: List[Tuple[datetime, datetime]]) -> List[Dict[str, float]]:
        counts: List[Dict[str, float]] = [{} for _ in windows]
        for behaviors in self.behavior_store.get_all_user_behaviors().values():
            for behavior in behaviors:
                product_id = behavior.get("product_id")
                ts = behavior.get("timestamp")
                if not product_id or not isinstance(ts, datetime):
                    continue
                ts = _as_utc(ts)
                for i, (start, end) in enumerate(windows):
                    if start <= ts < end:
                        counts[i][product_id] = counts[i].get(product_id, 0.0) + _behavior_weight(behavior)
        return counts

    def get_popular_products(
        self,
        category: Optional[str] = None,
        period: str = "weekly",
        now: Optional[datetime] = None,
    ) -> List[Product]:
        """Catalog products ordered by weighted interactions in the period; catalog order when there are none."""
        if period not in POPULARITY["period_days"]:
            raise InvalidInput(f"Unknown popularity period '{period}'")

        now = _as_utc(now or datetime.now(timezone.utc))
        start = now - timedelta(days=POPULARITY["period_days"][period])
        products = self.catalog.get_products(category)
        (counts,) = self._interaction_counts([(start, now + timedelta(microseconds=1))])

        if not counts:
            logger.debug(f"[POP] No interactions in {period} window, using catalog order")
            return products[: POPULARITY["max_products"]]

        ranked = sorted(
            products,
            key=lambda p: (counts.get(p["id"], 0.0), p.get("rating") or 0.0, p.get("review_count") or 0),
            reverse=True,
        )
        logger.debug(f"[POP] Ranked {len(ranked)} products over {len(counts)} with interactions")
        return ranked[: POPULARITY["max_products"]]

    def get_trending_products(
        self,
        category: Optional[str] = None,
        growth_threshold: float = 0.2,
        now: Optional[datetime] = None,
    ) -> List[TrendingProduct]:
        """Products whose interactions grew by at least growth_threshold versus the previous window."""
        now = _as_utc(now or datetime.now(timezone.utc))
        window = timedelta(days=TRENDING["window_days"])
        end = now + timedelta(microseconds=1)
        current, previous = self._interaction_counts([(now - window, end), (now - 2 * window, now - window)])

        growth: Dict[str, float] = {}
        for product_id, count in current.items():
            prior = previous.get(product_id, 0.0)
            rate = (count - prior) / max(prior, 1.0)
            if rate >= growth_threshold:
                growth[product_id] = rate

        candidates = []
        for product_id, rate in growth.items():
            product = self.catalog.get_product(product_id)
            if product is None or (category is not None and product.get("category") != category):
                continue
            candidates.append((product, rate))

        if not candidates:
            return []

        max_rate = max(rate for _, rate in candidates)
        trend_scores = [rate / max_rate if max_rate > 0 else 1.0 for _, rate in candidates]
        trending: List[TrendingProduct] = [
            {
                "product_id": product["id"],
                "product": product,
                "trend_score": score,
                "growth_rate": rate * 100,
            }
            for (product, rate), score in zip(candidates, trend_scores)
        ]
        trending.sort(key=lambda t: (t["trend_score"], t["growth_rate"]), reverse=True)
        logger.debug(f"[POP] {len(trending)} trending products above growth {growth_threshold}")
        return trending[: TRENDING["max_products"]]
