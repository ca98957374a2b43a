"""
Type definitions for the recommendation engine.
Using TypedDicts for structured data with type hints, Protocols for the external stores.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, TypedDict


class Product(TypedDict, total=False):
    """Catalog snapshot. Owned by the external catalog store, never mutated here."""
    id: str
    name: str
    description: str
    price: float
    category: str
    brand: str
    tags: List[str]
    attributes: Dict[str, Any]  # free-form key/value map
    image_url: str
    rating: float  # 0-5
    review_count: int
    created_at: datetime
    updated_at: datetime


class PriceRange(TypedDict):
    min: float
    max: float


class UserPreferences(TypedDict):
    """Derived preference profile, rebuilt per request from behavior history."""
    categories: List[str]  # most frequent first
    brands: List[str]
    price_range: PriceRange
    tags: List[str]
    attributes: Dict[str, float]  # extra attribute weights


class UserBehavior(TypedDict, total=False):
    """Append-only interaction event."""
    type: str  # view | purchase | cart | wishlist | rating | search
    product_id: str
    timestamp: datetime
    value: Optional[float]  # rating value or purchase amount
    context: Dict[str, Any]


class User(TypedDict, total=False):
    id: str
    preferences: UserPreferences
    demographics: Dict[str, Any]
    behavior_history: List[UserBehavior]


class RecommendationReason(TypedDict):
    type: str  # collaborative | content | popular | trending | recently_viewed | cross_sell | up_sell
    explanation: str
    confidence: float
    factors: List[str]


class Recommendation(TypedDict):
    product_id: str
    product: Product
    score: float
    reason: RecommendationReason
    algorithm: str  # user_based_cf | item_based_cf | content_based | popularity | trending


class SimilarityScore(TypedDict):
    """User-pair similarity, cached per requesting user."""
    user_id_1: str
    user_id_2: str
    score: float
    common_items: int


class ProductSimilarity(TypedDict):
    """Product-pair similarity, cached per target product."""
    product_id_1: str
    product_id_2: str
    score: float
    reasons: List[str]


class TrendingProduct(TypedDict):
    product_id: str
    product: Product
    trend_score: float  # [0, 1]
    growth_rate: float  # percent


class AlgorithmConfig(TypedDict, total=False):
    enabled: bool
    weight: float
    period: str  # popularity only: daily | weekly | monthly
    growth_threshold: float  # trending only


class CacheConfig(TypedDict):
    enabled: bool
    ttl: float  # seconds
    max_size: int


class FallbackConfig(TypedDict):
    use_popular: bool
    use_random: bool
    min_recommendations: int


class RerankConfig(TypedDict):
    diversity_weight: float
    recency_weight: float


class RecommendationConfig(TypedDict):
    """
    Engine configuration, supplied once at construction.
    Algorithm weights are multiplicative scalers, not a probability simplex.
    """
    algorithms: Dict[str, AlgorithmConfig]  # collaborative, content_based, popularity, trending
    caching: CacheConfig
    fallback: FallbackConfig
    rerank: RerankConfig


class RecommendationRequest(TypedDict, total=False):
    user_id: str
    product_id: Optional[str]  # target product for similar-items mode
    category: Optional[str]
    limit: int
    algorithm: Optional[str]  # hybrid | collaborative | content_based | popularity | trending
    exclude_product_ids: List[str]


class RecommendationMetadata(TypedDict):
    total_count: int
    algorithm: str
    execution_time: float  # milliseconds
    cache_hit: bool
    fallback: bool


class RecommendationResponse(TypedDict):
    recommendations: List[Recommendation]
    metadata: RecommendationMetadata


class RecommendationMetrics(TypedDict):
    """Read-only summary shape; computed outside the engine."""
    click_through_rate: float
    conversion_rate: float
    average_order_value: float
    diversity: float
    novelty: float
    coverage: float


class CatalogReader(Protocol):
    def get_product(self, product_id: str) -> Optional[Product]: ...

    def get_products(self, category: Optional[str] = None) -> List[Product]: ...


class BehaviorStore(Protocol):
    def get_user_behaviors(self, user_id: str) -> List[UserBehavior]: ...

    def append_user_behavior(self, user_id: str, behavior: UserBehavior) -> None: ...

    def get_all_user_behaviors(self) -> Mapping[str, List[UserBehavior]]: ...
