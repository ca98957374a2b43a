"""
Hybrid product recommendation engine.
Collaborative, content-based, popularity and trending branches merged by one orchestrator.
"""

from .data_models import (
    Product,
    User,
    UserBehavior,
    UserPreferences,
    Recommendation,
    RecommendationConfig,
    RecommendationRequest,
    RecommendationResponse,
)
from .config import build_recommendation_config, with_algorithm, with_cache, with_fallback, with_rerank
from .collaborative import CollaborativeFilteringEngine
from .content_based import ContentBasedFilteringEngine
from .popularity import PopularityEngine
from .orchestrator import RecommendationOrchestrator
from .stores import InMemoryBehaviorStore, InMemoryCatalog
from .tracker import InteractionTracker

__all__ = [
    "Product",
    "User",
    "UserBehavior",
    "UserPreferences",
    "Recommendation",
    "RecommendationConfig",
    "RecommendationRequest",
    "RecommendationResponse",
    "build_recommendation_config",
    "with_algorithm",
    "with_cache",
    "with_fallback",
    "with_rerank",
    "CollaborativeFilteringEngine",
    "ContentBasedFilteringEngine",
    "PopularityEngine",
    "RecommendationOrchestrator",
    "InMemoryBehaviorStore",
    "InMemoryCatalog",
    "InteractionTracker",
]
