"""
Centralized configuration for the recommendation engine.
Defines all paths, default weights and thresholds used across engines.
"""

import os
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
APP_LOGS_DIR = LOGS_DIR / "app_logs"

date_str = datetime.now().strftime("%m%d%Y")

PATHS = {
    "app_log_file": os.environ.get("RECOMMENDER_LOG_FILE", str(APP_LOGS_DIR / f"{date_str}_1.log")),
    "database": os.environ.get("RECOMMENDER_DB_PATH", str(DATA_DIR / "recommender.db")),
    "catalog_csv": os.environ.get("RECOMMENDER_CATALOG_CSV", str(DATA_DIR / "products.csv")),
}

# Per-branch enable flag and weight. Weights multiply each branch's [0, 1] score
# before merging and are not renormalized.
ALGORITHMS = {
    "collaborative": {"enabled": True, "weight": 0.4},
    "content_based": {"enabled": True, "weight": 0.3},
    "popularity": {"enabled": True, "weight": 0.2, "period": "weekly"},
    "trending": {"enabled": True, "weight": 0.1, "growth_threshold": 0.2},
}

CACHE = {
    "enabled": True,
    "ttl": 3600,  # seconds
    "max_size": 1000,
}

FALLBACK = {
    "use_popular": True,
    "use_random": True,
    "min_recommendations": 5,
}

# Business rules applied after merging
RECOMMEND = {
    "k": 10,
    "min_score": 0.1,
    "candidate_multiplier": 2,  # each branch is asked for limit * multiplier candidates
    "max_workers": 4,
}

# Optional re-ranking; 0.0 disables the step
RERANK = {
    "diversity_weight": 0.0,
    "recency_weight": 0.0,
}

COLLABORATIVE = {
    "min_similarity": 0.1,
    "max_neighbors": 50,
    "similarity_metric": "cosine",  # "cosine" or "pearson"
    "cache_ttl": 3600,
    "cache_max_size": 1000,
}

CONTENT = {
    "attribute_weights": {
        "category": 0.3,
        "brand": 0.2,
        "price": 0.15,
        "tags": 0.25,
        "rating": 0.1,
    },
    "attribute_map_weight": 0.1,
    "min_score": 0.1,
    "top_categories": 10,
    "top_brands": 10,
    "top_tags": 20,
    "default_price_range": {"min": 0.0, "max": 1000.0},
    "cache_ttl": 3600,
    "cache_max_size": 1000,
}

# Implicit-feedback weight per behavior type. "rating" uses the behavior value.
BEHAVIOR_WEIGHTS = {
    "purchase": 5.0,
    "cart": 3.0,
    "wishlist": 2.0,
    "view": 1.0,
    "search": 1.0,
}

BEHAVIOR_TYPES = ("view", "purchase", "cart", "wishlist", "rating", "search")

RECOMMENDATION_TYPES = (
    "collaborative",
    "content",
    "popular",
    "trending",
    "recently_viewed",
    "cross_sell",
    "up_sell",
)

POPULARITY = {
    "period_days": {"daily": 1, "weekly": 7, "monthly": 30},
    "max_products": 20,
}

TRENDING = {
    "window_days": 7,
    "max_products": 20,
}
