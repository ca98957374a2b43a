import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from common.constants import PATHS
from common.utils import setup_logging
from recommenders import (
    InteractionTracker,
    RecommendationConfig,
    RecommendationOrchestrator,
    RecommendationResponse,
    Recommendation,
)
from server.storage import Storage

logger = setup_logging(__name__, PATHS["app_log_file"])


class RecommendationService:
    """Service that wires the SQLite store into the orchestrator and tracker."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        catalog_csv: Optional[str] = None,
        config: Optional[RecommendationConfig] = None,
    ):
        """Open the store, seed an empty catalog from CSV and build the orchestrator."""
        self.db_path = db_path or PATHS["database"]
        self.catalog_csv = catalog_csv or PATHS["catalog_csv"]
        self._config = config

        logger.info(f"Initializing RecommendationService with db={self.db_path}")

        self.ready: bool = False
        self.init_error: Optional[str] = None

        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            self.storage = Storage(self.db_path)

            # ===================================================================
            # Seed Catalog
            # ===================================================================
            if not self.storage.get_products() and Path(self.catalog_csv).exists():
                n = self.storage.load_catalog_csv(self.catalog_csv)
                logger.info(f"Seeded catalog with {n} products from {self.catalog_csv}")

            # ===================================================================
            # Build Engines
            # ===================================================================
            self.orchestrator = RecommendationOrchestrator(self.storage, self.storage, config=config)
            self.tracker = InteractionTracker(self.storage)
            self.refresh_item_similarities()

            logger.info("✓ RecommendationService initialized successfully")
            self.ready = True

        except Exception as e:
            self.init_error = str(e)
            logger.error(f"Failed to initialize RecommendationService: {self.init_error}")
            self.ready = False

    def reinitialize(self):
        """Re-attempt to initialize, e.g. after the catalog CSV has been provided."""
        logger.info("Attempting to reinitialize RecommendationService...")
        self.__init__(self.db_path, self.catalog_csv, self._config)

    def status(self) -> Dict[str, Any]:
        products = len(self.storage.get_products()) if self.ready else 0
        return {
            "ready": self.ready,
            "products": products,
            "error": self.init_error,
        }

    def refresh_item_similarities(self) -> int:
        return self.orchestrator.collaborative.precompute_item_similarities()

    def recommend(
        self,
        user_id: str,
        limit: int = 10,
        product_id: Optional[str] = None,
        category: Optional[str] = None,
        algorithm: Optional[str] = None,
        exclude_product_ids: Optional[List[str]] = None,
    ) -> RecommendationResponse:
        if not self.ready:
            raise ValueError("Recommendation service is not available")

        return self.orchestrator.get_recommendations(
            {
                "user_id": user_id,
                "product_id": product_id,
                "category": category,
                "limit": limit,
                "algorithm": algorithm,
                "exclude_product_ids": exclude_product_ids or [],
            }
        )

    def similar_products(self, product_id: str, limit: int = 10) -> List[Recommendation]:
        if not self.ready:
            raise ValueError("Recommendation service is not available")
        return self.orchestrator.get_similar_products(product_id, limit)

    def track(
        self, user_id: str, product_id: str, interaction_type: str, context: Optional[Dict[str, Any]] = None
    ) -> bool:
        if not self.ready:
            raise ValueError("Recommendation service is not available")
        return self.tracker.track_interaction(user_id, product_id, interaction_type, context)

    def clear_cache(self) -> int:
        """Drop every cache, then rebuild the item table from the current behaviors."""
        if not self.ready:
            return 0
        self.orchestrator.clear_cache()
        return self.refresh_item_similarities()
