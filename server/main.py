import traceback
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from common.constants import PATHS
from common.errors import InvalidInput, NotFound
from common.utils import setup_logging
from server.recommendation_service import RecommendationService
from server.schemas import (
    InteractionRequest,
    InteractionResponse,
    RecommendationOut,
    RecommendResponse,
    SimilarProductsResponse,
)

app = FastAPI(title="Product Recommendation API", version="0.1.0")

# Add CORS for local dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = RecommendationService()
logger = setup_logging(__name__, PATHS["app_log_file"])


def _require_ready():
    if not service.ready:
        raise HTTPException(status_code=503, detail="Recommendation service is not available. Check the database path.")


@app.get("/health")
def health():
    return {
        "status": "ok",
        "recommendations_ready": service.ready,
        "error": service.init_error,
    }


@app.get("/recommend", response_model=RecommendResponse)
def recommend(
    user_id: str,
    limit: int = 10,
    product_id: Optional[str] = None,
    category: Optional[str] = None,
    algorithm: Optional[str] = None,
    exclude_product_ids: Optional[str] = None,
):
    try:
        _require_ready()

        # Comma separated ids from query
        exclude = []
        if exclude_product_ids:
            exclude = [s.strip() for s in exclude_product_ids.split(",") if s.strip()]

        response = service.recommend(
            user_id=user_id,
            limit=limit,
            product_id=product_id,
            category=category,
            algorithm=algorithm,
            exclude_product_ids=exclude,
        )
        return RecommendResponse(**response)
    except HTTPException:
        raise
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /recommend: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/products/{product_id}/similar", response_model=SimilarProductsResponse)
def similar_products(product_id: str, limit: int = 10):
    """Products that look like product_id (category, brand, price, tags, rating, attributes)."""
    try:
        _require_ready()
        if limit <= 0:
            raise HTTPException(status_code=400, detail="limit must be a positive integer")

        recs = service.similar_products(product_id, limit)
        return SimilarProductsResponse(product_id=product_id, recommendations=[RecommendationOut(**r) for r in recs])
    except HTTPException:
        raise
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /products/{product_id}/similar: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/interactions", response_model=InteractionResponse)
def track_interaction(payload: InteractionRequest):
    try:
        _require_ready()

        logger.info(
            f"Interaction: user={payload.user_id}, product={payload.product_id}, type={payload.interaction_type}"
        )
        tracked = service.track(payload.user_id, payload.product_id, payload.interaction_type, payload.context)
        return InteractionResponse(status="ok" if tracked else "ignored", tracked=tracked)
    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /interactions: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/cache")
def clear_cache():
    """Clear response, neighbor and similarity caches and rebuild the item table."""
    try:
        _require_ready()
        indexed = service.clear_cache()
        return {"status": "ok", "indexed_products": indexed}
    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /cache: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))
