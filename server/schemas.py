from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProductOut(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float
    category: Optional[str] = None
    brand: Optional[str] = ""
    tags: list[str] = []
    attributes: dict[str, Any] = {}
    image_url: str = ""
    rating: float = 0.0
    review_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecommendationReasonOut(BaseModel):
    type: str
    explanation: str
    confidence: float
    factors: list[str]


class RecommendationOut(BaseModel):
    product_id: str
    product: ProductOut
    score: float
    reason: RecommendationReasonOut
    algorithm: str


class RecommendationMetadataOut(BaseModel):
    total_count: int
    algorithm: str
    execution_time: float
    cache_hit: bool
    fallback: bool = False


class RecommendResponse(BaseModel):
    recommendations: list[RecommendationOut]
    metadata: RecommendationMetadataOut


class SimilarProductsResponse(BaseModel):
    product_id: str
    recommendations: list[RecommendationOut]


class InteractionRequest(BaseModel):
    """
    Interaction event from the storefront.

    interaction_type: "view", "click" (stored as a view) or "purchase"
    """
    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    interaction_type: str = Field(..., pattern="^(view|click|purchase)$")
    context: Optional[dict[str, Any]] = None


class InteractionResponse(BaseModel):
    status: str
    tracked: bool
