"""
Similarity and ranking primitives shared by every recommender.
Pure functions: no I/O, no mutation of their inputs.
"""

from datetime import datetime, timezone
from typing import AbstractSet, Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial import distance
from sklearn.metrics.pairwise import cosine_similarity as _sk_cosine_similarity

from common.errors import InvalidInput

ONE_YEAR_SECONDS = 365 * 24 * 60 * 60


def _as_pair(vector_a: Sequence[float], vector_b: Sequence[float]):
    a = np.asarray(vector_a, dtype=np.float64).ravel()
    b = np.asarray(vector_b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise InvalidInput(f"Vectors must have the same length, got {a.size} and {b.size}")
    return a, b


# region Similarity
def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """Cosine of the angle between two equal-length vectors; 0 if either has zero magnitude."""
    a, b = _as_pair(vector_a, vector_b)
    if a.size == 0 or not a.any() or not b.any():
        return 0.0
    similarity = _sk_cosine_similarity(a.reshape(1, -1), b.reshape(1, -1))[0, 0]
    return float(np.clip(similarity, -1.0, 1.0))


def jaccard_similarity(set_a: AbstractSet, set_b: AbstractSet) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets score 0."""
    set_a, set_b = set(set_a), set(set_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def pearson_correlation(data_a: Sequence[float], data_b: Sequence[float]) -> float:
    """Pearson r over paired observations; 0 with fewer than 2 pairs or zero variance."""
    a = np.asarray(data_a, dtype=np.float64).ravel()
    b = np.asarray(data_b, dtype=np.float64).ravel()
    if a.size != b.size or a.size < 2:
        return 0.0

    a_centered = a - a.mean()
    b_centered = b - b.mean()
    denominator = np.sqrt((a_centered**2).sum() * (b_centered**2).sum())
    if denominator < 1e-12:
        return 0.0
    return float((a_centered * b_centered).sum() / denominator)


def euclidean_distance(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    a, b = _as_pair(vector_a, vector_b)
    if a.size == 0:
        return 0.0
    return float(distance.euclidean(a, b))


def manhattan_distance(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    a, b = _as_pair(vector_a, vector_b)
    if a.size == 0:
        return 0.0
    return float(distance.cityblock(a, b))


# endregion


# region Normalization
def minmax_normalize(scores: Sequence[float]) -> np.ndarray:
    """Normalize to [0, 1] range using min-max scaling. Constant input maps to all ones."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    min_score = scores.min()
    max_score = scores.max()
    if max_score - min_score == 0:
        return np.ones_like(scores)
    return (scores - min_score) / (max_score - min_score)


def softmax_normalize(scores: Sequence[float], temperature: float = 0.7) -> np.ndarray:
    """Normalize using softmax with temperature scaling."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    s = (scores - scores.mean()) / (scores.std() + 1e-8)
    s = s / max(temperature, 1e-4)
    e = np.exp(s - s.max())
    return e / (e.sum() + 1e-8)


def zscore_normalize(scores: Sequence[float]) -> np.ndarray:
    """Normalize using z-score + sigmoid squashing."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    mu, sigma = scores.mean(), scores.std()
    if sigma < 1e-8:
        return np.ones_like(scores) * 0.5
    z = (scores - mu) / sigma
    return 1.0 / (1.0 + np.exp(-z))


def normalize_scores(scores: Sequence[float], norm: str = "minmax", norm_metadata: Optional[float] = None) -> List[float]:
    """Normalize scores using specified method."""
    if norm == "softmax":
        result = softmax_normalize(scores, norm_metadata or 0.7)
    elif norm == "zscore":
        result = zscore_normalize(scores)
    else:  # minmax
        result = minmax_normalize(scores)
    return [float(x) for x in result]


def sigmoid(x: float, steepness: float = 1.0) -> float:
    return float(1.0 / (1.0 + np.exp(-steepness * x)))


def weighted_average(scores: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted mean of scores; 0 when the weights sum to 0."""
    if len(scores) != len(weights):
        raise InvalidInput(f"Scores and weights must have the same length, got {len(scores)} and {len(weights)}")

    weights_arr = np.asarray(weights, dtype=np.float64)
    total_weight = weights_arr.sum()
    if total_weight == 0:
        return 0.0
    return float((np.asarray(scores, dtype=np.float64) * weights_arr).sum() / total_weight)


# endregion


# region Re-ranking
def apply_diversity_penalty(recommendations: Sequence[Dict], diversity_weight: float = 0.1) -> List[Dict]:
    """
    Penalize repeated categories and brands in ranked order.

    Each recommendation loses diversity_weight for every earlier recommendation
    sharing its category, and the same again per earlier one sharing its brand.
    The first occurrence is never penalized. Scores floor at 0.
    """
    category_count: Dict[str, int] = {}
    brand_count: Dict[str, int] = {}
    penalized = []

    for rec in recommendations:
        product = rec.get("product") or {}
        category = product.get("category")
        brand = product.get("brand")

        category_penalty = category_count.get(category, 0) * diversity_weight if category else 0.0
        brand_penalty = brand_count.get(brand, 0) * diversity_weight if brand else 0.0

        if category:
            category_count[category] = category_count.get(category, 0) + 1
        if brand:
            brand_count[brand] = brand_count.get(brand, 0) + 1

        penalized.append({**rec, "score": max(0.0, rec["score"] - category_penalty - brand_penalty)})

    return penalized


def apply_recency_boost(
    recommendations: Sequence[Dict],
    boost_weight: float = 0.05,
    now: Optional[datetime] = None,
) -> List[Dict]:
    """Add boost_weight * max(0, 1 - age / 1 year) to each score, capped at 1.0."""
    now = now or datetime.now(timezone.utc)
    boosted = []

    for rec in recommendations:
        created_at = (rec.get("product") or {}).get("created_at")
        recency_factor = 0.0
        if isinstance(created_at, datetime):
            if created_at.tzinfo is None and now.tzinfo is not None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            elif created_at.tzinfo is not None and now.tzinfo is None:
                created_at = created_at.replace(tzinfo=None)
            age = (now - created_at).total_seconds()
            recency_factor = max(0.0, 1.0 - age / ONE_YEAR_SECONDS)

        boosted.append({**rec, "score": min(1.0, rec["score"] + recency_factor * boost_weight)})

    return boosted


# endregion
