import numpy as np
import pytest

from common.errors import InvalidInput, UpstreamFailure
from common.cache import TTLCache
from recommenders import (
    CollaborativeFilteringEngine,
    ContentBasedFilteringEngine,
    RecommendationOrchestrator,
    build_recommendation_config,
    with_fallback,
    with_rerank,
)
from recommenders.orchestrator import apply_business_rules, deduplicate_and_sort


class BrokenUserStore:
    """Per-user reads fail; the aggregate view is empty."""

    def get_user_behaviors(self, user_id):
        raise UpstreamFailure("behavior store offline")

    def append_user_behavior(self, user_id, behavior):
        raise UpstreamFailure("behavior store offline")

    def get_all_user_behaviors(self):
        return {}


class BrokenStore(BrokenUserStore):
    def get_all_user_behaviors(self):
        raise UpstreamFailure("behavior store offline")


class ExplodingEngine:
    def get_recommendations(self, *args, **kwargs):
        raise RuntimeError("branch failed")

    def clear_cache(self):
        pass


def _make_rec(product_id, score, category="electronics"):
    return {
        "product_id": product_id,
        "product": {"id": product_id, "category": category},
        "score": score,
        "reason": {"type": "popular", "explanation": "", "confidence": 0.5, "factors": []},
        "algorithm": "popularity",
    }


def _request(**kwargs):
    request = {"user_id": "alice", "limit": 10}
    request.update(kwargs)
    return request


@pytest.fixture
def orchestrator(catalog, behavior_store):
    return RecommendationOrchestrator(catalog, behavior_store, rng=np.random.default_rng(7))


def test_apply_business_rules():
    recs = [_make_rec("a", 0.9), _make_rec("b", 0.5, category="home"), _make_rec("c", 0.1), _make_rec("d", 0.8)]
    request = {"exclude_product_ids": ["d"], "category": "electronics"}
    assert [r["product_id"] for r in apply_business_rules(recs, request)] == ["a"]


def test_deduplicate_and_sort_keeps_first_occurrence():
    recs = [_make_rec("a", 0.3), _make_rec("b", 0.5), _make_rec("a", 0.9)]
    result = deduplicate_and_sort(recs)
    assert [(r["product_id"], r["score"]) for r in result] == [("b", 0.5), ("a", 0.3)]


def test_hybrid_response_shape(orchestrator):
    response = orchestrator.get_recommendations(_request(limit=3))
    recs = response["recommendations"]
    metadata = response["metadata"]

    assert 0 < len(recs) <= 3
    ids = [r["product_id"] for r in recs]
    assert len(ids) == len(set(ids))
    assert [r["score"] for r in recs] == sorted((r["score"] for r in recs), reverse=True)
    assert all(r["score"] > 0.1 for r in recs)
    assert metadata["algorithm"] == "hybrid"
    assert metadata["cache_hit"] is False
    assert metadata["fallback"] is False
    assert metadata["total_count"] >= len(recs)
    assert metadata["execution_time"] >= 0


def test_hybrid_weights_collaborative_branch(orchestrator):
    recs = orchestrator.get_recommendations(_request())["recommendations"]
    p2 = next(r for r in recs if r["product_id"] == "p2")
    # collaborative result arrives first and wins dedupe: 1.0 * 0.4
    assert p2["algorithm"] == "user_based_cf"
    assert p2["score"] == pytest.approx(0.4)


def test_second_identical_request_is_cache_hit(orchestrator):
    first = orchestrator.get_recommendations(_request(limit=4))
    second = orchestrator.get_recommendations(_request(limit=4))

    assert second["metadata"]["cache_hit"] is True
    assert [r["product_id"] for r in second["recommendations"]] == [r["product_id"] for r in first["recommendations"]]

    orchestrator.clear_cache()
    third = orchestrator.get_recommendations(_request(limit=4))
    assert third["metadata"]["cache_hit"] is False


def test_single_algorithm_request(orchestrator):
    response = orchestrator.get_recommendations(_request(algorithm="popularity", limit=5))
    assert response["metadata"]["algorithm"] == "popularity"
    assert {r["algorithm"] for r in response["recommendations"]} == {"popularity"}
    assert len(response["recommendations"]) == 5


def test_exclusions_and_category_are_honored(orchestrator):
    response = orchestrator.get_recommendations(_request(category="electronics", exclude_product_ids=["p2"]))
    recs = response["recommendations"]

    assert recs
    assert all(r["product"]["category"] == "electronics" for r in recs)
    assert "p2" not in {r["product_id"] for r in recs}


def test_rerank_keeps_scores_sorted(catalog, behavior_store):
    config = with_rerank(build_recommendation_config(), diversity_weight=0.05, recency_weight=0.05)
    orchestrator = RecommendationOrchestrator(catalog, behavior_store, config=config)

    recs = orchestrator.get_recommendations(_request())["recommendations"]
    assert [r["score"] for r in recs] == sorted((r["score"] for r in recs), reverse=True)


def test_store_failure_falls_back_to_popular(catalog):
    config = with_fallback(build_recommendation_config(), min_recommendations=5)
    orchestrator = RecommendationOrchestrator(catalog, BrokenUserStore(), config=config, rng=np.random.default_rng(1))

    response = orchestrator.get_recommendations(_request(limit=3))

    assert response["metadata"]["fallback"] is True
    assert response["metadata"]["algorithm"] == "popularity"
    assert response["metadata"]["total_count"] == 5
    recs = response["recommendations"]
    assert [r["product_id"] for r in recs] == ["p1", "p2", "p3"]
    assert all(r["reason"]["factors"] == ["fallback_mode"] for r in recs)
    assert recs[0]["reason"]["confidence"] == 0.5


def test_branch_failure_aborts_hybrid_and_falls_back(catalog, behavior_store):
    orchestrator = RecommendationOrchestrator(catalog, behavior_store, collaborative=ExplodingEngine())

    response = orchestrator.get_recommendations(_request(exclude_product_ids=["p1"]))

    assert response["metadata"]["fallback"] is True
    assert "p1" not in {r["product_id"] for r in response["recommendations"]}


def test_random_fallback_pads_to_minimum(catalog):
    config = with_fallback(build_recommendation_config(), use_popular=False, use_random=True, min_recommendations=4)
    orchestrator = RecommendationOrchestrator(catalog, BrokenUserStore(), config=config, rng=np.random.default_rng(3))

    recs = orchestrator.get_recommendations(_request())["recommendations"]

    assert len(recs) == 4
    assert len({r["product_id"] for r in recs}) == 4
    assert all(0.0 <= r["score"] < 0.5 for r in recs)
    assert all(r["reason"]["factors"] == ["random_fallback"] for r in recs)
    assert all(r["reason"]["confidence"] == 0.3 for r in recs)


def test_fallback_disabled_returns_empty_without_raising(catalog):
    config = with_fallback(build_recommendation_config(), use_popular=False, use_random=False)
    orchestrator = RecommendationOrchestrator(catalog, BrokenStore(), config=config)

    response = orchestrator.get_recommendations(_request())

    assert response["recommendations"] == []
    assert response["metadata"]["total_count"] == 0
    assert response["metadata"]["fallback"] is True


def test_fallback_store_failure_returns_empty(catalog):
    orchestrator = RecommendationOrchestrator(catalog, BrokenStore())
    response = orchestrator.get_recommendations(_request())
    assert response["recommendations"] == []


def test_fallback_responses_are_not_cached(catalog):
    orchestrator = RecommendationOrchestrator(catalog, BrokenUserStore())
    orchestrator.get_recommendations(_request())
    assert orchestrator.get_recommendations(_request())["metadata"]["cache_hit"] is False


@pytest.mark.parametrize(
    "request_",
    [{"limit": 5}, {"user_id": "", "limit": 5}, {"user_id": "u", "limit": 0}, {"user_id": "u", "algorithm": "magic"}],
)
def test_invalid_requests_raise(orchestrator, request_):
    with pytest.raises(InvalidInput):
        orchestrator.get_recommendations(request_)


def test_get_similar_products_delegates_to_content(orchestrator):
    recs = orchestrator.get_similar_products("p1", limit=1)
    assert [r["product_id"] for r in recs] == ["p2"]


def test_exclusions_are_part_of_the_cache_key(orchestrator):
    orchestrator.get_recommendations(_request())
    response = orchestrator.get_recommendations(_request(exclude_product_ids=["p2"]))

    assert response["metadata"]["cache_hit"] is False
    assert "p2" not in {r["product_id"] for r in response["recommendations"]}


def test_injected_caches_are_used(catalog, behavior_store):
    response_cache = TTLCache(max_size=2, ttl=5)
    neighbor_cache = TTLCache(max_size=2, ttl=5)
    product_cache = TTLCache(max_size=2, ttl=5)
    collaborative = CollaborativeFilteringEngine(catalog, behavior_store, similarity_cache=neighbor_cache)
    content_based = ContentBasedFilteringEngine(catalog, behavior_store, similarity_cache=product_cache)

    orchestrator = RecommendationOrchestrator(
        catalog,
        behavior_store,
        response_cache=response_cache,
        collaborative=collaborative,
        content_based=content_based,
    )

    assert orchestrator.response_cache is response_cache
    assert orchestrator.collaborative.similarity_cache is neighbor_cache
    assert orchestrator.content_based.similarity_cache is product_cache

    orchestrator.get_recommendations(_request())
    orchestrator.get_similar_products("p1")
    assert len(response_cache) == 1
    assert "alice" in neighbor_cache
    assert len(product_cache) >= 1


def test_mutating_a_response_does_not_change_cached_results(orchestrator):
    first = orchestrator.get_recommendations(_request(limit=4))
    expected = [(r["product_id"], r["score"], r["reason"]["explanation"]) for r in first["recommendations"]]

    first["recommendations"][0]["score"] = -1.0
    first["recommendations"][0]["reason"]["explanation"] = "changed"
    first["recommendations"][0]["reason"]["factors"].append("changed")
    first["recommendations"].pop()

    hit = orchestrator.get_recommendations(_request(limit=4))
    assert hit["metadata"]["cache_hit"] is True
    assert [(r["product_id"], r["score"], r["reason"]["explanation"]) for r in hit["recommendations"]] == expected
    assert "changed" not in hit["recommendations"][0]["reason"]["factors"]

    hit["recommendations"][0]["score"] = -2.0
    again = orchestrator.get_recommendations(_request(limit=4))
    assert again["recommendations"][0]["score"] == expected[0][1]
