from datetime import datetime, timedelta, timezone

import pytest

from common.errors import InvalidInput
from recommenders import InMemoryBehaviorStore
from recommenders.popularity import PopularityEngine, popular_recommendations, trending_recommendations

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _make_behavior(product_id, behavior_type, days_ago):
    return {"type": behavior_type, "product_id": product_id, "timestamp": NOW - timedelta(days=days_ago)}


@pytest.fixture
def engine(catalog):
    store = InMemoryBehaviorStore(
        {
            "u1": [_make_behavior("p4", "purchase", 1), _make_behavior("p4", "view", 2)],
            "u2": [_make_behavior("p1", "view", 1), _make_behavior("p1", "view", 10)],
            "u3": [_make_behavior("p6", "purchase", 10), _make_behavior("p6", "view", 1)],
            "u4": [_make_behavior("p3", "view", 40)],
            "u5": [_make_behavior("p2", "view", 1), _make_behavior("p2", "view", 3)],
        }
    )
    return PopularityEngine(catalog, store)


def _ids(products):
    return [p["id"] for p in products]


def test_popular_products_ranked_by_weighted_interactions(engine):
    # p4: purchase + view = 6; p2: 2 views; p6, p1: one view each, ties broken by rating
    assert _ids(engine.get_popular_products(period="weekly", now=NOW)) == ["p4", "p2", "p6", "p1", "p5", "p3"]


def test_popular_products_monthly_window(engine):
    assert _ids(engine.get_popular_products(period="monthly", now=NOW))[:3] == ["p6", "p4", "p1"]


def test_popular_products_category_filter(engine):
    assert _ids(engine.get_popular_products(category="home", now=NOW)) == ["p4", "p5"]


def test_popular_products_without_interactions_uses_catalog_order(catalog):
    engine = PopularityEngine(catalog, InMemoryBehaviorStore())
    assert _ids(engine.get_popular_products(now=NOW)) == ["p1", "p2", "p3", "p4", "p5", "p6"]


def test_popular_products_unknown_period_raises(engine):
    with pytest.raises(InvalidInput):
        engine.get_popular_products(period="yearly")


def test_trending_products_by_growth_versus_previous_window(engine):
    trending = engine.get_trending_products(growth_threshold=0.2, now=NOW)

    # p1 is flat and p6 is shrinking, so neither trends
    assert [t["product_id"] for t in trending] == ["p4", "p2"]
    assert trending[0]["trend_score"] == pytest.approx(1.0)
    assert trending[0]["growth_rate"] == pytest.approx(600.0)
    assert trending[1]["trend_score"] == pytest.approx(2 / 6)


def test_trending_products_category_filter(engine):
    trending = engine.get_trending_products(category="electronics", now=NOW)
    assert [t["product_id"] for t in trending] == ["p2"]
    assert trending[0]["trend_score"] == pytest.approx(1.0)


def test_trending_threshold_excludes_slow_growth(engine):
    trending = engine.get_trending_products(growth_threshold=3.0, now=NOW)
    assert [t["product_id"] for t in trending] == ["p4"]


def test_popular_recommendations_scores_by_rank(products):
    recs = popular_recommendations(products[:4])
    assert [r["score"] for r in recs] == pytest.approx([1.0, 0.75, 0.5, 0.25])
    assert recs[0]["reason"]["type"] == "popular"
    assert recs[0]["reason"]["confidence"] == 0.8
    assert recs[0]["algorithm"] == "popularity"


def test_trending_recommendations_explain_growth(engine):
    recs = trending_recommendations(engine.get_trending_products(now=NOW))
    assert recs[0]["reason"]["explanation"] == "This product is trending with 600% growth"
    assert recs[0]["reason"]["type"] == "trending"
    assert recs[0]["algorithm"] == "trending"
