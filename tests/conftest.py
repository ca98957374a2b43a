import os
import tempfile
from datetime import datetime, timedelta, timezone

# Keep log files and the server database out of the project tree
_TMP_DIR = tempfile.mkdtemp(prefix="recommender-tests-")
os.environ.setdefault("RECOMMENDER_LOG_FILE", os.path.join(_TMP_DIR, "app.log"))
os.environ.setdefault("RECOMMENDER_DB_PATH", os.path.join(_TMP_DIR, "recommender.db"))
os.environ.setdefault("RECOMMENDER_CATALOG_CSV", os.path.join(_TMP_DIR, "products.csv"))

import pytest

from recommenders import InMemoryBehaviorStore, InMemoryCatalog


def _make_product(product_id, category, brand, price, tags, rating):
    return {
        "id": product_id,
        "name": f"Product {product_id}",
        "description": "",
        "price": price,
        "category": category,
        "brand": brand,
        "tags": tags,
        "attributes": {},
        "rating": rating,
        "review_count": 10,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


def _make_behavior(product_id, behavior_type="view", days_ago=1):
    return {
        "type": behavior_type,
        "product_id": product_id,
        "timestamp": datetime.now(timezone.utc) - timedelta(days=days_ago),
        "value": None,
        "context": {},
    }


@pytest.fixture
def products():
    return [
        _make_product("p1", "electronics", "Acme", 100.0, ["wireless", "audio"], 4.5),
        _make_product("p2", "electronics", "Acme", 120.0, ["wireless", "audio", "bluetooth"], 4.4),
        _make_product("p3", "electronics", "Zenith", 900.0, ["camera"], 3.0),
        _make_product("p4", "home", "HomeCo", 50.0, ["kitchen"], 4.0),
        _make_product("p5", "home", "HomeCo", 60.0, ["kitchen", "steel"], 4.2),
        _make_product("p6", "books", "Paper", 20.0, ["fiction"], 4.8),
    ]


@pytest.fixture
def catalog(products):
    return InMemoryCatalog(products)


@pytest.fixture
def behavior_store():
    """alice and bob overlap on p1 and p4; bob also bought p2. carol only touched p6."""
    return InMemoryBehaviorStore(
        {
            "alice": [_make_behavior("p1", "purchase"), _make_behavior("p4", "view")],
            "bob": [
                _make_behavior("p1", "purchase"),
                _make_behavior("p2", "purchase"),
                _make_behavior("p4", "view"),
            ],
            "carol": [_make_behavior("p6", "purchase")],
        }
    )
