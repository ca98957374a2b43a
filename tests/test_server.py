import pytest
from fastapi.testclient import TestClient

from server import main
from server.recommendation_service import RecommendationService

CATALOG_CSV = """id,name,price,category,brand,tags,rating,review_count
sku-1,Wireless Earbuds,79.0,electronics,Acme,wireless|audio,4.5,120
sku-2,Bluetooth Speaker,99.0,electronics,Acme,wireless|audio|bluetooth,4.3,80
sku-3,Action Camera,399.0,electronics,Zenith,camera,3.9,40
sku-4,Chef Knife,45.0,home,HomeCo,kitchen|steel,4.7,200
"""


@pytest.fixture
def client(tmp_path, monkeypatch):
    csv_path = tmp_path / "products.csv"
    csv_path.write_text(CATALOG_CSV, encoding="utf-8")
    service = RecommendationService(db_path=str(tmp_path / "recommender.db"), catalog_csv=str(csv_path))
    monkeypatch.setattr(main, "service", service)
    return TestClient(main.app)


def _track(client, user_id, product_id, interaction_type="purchase"):
    return client.post(
        "/interactions",
        json={"user_id": user_id, "product_id": product_id, "interaction_type": interaction_type},
    )


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["recommendations_ready"] is True
    assert body["error"] is None


def test_track_interaction(client):
    response = _track(client, "alice", "sku-1", "click")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "tracked": True}

    behaviors = main.service.storage.get_user_behaviors("alice")
    assert behaviors[0]["type"] == "view"


def test_track_interaction_rejects_unknown_type(client):
    assert _track(client, "alice", "sku-1", "hover").status_code == 422


def test_recommend(client):
    for user_id, product_id in [("alice", "sku-1"), ("bob", "sku-1"), ("bob", "sku-2")]:
        _track(client, user_id, product_id)

    response = client.get("/recommend", params={"user_id": "alice", "limit": 3})
    assert response.status_code == 200
    body = response.json()

    assert 0 < len(body["recommendations"]) <= 3
    assert body["metadata"]["algorithm"] == "hybrid"
    assert body["metadata"]["fallback"] is False
    assert body["recommendations"][0]["product"]["name"]


def test_recommend_with_exclusions_and_cache(client):
    params = {"user_id": "carol", "limit": 5, "algorithm": "popularity", "exclude_product_ids": "sku-1,sku-2"}
    first = client.get("/recommend", params=params).json()
    assert [r["product_id"] for r in first["recommendations"]] == ["sku-3", "sku-4"]

    second = client.get("/recommend", params=params).json()
    assert second["metadata"]["cache_hit"] is True

    assert client.delete("/cache").status_code == 200
    third = client.get("/recommend", params=params).json()
    assert third["metadata"]["cache_hit"] is False


def test_recommend_invalid_input(client):
    assert client.get("/recommend").status_code == 422
    assert client.get("/recommend", params={"user_id": "alice", "limit": 0}).status_code == 400
    assert client.get("/recommend", params={"user_id": "alice", "algorithm": "magic"}).status_code == 400


def test_similar_products(client):
    response = client.get("/products/sku-1/similar", params={"limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["product_id"] == "sku-1"
    assert body["recommendations"][0]["product_id"] == "sku-2"


def test_similar_products_unknown_is_404(client):
    assert client.get("/products/nope/similar").status_code == 404


def test_clear_cache_rebuilds_item_table(client):
    _track(client, "alice", "sku-1")
    _track(client, "alice", "sku-4")
    response = client.delete("/cache")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "indexed_products": 2}


def test_unavailable_service_returns_503(tmp_path, monkeypatch):
    # A directory is not a valid database file
    service = RecommendationService(db_path=str(tmp_path), catalog_csv=str(tmp_path / "none.csv"))
    monkeypatch.setattr(main, "service", service)
    client = TestClient(main.app)

    assert service.ready is False
    assert client.get("/health").json()["recommendations_ready"] is False
    assert client.get("/recommend", params={"user_id": "alice"}).status_code == 503
