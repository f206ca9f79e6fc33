from fastapi.testclient import TestClient
from sqlalchemy import text

from pricetracker.api.main import create_app
from pricetracker.utils.cache import RedisCache

from factories import DownRedis


def post_batch(client, url="u1", price="100", site="Amazon", **extra):
    body = {"site": site, "products": [{"url": url, "title": "A", "price": price}], **extra}
    return client.post("/products", json=body)


def test_scenario_first_ingestion(client):
    response = post_batch(client)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["inserted"] == 1
    assert body["updated"] == 0
    assert body["productsCount"] == 1
    assert isinstance(body["searchQueryId"], int)


def test_scenario_reingestion_updates(client):
    post_batch(client, price="100")
    response = post_batch(client, price="90")
    assert response.status_code == 201
    assert (response.json()["inserted"], response.json()["updated"]) == (0, 1)

    listing = client.get("/products", params={"limit": 5}).json()
    product_id = listing["products"][0]["id"]
    product = client.get(f"/products/{product_id}").json()["product"]
    assert product["scrapedCount"] == 2
    assert product["price"] == "90"
    assert [point["price"] for point in product["priceHistory"]] == ["100", "90"]


def test_scenario_clear_requires_confirmation(client):
    post_batch(client, searchQuery="phones")
    response = client.delete("/products")
    assert response.status_code == 400
    assert "confirm=yes" in response.json()["error"]

    response = client.delete("/products", params={"confirm": "yes"})
    assert response.status_code == 200
    assert response.json()["message"] == "All data cleared"
    assert client.get("/products").json()["pagination"]["total"] == 0
    assert client.get("/searches").json()["pagination"]["total"] == 0


def test_invalid_batches_are_rejected(client):
    for body in (
        {"site": "Amazon"},
        {"site": "Amazon", "products": []},
        {"site": "Amazon", "products": "not a list"},
    ):
        response = client.post("/products", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid products data"

    response = client.post("/products", json={"site": "eBay", "products": [{"url": "u1"}]})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"
    assert client.get("/searches").json()["pagination"]["total"] == 0


def test_numeric_fields_are_accepted_as_strings(client):
    body = {"site": "Flipkart", "products": [{"url": "u1", "price": 499, "rating": 4.5, "extra": "ignored"}]}
    assert client.post("/products", json=body).status_code == 201
    product = client.get("/products").json()["products"][0]
    assert product["price"] == "499"
    assert product["rating"] == "4.5"
    assert product["site"] == "Flipkart"


def test_storage_failure_is_reported(client, engine):
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE price_history"))
    response = post_batch(client)
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to save products"
    assert body["details"]


def test_missing_product(client):
    for path in (
        "/products/999",
        "/products/not-an-id",
        "/products/²",
        "/products/99999999999999999999999",
    ):
        response = client.get(path)
        assert response.status_code == 404
        assert response.json() == {"error": "Product not found"}
        assert client.delete(path).status_code == 404


def test_delete_product(client):
    post_batch(client)
    product_id = client.get("/products").json()["products"][0]["id"]
    response = client.delete(f"/products/{product_id}")
    assert response.status_code == 200
    assert client.get(f"/products/{product_id}").status_code == 404


def test_unknown_route(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}


def test_invalid_query_parameters(client):
    response = client.get("/products", params={"sortBy": "bogus"})
    assert response.status_code == 400
    assert "bogus" in response.json()["error"]

    response = client.get("/products", params={"page": "first"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_listing_served_from_cache_and_stale_after_write(client):
    post_batch(client, url="u1")
    first = client.get("/products").json()
    assert "fromCache" not in first

    post_batch(client, url="u2")
    cached = client.get("/products").json()
    assert cached["fromCache"] is True
    assert cached["pagination"]["total"] == 1


def test_stats_invalidated_by_ingestion(client):
    post_batch(client, url="u1", searchQuery="phones")
    first = client.get("/stats").json()
    assert first["totalProducts"] == 1
    assert client.get("/stats").json()["fromCache"] is True

    post_batch(client, url="u2", site="Myntra")
    fresh = client.get("/stats").json()
    assert "fromCache" not in fresh
    assert fresh["totalProducts"] == 2
    assert fresh["bySite"] == {"Amazon": 1, "Flipkart": 0, "Myntra": 1}
    assert [s["query"] for s in fresh["recentSearches"]] == ["unknown", "phones"]


def test_cache_is_transparent(client, uncached_client):
    for i in range(3):
        post_batch(client, url=f"u{i}", price=str(100 + i))
    post_batch(client, url="u0", price="95")

    params = {"limit": 2, "sortBy": "url", "order": "asc"}
    client.get("/products", params=params)
    cached = client.get("/products", params=params).json()
    direct = uncached_client.get("/products", params=params).json()
    assert cached.pop("fromCache") is True
    assert cached == direct

    client.get("/stats")
    cached_stats = client.get("/stats").json()
    direct_stats = uncached_client.get("/stats").json()
    assert cached_stats.pop("fromCache") is True
    cached_stats.pop("lastUpdated")
    direct_stats.pop("lastUpdated")
    assert cached_stats == direct_stats


def test_unreachable_cache_falls_back_to_storage(engine):
    app = create_app(engine=engine, cache=RedisCache(DownRedis()))
    with TestClient(app) as client:
        assert post_batch(client, url="u1").status_code == 201
        assert post_batch(client, url="u2").status_code == 201

        for _ in range(2):
            listing = client.get("/products")
            assert listing.status_code == 200
            assert "fromCache" not in listing.json()
            assert listing.json()["pagination"]["total"] == 2

        stats = client.get("/stats")
        assert stats.status_code == 200
        assert "fromCache" not in stats.json()
        assert stats.json()["totalProducts"] == 2

        assert client.delete("/products", params={"confirm": "yes"}).status_code == 200
        assert client.get("/health").json()["cacheConnected"] is False


def test_full_text_search_endpoint(client):
    body = {
        "site": "Amazon",
        "products": [
            {"url": "p1", "title": "Wireless earbuds", "brand": "Noise"},
            {"url": "p2", "title": "Wired earphones", "brand": "boAt"},
        ],
    }
    client.post("/products", json=body)
    response = client.get("/products/search/earbuds")
    assert response.status_code == 200
    payload = response.json()
    assert [p["url"] for p in payload["products"]] == ["p1"]
    assert payload["pagination"]["total"] == 1


def test_search_history(client):
    post_batch(client, searchQuery="phones", url="u1")
    post_batch(client, searchQuery="laptops", url="u2")
    payload = client.get("/searches", params={"limit": 1}).json()
    assert payload["searches"][0]["query"] == "laptops"
    assert payload["pagination"] == {"total": 2, "page": 1, "limit": 1, "pages": 2}


def test_health(client, uncached_client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["storageConnected"] is True
    assert body["cacheConnected"] is True
    assert body["version"] == "1.0.0"
    assert body["uptime"] >= 0
    assert uncached_client.get("/health").json()["cacheConnected"] is False
