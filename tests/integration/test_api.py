"""
HTTP API 통합 테스트 (메모리 DB + MockTransport).
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from backoffice.api.deps import get_shopee_client
from backoffice.db import get_session
from backoffice.main import app
from backoffice.services.catalog_repository import CatalogRepository
from backoffice.services.pricing.fee_settings import FeeSettingsRepository
from backoffice.services.pricing.order_profit import OrderCostRepository
from backoffice.services.pricing.rules import PriceRuleRepository
from backoffice.services.token_service import CredentialStore

SHOP_ID = 55501


def _shopee_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/v2/auth/token/get":
        return httpx.Response(200, json={"error": "", "access_token": "acc-issued-1234", "refresh_token": "ref-1", "expire_in": 14400})
    if path == "/api/v2/auth/access_token/get":
        return httpx.Response(200, json={"error": "", "access_token": "acc-refreshed-99", "refresh_token": "ref-2", "expire_in": 14400})
    if path == "/api/v2/product/get_item_list":
        if request.url.params["access_token"] == "bad-token":
            return httpx.Response(403, json={"error": "error_auth", "message": "Invalid access_token.", "request_id": "r-1"})
        return httpx.Response(200, json={
            "error": "",
            "response": {"item": [{"item_id": 1}, {"item_id": 2}], "has_next_page": False, "next_offset": 0},
        })
    if path == "/api/v2/product/get_item_base_info":
        ids = [int(i) for i in request.url.params["item_id_list"].split(",")]
        return httpx.Response(200, json={
            "error": "",
            "response": {
                "item_list": [
                    {
                        "item_id": i,
                        "item_name": f"Item {i}",
                        "item_status": "NORMAL",
                        "price_info": [{"currency": "TWD", "original_price": 500, "current_price": 500}],
                    }
                    for i in ids
                ]
            },
        })
    if path == "/api/v2/order/get_order_list":
        return httpx.Response(200, json={
            "error": "",
            "response": {"order_list": [{"order_sn": "A1"}, {"order_sn": "A2"}], "more": False, "next_cursor": ""},
        })
    if path == "/api/v2/order/get_order_detail":
        sns = request.url.params["order_sn_list"].split(",")
        return httpx.Response(200, json={
            "error": "",
            "response": {
                "order_list": [
                    {"order_sn": sn, "order_status": "READY_TO_SHIP", "currency": "TWD", "total_amount": 1435}
                    for sn in sns
                ]
            },
        })
    if path == "/api/v2/product/update_price":
        return httpx.Response(200, json={"error": "", "request_id": "r-price", "response": {"success_list": []}})
    if path == "/api/v2/product/update_stock":
        return httpx.Response(200, json={"error": "error_param", "message": "stock locked", "request_id": "r-stock"})
    return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def client(test_session, make_client):
    def _session_override():
        yield test_session

    async def _client_override():
        shopee = make_client(_shopee_handler)
        try:
            yield shopee
        finally:
            await shopee.aclose()

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_shopee_client] = _client_override
    FeeSettingsRepository(test_session).ensure_defaults()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.mark.integration
class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_db_ping(self, client):
        assert client.get("/db/ping").json() == {"ok": True}


@pytest.mark.integration
class TestPricingApi:

    def test_recommend(self, client):
        resp = client.post("/api/pricing/recommend", json={"cost_price": 3000, "region": "TW", "margin_target": 0.15})

        assert resp.status_code == 200
        body = resp.json()
        assert body["region"] == "TW"
        assert body["recommendation"]["recommendedPrice"] == 6744
        assert body["recommendation"]["priceLocal"] == 1435

    def test_recommend_zero_cost(self, client):
        resp = client.post("/api/pricing/recommend", json={"cost_price": 0})
        assert resp.status_code == 200
        assert resp.json()["recommendation"] is None

    def test_recommend_fee_overflow_is_422(self, client):
        client.put("/api/pricing/regions/TW", json={"commission_rate": 0.9})

        resp = client.post("/api/pricing/recommend", json={"cost_price": 3000, "margin_target": 0.5})

        assert resp.status_code == 422
        assert resp.json()["detail"]["error_code"] == "COMPUTATION"

    def test_unknown_region_is_422(self, client):
        resp = client.post("/api/pricing/recommend", json={"cost_price": 3000, "region": "SG"})
        assert resp.status_code == 422

    def test_regions(self, client):
        resp = client.put("/api/pricing/regions/TW", json={"exchange_rate": 4.9})
        assert resp.status_code == 200
        assert resp.json()["exchange_rate"] == 4.9

        regions = client.get("/api/pricing/regions").json()
        assert [r["region"] for r in regions] == ["TW"]

    def test_new_region_requires_currency(self, client):
        resp = client.put("/api/pricing/regions/MY", json={"commission_rate": 0.1})
        assert resp.status_code == 400

    def test_evaluate_product(self, client, test_session):
        repo = CatalogRepository(test_session)
        item = repo.update_local_fields(SHOP_ID, "1001", cost_price=100)
        item.current_price = 1000
        test_session.commit()

        PriceRuleRepository(test_session).create(SHOP_ID, "sale", "percentage", adjustment_value=0.1)

        resp = client.post("/api/pricing/products/1001/evaluate", json={"apply": True})

        assert resp.status_code == 200
        assert resp.json()["newPrice"] == 900.0
        assert CatalogRepository(test_session).get("1001").custom_price == 900

    def test_evaluate_unknown_product(self, client):
        resp = client.post("/api/pricing/products/404/evaluate", json={})
        assert resp.status_code == 404

    def test_order_profit(self, client, test_session):
        OrderCostRepository(test_session).upsert(SHOP_ID, "A1", sales_local=1435, product_cost=3000)

        body = client.get(f"/api/pricing/orders/{SHOP_ID}/profit").json()

        assert body["summary"]["orders"] == 1
        assert body["orders"][0]["profit"] == 1384.0
        assert body["orders"][0]["orderStatus"] is None
        assert body["orders"][0]["status"] == "pending"


@pytest.mark.integration
class TestTokenApi:

    def test_auth_url(self, client):
        resp = client.get("/api/tokens/auth-url", params={"redirectUrl": "https://admin.example.com/cb"})
        assert resp.status_code == 200
        assert "redirect=https%3A%2F%2Fadmin.example.com%2Fcb" in resp.json()["url"]

    def test_exchange_and_get(self, client):
        resp = client.post("/api/tokens/exchange", json={"code": "auth-code", "shop_id": SHOP_ID, "region": "TW"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["access_token"] == "acc-****1234"
        assert body["state"] == "authorized"
        assert body["is_expired"] is False

        assert client.get(f"/api/tokens/{SHOP_ID}").json()["shop_id"] == SHOP_ID

    def test_unknown_credential(self, client):
        assert client.get("/api/tokens/999").status_code == 404
        assert client.post("/api/tokens/999/refresh").status_code == 404
        assert client.delete("/api/tokens/999").status_code == 404

    def test_refresh_and_delete(self, client, test_session):
        now = datetime.now(timezone.utc)
        CredentialStore(test_session).put(SHOP_ID, "acc-old", "ref-old", now - timedelta(minutes=1), now + timedelta(days=10))

        resp = client.post(f"/api/tokens/{SHOP_ID}/refresh")
        assert resp.status_code == 200
        assert resp.json()["state"] == "authorized"

        assert client.delete(f"/api/tokens/{SHOP_ID}").json() == {"deleted": True, "shop_id": SHOP_ID}


@pytest.mark.integration
class TestSyncApi:

    def test_sync_with_explicit_token(self, client):
        resp = client.post(f"/api/sync/{SHOP_ID}/products", params={"access_token": "tok"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["synced"] == 2
        assert body["failed"] == 0
        assert body["totalFetched"] == 2
        assert body["status"] == "success"

        runs = client.get(f"/api/sync/{SHOP_ID}/runs").json()["runs"]
        assert len(runs) == 1
        assert runs[0]["items_synced"] == 2

    def test_sync_uses_stored_credential(self, client, test_session):
        now = datetime.now(timezone.utc)
        CredentialStore(test_session).put(SHOP_ID, "stored-token", "ref", now + timedelta(hours=1), now + timedelta(days=10))

        resp = client.post(f"/api/sync/{SHOP_ID}/products")

        assert resp.status_code == 200
        assert resp.json()["synced"] == 2

    def test_sync_without_credential_is_404(self, client):
        resp = client.post(f"/api/sync/{SHOP_ID}/products")

        assert resp.status_code == 404
        assert resp.json()["detail"]["error_code"] == "CREDENTIAL_NOT_FOUND"

    def test_sync_upstream_error_is_400(self, client):
        resp = client.post(f"/api/sync/{SHOP_ID}/products", params={"access_token": "bad-token"})

        assert resp.status_code == 400
        assert resp.json()["detail"]["context"]["error"] == "error_auth"
        runs = client.get(f"/api/sync/{SHOP_ID}/runs").json()["runs"]
        assert runs[0]["status"] == "failure"

    def test_order_sync_keeps_manual_costs(self, client, test_session):
        OrderCostRepository(test_session).upsert(SHOP_ID, "A1", product_cost=3000)

        resp = client.post(f"/api/sync/{SHOP_ID}/orders", params={"access_token": "tok"})

        assert resp.status_code == 200
        assert resp.json()["synced"] == 2
        assert resp.json()["status"] == "success"

        body = client.get(f"/api/pricing/orders/{SHOP_ID}/profit").json()
        assert [o["orderId"] for o in body["orders"]] == ["A1", "A2"]
        assert body["orders"][0]["orderStatus"] == "READY_TO_SHIP"
        assert body["orders"][0]["status"] == "processing"
        assert body["orders"][0]["profit"] == 1384.0

        runs = client.get(f"/api/sync/{SHOP_ID}/runs").json()["runs"]
        assert runs[0]["sync_type"] == "orders"

    def test_order_sync_without_credential_is_404(self, client):
        assert client.post(f"/api/sync/{SHOP_ID}/orders").status_code == 404


@pytest.mark.integration
class TestListingApi:

    def _seed(self, test_session):
        CatalogRepository(test_session).update_local_fields(SHOP_ID, "1001", custom_price=1290)

    def test_push_price(self, client, test_session):
        self._seed(test_session)

        resp = client.post("/api/listings/1001/update", json={"update_type": "price", "access_token": "tok"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        assert body["results"]["price"]["requestId"] == "r-price"

    def test_partial_failure_is_207(self, client, test_session):
        self._seed(test_session)

        resp = client.post("/api/listings/1001/update", json={"stock": 5, "access_token": "tok"})

        assert resp.status_code == 207
        body = resp.json()
        assert body["status"] == "partial_error"
        assert body["results"]["price"]["error"] == ""
        assert body["results"]["stock"]["error"] == "error_param"

    def test_nothing_to_send_is_400(self, client, test_session):
        CatalogRepository(test_session).update_local_fields(SHOP_ID, "1001", cost_price=100)

        resp = client.post("/api/listings/1001/update", json={"update_type": "price", "access_token": "tok"})

        assert resp.status_code == 400

    def test_unknown_item_is_404(self, client):
        resp = client.post("/api/listings/404/update", json={"price": 100, "access_token": "tok"})
        assert resp.status_code == 404

    def test_invalid_payload_is_422(self, client, test_session):
        self._seed(test_session)
        resp = client.post("/api/listings/1001/update", json={"update_type": "images"})
        assert resp.status_code == 422
