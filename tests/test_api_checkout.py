"""End-to-end tests for the customer-facing API: catalog, cart, checkout, tracking."""

import time

import pytest

import database
from checkout import issue_form_token
from regions import get_region

from conftest import make_product

CHECKOUT_FIELDS = {
    "full_name": "Amine Benali",
    "phone": "0551234567",
    "email": "amine@example.dz",
    "address": "12 Rue Didouche Mourad",
    "city": "Alger Centre",
    "wilaya_id": 16,
    "shipping_type": "home_delivery",
    "website": "",
}


@pytest.fixture
def alger_override(mongo):
    mongo["shipping_rate"].insert_one(
        {"wilaya_id": 16, "wilaya_name": "Alger", "home_delivery_cost": 800, "stop_desk_cost": 450, "is_active": True}
    )


@pytest.fixture
def filled_cart(client, product_id):
    response = client.post(
        "/cart/c1/items",
        json={"product_id": product_id, "quantity": 2, "size": "One Size", "color": "Black"},
    )
    assert response.status_code == 200
    return "c1"


class TestCatalog:
    def test_list_filters_and_sorts(self, client, mongo):
        database.create_document("product", make_product(name="B Keyboard", description="Mechanical keyboard", category="keyboards", price=9000))
        database.create_document("product", make_product(name="A Mouse", price=3000))
        database.create_document("product", make_product(name="Hidden", status="archived"))

        names = [p["name"] for p in client.get("/products", params={"sort": "price-asc"}).json()]
        assert names == ["A Mouse", "B Keyboard"]

        keyboards = client.get("/products", params={"category": "keyboards"}).json()
        assert [p["name"] for p in keyboards] == ["B Keyboard"]

        assert [p["name"] for p in client.get("/products", params={"q": "mouse"}).json()] == ["A Mouse"]
        assert [p["name"] for p in client.get("/products", params={"min_price": 5000}).json()] == ["B Keyboard"]

    def test_get_product_and_variant_stock(self, client, product_id):
        assert client.get(f"/products/{product_id}").json()["name"] == "Viper V3 Pro"

        stock = client.get(f"/products/{product_id}/stock", params={"size": "One Size", "color": "White"}).json()
        assert stock["available"] == 1

    def test_unknown_product_is_404(self, client, mongo):
        assert client.get("/products/not-an-id").status_code == 404
        assert client.get("/products/65f000000000000000000000").status_code == 404


class TestCartApi:
    def test_add_merge_update_remove(self, client, product_id):
        item = {"product_id": product_id, "size": "One Size", "color": "Black"}

        client.post("/cart/c1/items", json={**item, "quantity": 1})
        data = client.post("/cart/c1/items", json={**item, "quantity": 2}).json()
        assert len(data["items"]) == 1
        assert data["items"][0]["quantity"] == 3
        assert data["subtotal"] == 15000

        data = client.put("/cart/c1/items", json={**item, "quantity": 1}).json()
        assert data["subtotal"] == 5000

        data = client.request("DELETE", "/cart/c1/items", json=item).json()
        assert data["items"] == []

    def test_cart_survives_between_requests(self, client, filled_cart):
        data = client.get(f"/cart/{filled_cart}").json()
        assert data["total_items"] == 2

    def test_cannot_exceed_variant_stock(self, client, product_id):
        item = {"product_id": product_id, "size": "One Size", "color": "White"}
        assert client.post("/cart/c1/items", json={**item, "quantity": 1}).status_code == 200

        response = client.post("/cart/c1/items", json={**item, "quantity": 1})
        assert response.status_code == 409
        assert response.json()["error_type"] == "OutOfStockError"

    def test_unavailable_product_rejected(self, client, mongo):
        pid = database.create_document("product", make_product(status="coming_soon"))
        response = client.post("/cart/c1/items", json={"product_id": pid, "quantity": 1, "size": "One Size", "color": "Black"})
        assert response.status_code == 400

    def test_unknown_variant_rejected(self, client, product_id):
        response = client.post("/cart/c1/items", json={"product_id": product_id, "quantity": 1, "size": "XL", "color": "Black"})
        assert response.status_code == 400

    def test_clear(self, client, filled_cart):
        assert client.delete(f"/cart/{filled_cart}").json()["items"] == []


class TestCheckoutSession:
    def test_session_lists_rates_with_overrides(self, client, alger_override):
        data = client.post("/checkout/session").json()

        assert data["form_token"]
        assert data["honeypot_field"] == "website"
        assert data["min_dwell_seconds"] == 5
        assert len(data["rates"]) == 69
        alger = next(r for r in data["rates"] if r["wilaya_id"] == 16)
        assert alger["home_delivery"] == 800
        oran = next(r for r in data["rates"] if r["wilaya_id"] == 31)
        assert oran["home_delivery"] == get_region(31).home_delivery

    def test_quote(self, client, filled_cart, alger_override):
        data = client.post("/checkout/quote", json={"cart_id": filled_cart, "wilaya_id": 16, "shipping_type": "home_delivery"}).json()
        assert data == {"subtotal": 10000, "shipping_cost": 800, "total": 10800, "is_complete": True}

        data = client.post("/checkout/quote", json={"cart_id": filled_cart, "wilaya_id": 16, "shipping_type": "stop_desk"}).json()
        assert data["total"] == 10450

    def test_quote_without_region_is_incomplete(self, client, filled_cart):
        data = client.post("/checkout/quote", json={"cart_id": filled_cart}).json()
        assert data["shipping_cost"] is None
        assert data["total"] is None
        assert data["is_complete"] is False

    def test_shipping_quote_endpoint(self, client, alger_override):
        assert client.get("/shipping/quote", params={"wilaya_id": 16}).json()["stop_desk"] == 450
        assert client.get("/shipping/quote", params={"wilaya_id": 99}).status_code == 404


class TestPlaceOrder:
    def test_valid_submission_creates_one_pending_order(self, client, mongo, notifier, filled_cart, alger_override, form_token):
        response = client.post("/orders", json={**CHECKOUT_FIELDS, "cart_id": filled_cart, "form_token": form_token})

        assert response.status_code == 201
        order = response.json()
        assert order["subtotal"] == 10000
        assert order["shipping_cost"] == 800
        assert order["total"] == 10800
        assert order["status"] == "pending"
        assert order["payment_method"] == "cod"
        assert order["order_number"].startswith("ORD-")
        assert mongo["order"].count_documents({}) == 1
        assert client.get(f"/cart/{filled_cart}").json()["items"] == []
        assert [o["order_number"] for o in notifier.orders] == [order["order_number"]]

    def test_honeypot_rejects_without_order(self, client, mongo, notifier, filled_cart, form_token):
        response = client.post(
            "/orders",
            json={**CHECKOUT_FIELDS, "cart_id": filled_cart, "form_token": form_token, "website": "http://bot.example"},
        )

        assert response.status_code == 400
        assert response.json()["error_type"] == "SpamRejectedError"
        assert mongo["order"].count_documents({}) == 0
        assert notifier.orders == []

    def test_fast_submission_rejected(self, client, mongo, filled_cart):
        token = issue_form_token(loaded_at=time.time() - 2)
        response = client.post("/orders", json={**CHECKOUT_FIELDS, "cart_id": filled_cart, "form_token": token})

        assert response.status_code == 400
        assert "take your time" in response.json()["detail"]
        assert mongo["order"].count_documents({}) == 0

    def test_missing_form_token_rejected(self, client, mongo, filled_cart):
        response = client.post("/orders", json={**CHECKOUT_FIELDS, "cart_id": filled_cart})
        assert response.status_code == 400
        assert mongo["order"].count_documents({}) == 0

    def test_field_errors_reported_together(self, client, mongo, filled_cart, form_token):
        response = client.post(
            "/orders",
            json={**CHECKOUT_FIELDS, "cart_id": filled_cart, "form_token": form_token, "full_name": "", "phone": "055123456"},
        )

        assert response.status_code == 422
        assert set(response.json()["errors"]) == {"full_name", "phone"}
        assert client.get(f"/cart/{filled_cart}").json()["total_items"] == 2

    def test_empty_cart_rejected(self, client, mongo, form_token):
        response = client.post("/orders", json={**CHECKOUT_FIELDS, "cart_id": "empty", "form_token": form_token})
        assert response.status_code == 400
        assert response.json()["error_type"] == "EmptyCartError"


class TestTracking:
    def test_track_by_number(self, client, mongo, filled_cart, form_token):
        order = client.post("/orders", json={**CHECKOUT_FIELDS, "cart_id": filled_cart, "form_token": form_token}).json()
        mongo["order"].update_one({"order_number": order["order_number"]}, {"$set": {"tracking_number": "ECO 123/A"}})

        data = client.get(f"/orders/track/{order['order_number'].lower()}").json()
        assert data["status"] == "pending"
        assert data["tracking_url"] == "https://suivi.ecotrack.dz/?tracking=ECO%20123%2FA"
        assert data["items"] == [{"name": "Viper V3 Pro", "quantity": 2, "price": 5000.0}]
        assert "customer_phone" not in data

    def test_unknown_order_is_not_found(self, client, mongo):
        response = client.get("/orders/track/ORD-0")
        assert response.status_code == 404
        assert response.json()["error_type"] == "OrderNotFoundError"
