"""
Product and stock API tests.

Verifies:
- Catalog reads are public and hide cost data and inactive products
- Catalog writes and every stock movement require the admin role
- Stock only moves through the stock endpoints, each leaving history
"""

import pytest

from voltshop.extensions import db
from voltshop.models import Product, StockHistoryEntry


def _product_payload(**overrides):
    payload = {
        "name": "MacBook Air M3",
        "brand": "Apple",
        "category": "laptops",
        "purchase_price_cents": 500_000,
        "selling_price_cents": 650_000,
    }
    payload.update(overrides)
    return payload


class TestCatalogReads:

    def test_list_is_public_without_costs(self, client, laptop, phone):
        resp = client.get("/api/products")

        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert all("purchase_price_cents" not in item for item in resp.json["items"])

    def test_admin_sees_costs(self, client, admin_headers, laptop):
        resp = client.get(f"/api/products/{laptop.id}", headers=admin_headers)
        assert resp.json["product"]["purchase_price_cents"] == 300_000

    def test_filters(self, client, laptop, phone):
        assert client.get("/api/products?category=phones").json["count"] == 1
        assert client.get("/api/products?search=thinkpad").json["items"][0]["id"] == laptop.id

    def test_pagination(self, client, laptop, phone):
        resp = client.get("/api/products?page=1&limit=1")
        assert resp.json["pagination"]["total"] == 2
        assert resp.json["pagination"]["has_next"] is True

    def test_inactive_hidden_from_public(self, client, admin_headers, laptop):
        assert client.delete(f"/api/products/{laptop.id}", headers=admin_headers).status_code == 200

        assert client.get(f"/api/products/{laptop.id}").status_code == 404
        assert client.get("/api/products").json["count"] == 0
        assert client.get(f"/api/products/{laptop.id}", headers=admin_headers).status_code == 200
        assert client.get("/api/products?includeInactive=true", headers=admin_headers).json["count"] == 1


class TestCatalogWrites:

    def test_create_with_opening_stock(self, client, admin_headers):
        resp = client.post("/api/products", json=_product_payload(stock=7), headers=admin_headers)

        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["stock"] == 7
        assert product["available_stock"] == 7

        history = db.session.query(StockHistoryEntry).filter_by(product_id=product["id"]).all()
        assert [(h.type, h.units_changed) for h in history] == [("adjustment", 7)]

    def test_customer_cannot_create(self, client, customer_headers):
        resp = client.post("/api/products", json=_product_payload(), headers=customer_headers)
        assert resp.status_code == 403

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"selling_price_cents": -1},
            {"selling_price_cents": "12.50"},
            {"warranty": "2 years"},
            {"stock": -3},
        ],
    )
    def test_invalid_product(self, client, admin_headers, overrides):
        resp = client.post("/api/products", json=_product_payload(**overrides), headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_required_fields(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "Cable"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "Missing required fields" in resp.json["message"]

    def test_duplicate_sku(self, client, admin_headers, laptop):
        resp = client.post("/api/products", json=_product_payload(sku="LEN-X1-G11"), headers=admin_headers)
        assert resp.status_code == 409

    def test_update_cannot_touch_stock(self, client, admin_headers, laptop):
        resp = client.put(f"/api/products/{laptop.id}", json={"stock": 100}, headers=admin_headers)

        assert resp.status_code == 400
        assert db.session.get(Product, laptop.id).stock == 5

    def test_update_price(self, client, admin_headers, laptop):
        resp = client.put(
            f"/api/products/{laptop.id}", json={"selling_price_cents": 470_000}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["selling_price_cents"] == 470_000


class TestStockEndpoints:

    def test_restock(self, client, admin_headers, laptop):
        resp = client.post(
            f"/api/products/{laptop.id}/restock",
            json={"quantity": 4, "notes": "Supplier delivery"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.json["product"]["stock"] == 9

        history = client.get(f"/api/products/{laptop.id}/stock-history", headers=admin_headers).json
        assert history["history"][0]["type"] == "restock"
        assert history["history"][0]["units_changed"] == 4
        assert history["history"][0]["notes"] == "Supplier delivery"

    def test_restock_requires_positive_quantity(self, client, admin_headers, laptop):
        resp = client.post(f"/api/products/{laptop.id}/restock", json={"quantity": 0}, headers=admin_headers)
        assert resp.status_code == 400

    def test_set_stock(self, client, admin_headers, laptop):
        resp = client.put(f"/api/products/{laptop.id}/stock", json={"stock": 2}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["stock"] == 2

        negative = client.put(f"/api/products/{laptop.id}/stock", json={"stock": -1}, headers=admin_headers)
        assert negative.status_code == 400

    def test_reserve_and_release(self, client, admin_headers, laptop):
        resp = client.post(f"/api/products/{laptop.id}/reserve", json={"quantity": 2}, headers=admin_headers)
        assert resp.json["product"]["available_stock"] == 3

        too_many = client.post(f"/api/products/{laptop.id}/reserve", json={"quantity": 4}, headers=admin_headers)
        assert too_many.status_code == 400

        below_reserved = client.put(f"/api/products/{laptop.id}/stock", json={"stock": 1}, headers=admin_headers)
        assert below_reserved.status_code == 400

        resp = client.post(f"/api/products/{laptop.id}/release", json={"quantity": 2}, headers=admin_headers)
        assert resp.json["product"]["reserved_stock"] == 0

    def test_stock_alert_and_low_stock(self, client, admin_headers, laptop, phone):
        resp = client.put(
            f"/api/products/{laptop.id}/stock-alert", json={"lowStockAlert": 2}, headers=admin_headers,
        )
        assert resp.json["product"]["is_low_stock"] is False

        low = client.get("/api/products/low-stock", headers=admin_headers).json
        # phone (3 units) is under the default alert of 10, laptop (5 units) is above 2
        assert [p["id"] for p in low["products"]] == [phone.id]

    def test_stock_endpoints_are_admin_only(self, client, customer_headers, laptop):
        assert client.post(
            f"/api/products/{laptop.id}/restock", json={"quantity": 1}, headers=customer_headers,
        ).status_code == 403
        assert client.get(f"/api/products/{laptop.id}/stock-history", headers=customer_headers).status_code == 403
