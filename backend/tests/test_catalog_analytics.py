"""
Catalog analytics tests.

Verifies:
- Top sellers rank by units or by revenue from the product counters
- Inventory valuation prices on-hand stock at cost and at retail
- Product performance only counts completed sale lines
- Analytics endpoints are admin-only
"""

import pytest

from voltshop.errors import NotFoundError, ValidationError
from voltshop.services import catalog_analytics_service, products_service, sale_service
from voltshop.validation import parse_sale_request


def _sell(admin, *lines):
    return sale_service.create_sale(parse_sale_request({
        "customer": {"name": "Walk-in Customer"},
        "items": [{"product": product_id, "quantity": quantity} for product_id, quantity in lines],
        "paymentMethod": "cash",
    }), admin)


# =============================================================================
# TOP SELLERS
# =============================================================================


class TestTopProducts:

    def test_units_and_revenue_rank_differently(self, admin_user, laptop, phone):
        _sell(admin_user, (laptop.id, 2), (phone.id, 3))

        by_units = catalog_analytics_service.top_products(by="units")
        assert [row["product_id"] for row in by_units] == [phone.id, laptop.id]
        assert by_units[0]["total_sold"] == 3

        by_revenue = catalog_analytics_service.top_products(by="revenue")
        assert [row["product_id"] for row in by_revenue] == [laptop.id, phone.id]
        assert by_revenue[0]["total_revenue_cents"] == 900_000
        assert by_revenue[0]["estimated_profit_cents"] == 900_000 - 2 * 300_000

    def test_limit_and_inactive_products(self, admin_user, laptop, phone):
        _sell(admin_user, (laptop.id, 1))
        products_service.deactivate_product(laptop.id)

        rows = catalog_analytics_service.top_products(limit=1)
        assert [row["product_id"] for row in rows] == [phone.id]

    @pytest.mark.parametrize("kwargs", [{"by": "profit"}, {"limit": 0}])
    def test_invalid_arguments(self, db_session, kwargs):
        with pytest.raises(ValidationError):
            catalog_analytics_service.top_products(**kwargs)


# =============================================================================
# INVENTORY VALUATION
# =============================================================================


class TestInventoryValuation:

    def test_valuation_after_sales(self, admin_user, laptop, phone):
        _sell(admin_user, (laptop.id, 2), (phone.id, 3))

        stats = catalog_analytics_service.inventory_valuation()

        assert stats["total_products"] == 2
        assert stats["total_units"] == 3
        assert stats["stock_value_cents"] == 3 * 300_000
        assert stats["retail_value_cents"] == 3 * 450_000
        assert stats["potential_profit_cents"] == 3 * 150_000
        assert stats["out_of_stock"] == 1
        assert stats["low_stock"] == 1

    def test_empty_catalog(self, db_session):
        stats = catalog_analytics_service.inventory_valuation()
        assert stats["total_products"] == 0
        assert stats["stock_value_cents"] == 0


# =============================================================================
# PRODUCT PERFORMANCE
# =============================================================================


class TestProductPerformance:

    def test_cancelled_sales_are_excluded(self, admin_user, laptop):
        _sell(admin_user, (laptop.id, 2))
        cancelled = _sell(admin_user, (laptop.id, 1))
        sale_service.cancel_sale(cancelled.id, admin_user)

        result = catalog_analytics_service.product_performance(laptop.id, period="today")

        assert result["sales"] == {
            "sale_count": 1,
            "units_sold": 2,
            "revenue_cents": 900_000,
            "cost_cents": 600_000,
            "profit_cents": 300_000,
        }
        assert result["product"]["total_sold"] == 2
        assert result["stock"]["on_hand"] == 3
        assert result["stock"]["movements"] == {"sale": 2, "restock": 1, "adjustment": 1, "return": 0}

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_analytics_service.product_performance(9999)

    def test_invalid_period(self, laptop):
        with pytest.raises(ValidationError):
            catalog_analytics_service.product_performance(laptop.id, period="decade")


# =============================================================================
# HTTP
# =============================================================================


class TestAnalyticsApi:

    @pytest.mark.parametrize("path", [
        "/api/products/analytics/top",
        "/api/products/analytics/inventory",
        "/api/products/1/performance",
    ])
    def test_customer_is_forbidden(self, client, customer_headers, path):
        assert client.get(path, headers=customer_headers).status_code == 403

    def test_top_by_revenue(self, client, admin_headers, admin_user, laptop, phone):
        _sell(admin_user, (laptop.id, 2), (phone.id, 3))

        response = client.get("/api/products/analytics/top?by=revenue&limit=1", headers=admin_headers)
        assert response.status_code == 200
        assert [row["product_id"] for row in response.json["products"]] == [laptop.id]

    def test_inventory(self, client, admin_headers, laptop):
        response = client.get("/api/products/analytics/inventory", headers=admin_headers)
        assert response.json["stats"]["stock_value_cents"] == 5 * 300_000

    def test_performance_all_time(self, client, admin_headers, admin_user, phone):
        _sell(admin_user, (phone.id, 1))

        response = client.get(f"/api/products/{phone.id}/performance?period=all", headers=admin_headers)
        assert response.status_code == 200
        assert response.json["period"] == "all"
        assert response.json["sales"]["units_sold"] == 1

    def test_bad_limit(self, client, admin_headers):
        response = client.get("/api/products/analytics/top?limit=lots", headers=admin_headers)
        assert response.status_code == 400
