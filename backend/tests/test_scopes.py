"""View scope resolution tests."""

import pytest

from voltshop.errors import ValidationError
from voltshop.models import User
from voltshop.services.scopes import OrderView, SaleView, ViewScope, order_scope_for, sale_scope_for


def _user(user_id, role):
    return User(id=user_id, username=f"u{user_id}", email=f"u{user_id}@example.com", role=role, password_hash="x")


class TestOrderScopes:

    @pytest.mark.parametrize("view", list(OrderView))
    def test_customers_always_see_own_orders(self, view):
        assert order_scope_for(view, _user(7, "customer")) == ViewScope.owned_by(7)

    def test_admin_views(self):
        admin = _user(1, "admin")
        assert order_scope_for(OrderView.SYSTEM, admin).is_everything
        assert order_scope_for(OrderView.MY, admin) == ViewScope.owned_by(1)
        assert order_scope_for(OrderView.MY_PROCESSED, admin) == ViewScope.processed_by(1)

    def test_sale_views(self):
        admin = _user(1, "admin")
        assert sale_scope_for(SaleView.SYSTEM, admin).is_everything
        assert sale_scope_for(SaleView.MY, admin) == ViewScope.owned_by(1)


class TestViewParsing:

    def test_default_when_missing(self):
        assert OrderView.parse(None, OrderView.MY) is OrderView.MY
        assert OrderView.parse("  ", OrderView.SYSTEM) is OrderView.SYSTEM

    def test_case_insensitive(self):
        assert OrderView.parse("My-Processed", OrderView.SYSTEM) is OrderView.MY_PROCESSED

    def test_unknown_view(self):
        with pytest.raises(ValidationError):
            OrderView.parse("everyone", OrderView.SYSTEM)
        with pytest.raises(ValidationError):
            SaleView.parse("my-processed", SaleView.SYSTEM)

    def test_unsupported_scope_for_listing(self):
        with pytest.raises(ValidationError):
            ViewScope.processed_by(1).apply(query=None, columns={"owner": object()})
