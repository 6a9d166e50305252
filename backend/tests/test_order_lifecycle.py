"""
Order lifecycle tests (service layer).

Verifies:
- Placing an order deducts stock for every item or for none
- Cancel and reject restore exactly what was deducted
- Confirmation materializes one Sale, never two
- Only the owner (or an admin, for admin actions) may move an order
- Admin overrides keep stock consistent in both directions
"""

import pytest

from conftest import place_order

from voltshop.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from voltshop.extensions import db
from voltshop.models import DocumentSequence, Order, Product, Sale, StockHistoryEntry
from voltshop.services import order_service, products_service, stock_service


def _stock(product):
    return db.session.get(Product, product.id).stock


def _order_history(order_id):
    return (
        db.session.query(StockHistoryEntry)
        .filter_by(reference_kind="Order", reference_id=order_id)
        .order_by(StockHistoryEntry.id)
        .all()
    )


def _deliver(order, admin):
    order_service.process_order(order.id, admin)
    return order_service.deliver_order(order.id, admin)


# =============================================================================
# PLACING ORDERS
# =============================================================================


class TestCreateOrder:

    def test_create_order_deducts_stock(self, customer, laptop):
        order = place_order(customer, (laptop.id, 2))

        assert order.order_status == "pending"
        assert order.payment_status == "pending"
        assert order.order_number.startswith("ORD-")
        assert _stock(laptop) == 3
        assert db.session.get(Product, laptop.id).total_sold == 2

        history = _order_history(order.id)
        assert [h.units_changed for h in history] == [-2]
        assert order.status_history[0].status == "pending"
        assert order.status_history[0].note == "Order placed"

    def test_order_totals(self, customer, laptop):
        order = place_order(customer, (laptop.id, 2))

        assert order.subtotal_cents == 900_000
        # base fee + per-unit fee
        assert order.shipping_fee_cents == 500_000 + 2 * 100_000
        assert order.tax_amount_cents == 162_000
        assert order.total_amount_cents == 900_000 + 700_000 + 162_000
        assert order.items[0].unit_price_cents == 450_000
        assert order.items[0].unit_cost_cents == 300_000

    def test_remote_delivery_surcharge(self, customer, laptop):
        order = place_order(customer, (laptop.id, 1), location="Entebbe, Kitoro")
        assert order.shipping_fee_cents == 500_000 + 100_000 + 300_000

    def test_insufficient_stock_persists_nothing(self, customer, phone):
        with pytest.raises(InsufficientStockError) as exc_info:
            place_order(customer, (phone.id, 10))

        assert exc_info.value.available == 3
        assert _stock(phone) == 3
        assert db.session.query(Order).count() == 0
        assert db.session.query(DocumentSequence).count() == 0

    def test_multi_item_order_is_all_or_nothing(self, customer, laptop, phone):
        with pytest.raises(InsufficientStockError):
            place_order(customer, (laptop.id, 2), (phone.id, 4))

        assert _stock(laptop) == 5
        assert _stock(phone) == 3
        assert db.session.query(Order).count() == 0

    def test_repeated_lines_are_checked_together(self, customer, laptop):
        with pytest.raises(InsufficientStockError) as exc_info:
            place_order(customer, (laptop.id, 3), (laptop.id, 3))

        assert exc_info.value.requested == 6
        assert _stock(laptop) == 5

    def test_unknown_product(self, customer, laptop):
        with pytest.raises(NotFoundError):
            place_order(customer, (laptop.id, 1), (999_999, 1))
        assert _stock(laptop) == 5

    def test_inactive_product(self, customer, laptop):
        products_service.deactivate_product(laptop.id)

        with pytest.raises(ValidationError):
            place_order(customer, (laptop.id, 1))
        assert _stock(laptop) == 5

    def test_reserved_stock_is_not_orderable(self, customer, laptop):
        products_service.reserve(laptop.id, 4)

        with pytest.raises(InsufficientStockError):
            place_order(customer, (laptop.id, 2))

        order = place_order(customer, (laptop.id, 1))
        assert order.order_status == "pending"


# =============================================================================
# CANCEL / REJECT
# =============================================================================


class TestCancellation:

    def test_cancel_restores_exactly(self, customer, laptop, phone):
        order = place_order(customer, (laptop.id, 2), (phone.id, 1))
        assert _stock(laptop) == 3
        assert _stock(phone) == 2

        cancelled = order_service.cancel_order(order.id, customer, reason="Changed my mind")

        assert cancelled.order_status == "cancelled"
        assert cancelled.cancellation_reason == "Changed my mind"
        assert cancelled.cancelled_at is not None
        assert _stock(laptop) == 5
        assert _stock(phone) == 3
        assert db.session.get(Product, laptop.id).total_sold == 0

        history = _order_history(order.id)
        assert sorted(h.units_changed for h in history if h.product_id == laptop.id) == [-2, 2]
        assert sum(h.units_changed for h in history) == 0
        assert cancelled.status_history[-1].note == "Order cancelled by user. Reason: Changed my mind"

    def test_cancel_twice_is_rejected(self, customer, laptop):
        order = place_order(customer, (laptop.id, 2))
        order_service.cancel_order(order.id, customer)

        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order(order.id, customer)
        assert _stock(laptop) == 5

    def test_non_owner_cannot_cancel(self, customer, other_customer, laptop):
        order = place_order(customer, (laptop.id, 2))

        with pytest.raises(ForbiddenError):
            order_service.cancel_order(order.id, other_customer)

        assert db.session.get(Order, order.id).order_status == "pending"
        assert _stock(laptop) == 3

    def test_cannot_cancel_once_processing(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        order_service.process_order(order.id, admin_user)

        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order(order.id, customer)

    def test_admin_reject_restores_stock(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 2))

        rejected = order_service.reject_order(order.id, admin_user, reason="Out of warranty stock")

        assert rejected.order_status == "cancelled"
        assert rejected.cancellation_reason == "Out of warranty stock"
        assert _stock(laptop) == 5

    def test_customer_cannot_reject(self, customer, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(ForbiddenError):
            order_service.reject_order(order.id, customer)


# =============================================================================
# FULFILMENT AND SALE MATERIALIZATION
# =============================================================================


class TestFulfilment:

    def test_process_deliver_confirm_creates_one_sale(self, customer, admin_user, laptop, phone):
        order = place_order(customer, (laptop.id, 2), (phone.id, 1))
        _deliver(order, admin_user)

        confirmed = order_service.confirm_delivery(order.id, customer, confirmation_note="All good")

        assert confirmed.order_status == "confirmed"
        assert confirmed.confirmed_by_user_id == customer.id
        assert confirmed.processed_by_user_id == admin_user.id
        assert confirmed.delivered_by_user_id == admin_user.id

        sales = db.session.query(Sale).filter_by(order_id=order.id).all()
        assert len(sales) == 1
        sale = sales[0]
        assert confirmed.sale_id == sale.id
        assert sale.sale_number.startswith("SALE-")
        assert sale.sale_type == "online"
        assert sale.status == "completed"
        assert sale.payment_status == "paid"
        assert sale.total_amount_cents == confirmed.total_amount_cents
        assert sale.amount_paid_cents == sale.total_amount_cents
        assert sale.balance_cents == 0
        assert sale.total_cost_cents == 2 * 300_000 + 200_000
        assert sale.total_profit_cents == sale.total_amount_cents - sale.total_cost_cents
        assert sale.sold_by_user_id == admin_user.id

        # Stock was deducted at order time only
        assert _stock(laptop) == 3
        assert _stock(phone) == 2

    def test_second_confirmation_is_rejected(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        _deliver(order, admin_user)
        order_service.confirm_delivery(order.id, customer)

        with pytest.raises(InvalidTransitionError):
            order_service.confirm_delivery(order.id, customer)

        assert db.session.query(Sale).filter_by(order_id=order.id).count() == 1

    def test_sale_cost_uses_price_at_order_time(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        products_service.update_product(laptop.id, {"purchase_price_cents": 350_000})
        _deliver(order, admin_user)

        order_service.confirm_delivery(order.id, customer)

        sale = db.session.query(Sale).filter_by(order_id=order.id).one()
        assert sale.total_cost_cents == 300_000

    def test_cannot_confirm_before_delivery(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        order_service.process_order(order.id, admin_user)

        with pytest.raises(InvalidTransitionError):
            order_service.confirm_delivery(order.id, customer)
        assert db.session.query(Sale).count() == 0

    def test_only_owner_confirms(self, customer, other_customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        _deliver(order, admin_user)

        with pytest.raises(ForbiddenError):
            order_service.confirm_delivery(order.id, other_customer)
        assert db.session.get(Order, order.id).order_status == "delivered"

    def test_customer_cannot_process(self, customer, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(ForbiddenError):
            order_service.process_order(order.id, customer)

    def test_cannot_deliver_pending_order(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(InvalidTransitionError):
            order_service.deliver_order(order.id, admin_user)

    def test_status_history_records_each_step(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        _deliver(order, admin_user)
        confirmed = order_service.confirm_delivery(order.id, customer)

        assert [h.status for h in confirmed.status_history] == [
            "pending", "processing", "delivered", "confirmed",
        ]


# =============================================================================
# ADMIN OVERRIDES
# =============================================================================


class TestOverride:

    def test_override_to_cancelled_restores_stock(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 2))
        order_service.process_order(order.id, admin_user)

        updated = order_service.override_status(order.id, admin_user, "cancelled", note="Fraud check failed")

        assert updated.order_status == "cancelled"
        assert updated.cancellation_reason == "Fraud check failed"
        assert _stock(laptop) == 5

    def test_reopening_cancelled_order_deducts_again(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 2))
        order_service.cancel_order(order.id, customer)

        reopened = order_service.override_status(order.id, admin_user, "processing")

        assert reopened.order_status == "processing"
        assert reopened.cancelled_at is None
        assert _stock(laptop) == 3
        assert sum(h.units_changed for h in _order_history(order.id)) == -2

    def test_reopening_fails_without_stock(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 2))
        order_service.cancel_order(order.id, customer)
        products_service.correct_stock(laptop.id, 1, admin_user)

        with pytest.raises(InsufficientStockError):
            order_service.override_status(order.id, admin_user, "pending")

        assert db.session.get(Order, order.id).order_status == "cancelled"
        assert _stock(laptop) == 1

    def test_override_to_confirmed_materializes_sale(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))

        confirmed = order_service.override_status(order.id, admin_user, "confirmed")

        assert confirmed.sale_id is not None
        assert confirmed.confirmed_by_user_id == admin_user.id
        assert db.session.query(Sale).filter_by(order_id=order.id).count() == 1

    def test_confirmed_orders_are_closed(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        order_service.override_status(order.id, admin_user, "confirmed")

        with pytest.raises(InvalidTransitionError):
            order_service.override_status(order.id, admin_user, "cancelled")
        assert _stock(laptop) == 4

    def test_override_rejects_unknown_status(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(ValidationError):
            order_service.override_status(order.id, admin_user, "lost")

    def test_override_to_same_status(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(InvalidTransitionError):
            order_service.override_status(order.id, admin_user, "pending")

    def test_override_requires_admin(self, customer, laptop):
        order = place_order(customer, (laptop.id, 1))
        with pytest.raises(ForbiddenError):
            order_service.override_status(order.id, customer, "processing")

    def test_override_keeps_original_processor(self, customer, admin_user, second_admin, laptop):
        order = place_order(customer, (laptop.id, 1))
        order_service.process_order(order.id, admin_user)
        order_service.override_status(order.id, second_admin, "pending")

        updated = order_service.override_status(order.id, second_admin, "processing")
        assert updated.processed_by_user_id == admin_user.id

    def test_payment_status_update(self, customer, admin_user, laptop):
        order = place_order(customer, (laptop.id, 1))

        updated = order_service.update_payment_status(order.id, admin_user, "paid")

        assert updated.payment_status == "paid"
        assert updated.status_history[-1].status == "payment_paid"

        with pytest.raises(InvalidTransitionError):
            order_service.update_payment_status(order.id, admin_user, "paid")
        with pytest.raises(ValidationError):
            order_service.update_payment_status(order.id, admin_user, "refunded-twice")


# =============================================================================
# STOCK AUDIT ACROSS A MIXED WORKLOAD
# =============================================================================


def test_history_sum_matches_stock_after_lifecycle(customer, other_customer, admin_user, laptop):
    first = place_order(customer, (laptop.id, 2))
    second = place_order(other_customer, (laptop.id, 1))
    order_service.cancel_order(first.id, customer)
    _deliver(second, admin_user)
    order_service.confirm_delivery(second.id, other_customer)
    products_service.restock(laptop.id, 3, admin_user)

    product = db.session.get(Product, laptop.id)
    assert product.stock == 7
    assert product.total_sold == 1
    assert stock_service.stock_history_sum(laptop.id) == product.stock
