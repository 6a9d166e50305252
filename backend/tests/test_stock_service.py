"""
Stock service tests.

Verifies:
- Every mutation appends exactly one history row with a consistent delta
- Stock never goes negative and reserved units are not sold
- The history sum always explains the current stock level
- History rows are append-only
"""

import pytest

from voltshop.errors import ImmutableRecordError, InsufficientStockError, NotFoundError, ValidationError
from voltshop.extensions import db
from voltshop.models import Product, StockHistoryEntry
from voltshop.services import stock_service
from voltshop.services.concurrency import run_in_transaction


def _history(product_id):
    return (
        db.session.query(StockHistoryEntry)
        .filter_by(product_id=product_id)
        .order_by(StockHistoryEntry.id)
        .all()
    )


def _deduct(product_id, quantity, reference_id=1):
    return run_in_transaction(lambda: stock_service.deduct_stock(
        product_id=product_id,
        quantity=quantity,
        actor_user_id=None,
        reference_id=reference_id,
        reference_kind="Order",
    ))


# =============================================================================
# DEDUCTION
# =============================================================================


class TestDeduction:

    def test_deduct_appends_history(self, laptop):
        _deduct(laptop.id, 2, reference_id=42)

        product = db.session.get(Product, laptop.id)
        assert product.stock == 3
        assert product.total_sold == 2
        assert product.total_revenue_cents == 2 * 450_000
        assert product.last_sold_at is not None

        entry = _history(laptop.id)[-1]
        assert entry.type == "sale"
        assert entry.previous_stock == 5
        assert entry.new_stock == 3
        assert entry.units_changed == -2
        assert entry.reference_kind == "Order"
        assert entry.reference_id == 42

    def test_insufficient_stock_leaves_product_untouched(self, laptop):
        before = len(_history(laptop.id))

        with pytest.raises(InsufficientStockError) as exc_info:
            _deduct(laptop.id, 6)

        assert exc_info.value.available == 5
        assert exc_info.value.requested == 6
        assert "Insufficient stock for ThinkPad X1 Carbon" in exc_info.value.message

        product = db.session.get(Product, laptop.id)
        assert product.stock == 5
        assert product.total_sold == 0
        assert len(_history(laptop.id)) == before

    def test_reserved_units_cannot_be_sold(self, laptop):
        run_in_transaction(lambda: stock_service.reserve_stock(product_id=laptop.id, quantity=4))

        with pytest.raises(InsufficientStockError) as exc_info:
            _deduct(laptop.id, 2)
        assert exc_info.value.available == 1

        _deduct(laptop.id, 1)
        product = db.session.get(Product, laptop.id)
        assert product.stock == 4
        assert product.available_stock == 0

    @pytest.mark.parametrize("quantity", [0, -1, True, "2"])
    def test_rejects_non_positive_quantity(self, laptop, quantity):
        with pytest.raises(ValidationError):
            _deduct(laptop.id, quantity)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            _deduct(999_999, 1)


# =============================================================================
# RESTORATION AND CORRECTIONS
# =============================================================================


class TestRestoreAndAdjust:

    def test_restore_reverses_sale_counters(self, laptop):
        _deduct(laptop.id, 3)
        run_in_transaction(lambda: stock_service.restore_stock(
            product_id=laptop.id,
            quantity=3,
            actor_user_id=None,
            reference_id=1,
            reference_kind="Order",
        ))

        product = db.session.get(Product, laptop.id)
        assert product.stock == 5
        assert product.total_sold == 0
        assert product.total_revenue_cents == 0

        entry = _history(laptop.id)[-1]
        assert entry.type == "restock"
        assert entry.units_changed == 3

    def test_customer_return_reverses_sale_counters(self, laptop):
        _deduct(laptop.id, 2)
        run_in_transaction(lambda: stock_service.adjust_stock(
            product_id=laptop.id,
            quantity=1,
            cause="return",
            reference_id=1,
            reference_kind="Order",
            notes="Returned unopened",
        ))

        product = db.session.get(Product, laptop.id)
        assert product.stock == 4
        assert product.total_sold == 1
        assert product.total_revenue_cents == 450_000
        assert product.last_restocked_at is None

        entry = _history(laptop.id)[-1]
        assert entry.type == "return"
        assert entry.units_changed == 1
        assert entry.notes == "Returned unopened"

    def test_return_never_drives_sale_counters_negative(self, laptop):
        run_in_transaction(lambda: stock_service.adjust_stock(product_id=laptop.id, quantity=3, cause="return"))

        product = db.session.get(Product, laptop.id)
        assert product.stock == 8
        assert product.total_sold == 0
        assert product.total_revenue_cents == 0

    def test_unknown_movement_type(self, laptop):
        with pytest.raises(ValidationError):
            run_in_transaction(lambda: stock_service.adjust_stock(product_id=laptop.id, quantity=1, cause="theft"))

    def test_supplier_restock_keeps_sale_counters(self, laptop, admin_user):
        _deduct(laptop.id, 1)
        run_in_transaction(lambda: stock_service.restock_product(
            product_id=laptop.id, quantity=10, actor_user_id=admin_user.id,
        ))

        product = db.session.get(Product, laptop.id)
        assert product.stock == 14
        assert product.total_sold == 1
        assert product.last_restocked_at is not None
        assert _history(laptop.id)[-1].reference_kind == "Restock"

    def test_set_stock_level_records_delta(self, laptop, admin_user):
        run_in_transaction(lambda: stock_service.set_stock_level(
            product_id=laptop.id, new_stock=2, actor_user_id=admin_user.id, notes="Cycle count",
        ))

        entry = _history(laptop.id)[-1]
        assert entry.type == "adjustment"
        assert entry.units_changed == -3
        assert entry.notes == "Cycle count"

    def test_set_stock_level_noop_when_unchanged(self, laptop, admin_user):
        before = len(_history(laptop.id))
        run_in_transaction(lambda: stock_service.set_stock_level(
            product_id=laptop.id, new_stock=5, actor_user_id=admin_user.id,
        ))
        assert len(_history(laptop.id)) == before

    def test_cannot_set_stock_below_reserved(self, laptop, admin_user):
        run_in_transaction(lambda: stock_service.reserve_stock(product_id=laptop.id, quantity=3))

        with pytest.raises(ValidationError):
            run_in_transaction(lambda: stock_service.set_stock_level(
                product_id=laptop.id, new_stock=2, actor_user_id=admin_user.id,
            ))
        assert db.session.get(Product, laptop.id).stock == 5

    def test_release_more_than_reserved(self, laptop):
        run_in_transaction(lambda: stock_service.reserve_stock(product_id=laptop.id, quantity=1))

        with pytest.raises(ValidationError):
            run_in_transaction(lambda: stock_service.release_stock(product_id=laptop.id, quantity=2))

        run_in_transaction(lambda: stock_service.release_stock(product_id=laptop.id, quantity=1))
        assert db.session.get(Product, laptop.id).reserved_stock == 0


# =============================================================================
# AUDIT TRAIL
# =============================================================================


class TestAuditTrail:

    def test_history_sum_explains_stock(self, laptop, admin_user):
        # Opening stock was recorded as an adjustment from 0
        _deduct(laptop.id, 2)
        run_in_transaction(lambda: stock_service.restock_product(
            product_id=laptop.id, quantity=4, actor_user_id=admin_user.id,
        ))
        _deduct(laptop.id, 1)
        run_in_transaction(lambda: stock_service.set_stock_level(
            product_id=laptop.id, new_stock=9, actor_user_id=admin_user.id,
        ))

        product = db.session.get(Product, laptop.id)
        assert product.stock == 9
        assert stock_service.stock_history_sum(laptop.id) == product.stock

        entries = _history(laptop.id)
        for previous, current in zip(entries, entries[1:]):
            assert current.previous_stock == previous.new_stock
        for entry in entries:
            assert entry.new_stock - entry.previous_stock == entry.units_changed
            assert entry.new_stock >= 0

    def test_history_rows_cannot_be_updated(self, laptop):
        entry = _history(laptop.id)[-1]
        entry.notes = "tampered"

        with pytest.raises(ImmutableRecordError):
            db.session.flush()
        db.session.rollback()

    def test_history_rows_cannot_be_deleted(self, laptop):
        entry = _history(laptop.id)[-1]
        db.session.delete(entry)

        with pytest.raises(ImmutableRecordError):
            db.session.flush()
        db.session.rollback()

    def test_list_stock_history_newest_first(self, laptop):
        _deduct(laptop.id, 1)
        entries = stock_service.list_stock_history(laptop.id)
        assert entries[0].type == "sale"
        assert entries[-1].type == "adjustment"
