# Overview: Stock adjustment engine; every stock mutation goes through adjust_stock.

"""
Stock Reservation/Adjustment Engine

Each call locks the product row, validates the movement, writes the new
stock value and appends exactly one StockHistoryEntry whose previous/new
values match the real pre/post stock. Nothing here commits: callers run
these functions inside run_in_transaction so a failure anywhere in the
unit (another order item, the order itself, the sale) rolls the stock
change back with it.

Movement types:
- sale: deduction, checked against available_stock, bumps total_sold
- restock: addition; reverses_sale=True marks a compensating restock
  (cancellation/rejection) which lowers total_sold, floored at 0
- return: addition that always reverses a sale
- adjustment: signed correction (absolute stock set by an admin)
"""

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockHistoryEntry
from ..time_utils import utcnow
from .concurrency import lock_for_update

STOCK_CAUSES = ("sale", "restock", "adjustment", "return")


def _load_product(product_id: int, *, lock: bool = True) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return quantity


def adjust_stock(
    *,
    product_id: int,
    quantity: int,
    cause: str,
    actor_user_id: int | None = None,
    reference_id: int | None = None,
    reference_kind: str | None = None,
    notes: str | None = None,
    reverses_sale: bool = False,
    unit_price_cents: int | None = None,
) -> Product:
    """
    Apply one stock movement and append its history entry.

    quantity is a positive unit count for sale/restock/return and a signed,
    non-zero delta for adjustment.

    Raises NotFoundError, ValidationError or InsufficientStockError. The
    product is left untouched when any of them is raised.
    """
    if cause not in STOCK_CAUSES:
        raise ValidationError(f"Unknown stock movement type: {cause}")

    if cause == "adjustment":
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
            raise ValidationError("adjustment quantity must be a non-zero integer")
        delta = quantity
    else:
        _require_positive(quantity)
        delta = -quantity if cause == "sale" else quantity

    product = _load_product(product_id)
    previous = product.stock
    now = utcnow()

    if cause == "sale":
        if product.available_stock < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.available_stock,
                requested=quantity,
            )
        price = product.selling_price_cents if unit_price_cents is None else unit_price_cents
        product.total_sold = (product.total_sold or 0) + quantity
        product.total_revenue_cents = (product.total_revenue_cents or 0) + price * quantity
        product.last_sold_at = now
    elif cause == "adjustment":
        if previous + delta < 0:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=previous,
                requested=-delta,
            )
        if previous + delta < (product.reserved_stock or 0):
            raise ValidationError(
                "Stock cannot be set below reserved stock",
                details={"reserved_stock": product.reserved_stock, "requested_stock": previous + delta},
            )
    else:
        if cause == "return" or reverses_sale:
            price = product.selling_price_cents if unit_price_cents is None else unit_price_cents
            product.total_sold = max(0, (product.total_sold or 0) - quantity)
            product.total_revenue_cents = max(0, (product.total_revenue_cents or 0) - price * quantity)
        else:
            product.last_restocked_at = now

    product.stock = previous + delta

    db.session.add(StockHistoryEntry(
        product_id=product.id,
        previous_stock=previous,
        new_stock=product.stock,
        units_changed=delta,
        type=cause,
        reference_id=reference_id,
        reference_kind=reference_kind,
        actor_user_id=actor_user_id,
        notes=notes,
        occurred_at=now,
    ))
    db.session.flush()
    return product


def deduct_stock(*, product_id: int, quantity: int, actor_user_id: int | None, reference_id: int,
                 reference_kind: str, notes: str | None = None, unit_price_cents: int | None = None) -> Product:
    return adjust_stock(
        product_id=product_id,
        quantity=quantity,
        cause="sale",
        actor_user_id=actor_user_id,
        reference_id=reference_id,
        reference_kind=reference_kind,
        notes=notes,
        unit_price_cents=unit_price_cents,
    )


def restore_stock(*, product_id: int, quantity: int, actor_user_id: int | None, reference_id: int,
                  reference_kind: str, notes: str | None = None, unit_price_cents: int | None = None) -> Product:
    """Compensating restock for a cancelled or rejected deduction."""
    return adjust_stock(
        product_id=product_id,
        quantity=quantity,
        cause="restock",
        actor_user_id=actor_user_id,
        reference_id=reference_id,
        reference_kind=reference_kind,
        notes=notes,
        reverses_sale=True,
        unit_price_cents=unit_price_cents,
    )


def restock_product(*, product_id: int, quantity: int, actor_user_id: int | None,
                    notes: str | None = None) -> Product:
    """Goods received from a supplier."""
    return adjust_stock(
        product_id=product_id,
        quantity=quantity,
        cause="restock",
        actor_user_id=actor_user_id,
        reference_id=product_id,
        reference_kind="Restock",
        notes=notes or "Manual restock",
    )


def set_stock_level(*, product_id: int, new_stock: int, actor_user_id: int | None,
                    notes: str | None = None) -> Product:
    """Absolute stock correction after a physical count."""
    if isinstance(new_stock, bool) or not isinstance(new_stock, int) or new_stock < 0:
        raise ValidationError("stock must be an integer >= 0")

    product = _load_product(product_id)
    delta = new_stock - product.stock
    if delta == 0:
        return product

    return adjust_stock(
        product_id=product_id,
        quantity=delta,
        cause="adjustment",
        actor_user_id=actor_user_id,
        reference_id=product_id,
        reference_kind="Adjustment",
        notes=notes or "Manual stock adjustment",
    )


def reserve_stock(*, product_id: int, quantity: int) -> Product:
    """Hold units so they are no longer available to new orders."""
    _require_positive(quantity)
    product = _load_product(product_id)
    if product.available_stock < quantity:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=product.available_stock,
            requested=quantity,
        )
    product.reserved_stock = (product.reserved_stock or 0) + quantity
    db.session.flush()
    return product


def release_stock(*, product_id: int, quantity: int) -> Product:
    _require_positive(quantity)
    product = _load_product(product_id)
    if (product.reserved_stock or 0) < quantity:
        raise ValidationError(
            "Cannot release more than is reserved",
            details={"reserved_stock": product.reserved_stock, "requested": quantity},
        )
    product.reserved_stock -= quantity
    db.session.flush()
    return product


def list_stock_history(product_id: int, limit: int = 200) -> list[StockHistoryEntry]:
    _load_product(product_id, lock=False)
    return (
        db.session.query(StockHistoryEntry)
        .filter_by(product_id=product_id)
        .order_by(StockHistoryEntry.id.desc())
        .limit(limit)
        .all()
    )


def stock_history_sum(product_id: int) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(StockHistoryEntry.units_changed), 0))
        .filter_by(product_id=product_id)
        .scalar()
    )
    return int(total or 0)
