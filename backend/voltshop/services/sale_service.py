"""
Sale Service - financial records for goods that left the shop

Two ways a Sale comes into existence:
- materialize_sale: exactly once per confirmed Order, inside the order's
  own transaction (stock was already deducted when the order was placed)
- create_sale: walk-in/phone/wholesale sale, which deducts stock itself

Cost snapshot: order items carry the purchase price captured when the
order was placed; that price, not the product's current one, is the sale
cost. Walk-in sales snapshot the purchase price at sale time.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Product, Sale, SaleItem, User
from ..models.sales import SALE_PAYMENT_METHODS, SALE_STATUSES
from ..time_utils import utcnow
from ..validation import SaleRequest
from . import stock_service
from .concurrency import lock_for_update, run_in_transaction
from .numbering_service import next_sale_number
from .scopes import ViewScope

SALE_REFERENCE = "Sale"


def payment_status_for(amount_paid_cents: int, total_amount_cents: int) -> str:
    if amount_paid_cents >= total_amount_cents:
        return "paid"
    if amount_paid_cents > 0:
        return "partially_paid"
    return "pending"


def _load_sale(sale_id: int, *, lock: bool = True) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def _require_admin(user: User) -> None:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")


# =============================================================================
# Materialization
# =============================================================================

def materialize_sale(order: Order, actor_user_id: int | None) -> Sale:
    """
    Turn a confirmed order into its Sale.

    Must run inside the caller's transaction. Sets order.sale_id in the same
    unit; a second call for the same order raises InvalidTransitionError.
    """
    if order.sale_id is not None:
        raise InvalidTransitionError(
            f"Order {order.order_number} already has a sale",
            details={"sale_id": order.sale_id},
        )
    if order.order_status != "confirmed":
        raise InvalidTransitionError(f"Only confirmed orders can be turned into sales, got '{order.order_status}'")

    sale = Sale(
        sale_number=next_sale_number(),
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        customer_email=order.customer_email,
        customer_location=order.customer_location,
        tax_amount_cents=order.tax_amount_cents,
        shipping_fee_cents=order.shipping_fee_cents,
        discount_amount_cents=order.discount_amount_cents,
        payment_method=order.payment_method,
        status="completed",
        sale_type="online",
        sold_by_user_id=order.processed_by_user_id or actor_user_id,
        order_id=order.id,
        notes=f"Sale from order {order.order_number}",
        completed_at=utcnow(),
    )

    for item in order.items:
        unit_cost = item.unit_cost_cents
        if unit_cost is None:
            product = db.session.get(Product, item.product_id)
            unit_cost = product.purchase_price_cents if product else 0
        sale.items.append(SaleItem(
            product_id=item.product_id,
            product_name=item.product_name,
            product_brand=item.product_brand,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            unit_cost_cents=unit_cost,
        ))

    sale.recompute_totals()
    sale.amount_paid_cents = sale.total_amount_cents
    sale.payment_status = "paid"
    sale.recompute_totals()

    db.session.add(sale)
    db.session.flush()
    order.sale_id = sale.id

    current_app.logger.info("Sale %s materialized from order %s", sale.sale_number, order.order_number)
    return sale


# =============================================================================
# Direct sales
# =============================================================================

def create_sale(request: SaleRequest, user: User) -> Sale:
    """Record a walk-in sale and deduct its stock in one unit."""
    _require_admin(user)

    def _op() -> Sale:
        sale = Sale(
            sale_number=next_sale_number(),
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            customer_email=request.customer_email,
            customer_location=request.customer_location,
            tax_amount_cents=request.tax_amount_cents,
            discount_amount_cents=request.discount_amount_cents,
            operational_cost_cents=request.operational_cost_cents,
            commission_amount_cents=request.commission_amount_cents,
            payment_method=request.payment_method,
            status="completed",
            sale_type=request.sale_type,
            sold_by_user_id=user.id,
            notes=request.notes,
            completed_at=utcnow(),
        )

        for line in request.items:
            product = db.session.query(Product).filter_by(id=line["product_id"]).first()
            if not product:
                raise NotFoundError(f"Product not found: {line['product_id']}", details={"product_id": line["product_id"]})
            if not product.is_active:
                raise ValidationError(f"Product {product.name} is not available for sale")
            sale.items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                product_brand=product.brand,
                quantity=line["quantity"],
                unit_price_cents=line.get("unit_price_cents", product.selling_price_cents),
                unit_cost_cents=product.purchase_price_cents,
            ))

        sale.recompute_totals()
        if request.discount_amount_cents > sale.subtotal_cents + sale.tax_amount_cents:
            raise ValidationError("Discount cannot exceed the sale amount")

        amount_paid = sale.total_amount_cents if request.amount_paid_cents is None else request.amount_paid_cents
        sale.amount_paid_cents = amount_paid
        sale.payment_status = payment_status_for(amount_paid, sale.total_amount_cents)
        sale.recompute_totals()

        db.session.add(sale)
        db.session.flush()

        for item in sale.items:
            stock_service.deduct_stock(
                product_id=item.product_id,
                quantity=item.quantity,
                actor_user_id=user.id,
                reference_id=sale.id,
                reference_kind=SALE_REFERENCE,
                notes=f"Sale {sale.sale_number}: {item.quantity} units",
                unit_price_cents=item.unit_price_cents,
            )
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s created by user %s", sale.sale_number, user.id)
    return sale


def update_payment(
    sale_id: int,
    user: User,
    *,
    amount_paid_cents: int | None = None,
    payment_method: str | None = None,
) -> Sale:
    _require_admin(user)
    if payment_method is not None and payment_method not in SALE_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            details={"allowed": list(SALE_PAYMENT_METHODS)},
        )
    if amount_paid_cents is None and payment_method is None:
        raise ValidationError("Nothing to update: provide amountPaidCents or paymentMethod")

    def _op() -> Sale:
        sale = _load_sale(sale_id)
        if sale.status != "completed":
            raise InvalidTransitionError("Can only update payment for completed sales")
        if amount_paid_cents is not None:
            sale.amount_paid_cents = amount_paid_cents
            sale.payment_status = payment_status_for(amount_paid_cents, sale.total_amount_cents)
        if payment_method is not None:
            sale.payment_method = payment_method
        sale.recompute_totals()
        return sale

    return run_in_transaction(_op)


def cancel_sale(sale_id: int, user: User) -> Sale:
    """
    Cancel a walk-in sale and put its units back on the shelf.

    Order-linked sales cannot be cancelled here; their stock belongs to the
    order lifecycle.
    """
    _require_admin(user)

    def _op() -> Sale:
        sale = _load_sale(sale_id)
        if sale.order_id is not None:
            raise InvalidTransitionError("Sales created from orders cannot be cancelled")
        if sale.status == "cancelled":
            raise InvalidTransitionError("Sale is already cancelled")
        if sale.status != "completed":
            raise InvalidTransitionError(f"Cannot cancel a sale with status '{sale.status}'")

        for item in sale.items:
            stock_service.restore_stock(
                product_id=item.product_id,
                quantity=item.quantity,
                actor_user_id=user.id,
                reference_id=sale.id,
                reference_kind=SALE_REFERENCE,
                notes=f"Sale {sale.sale_number} cancelled",
                unit_price_cents=item.unit_price_cents,
            )
        sale.status = "cancelled"
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user.id
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s cancelled by user %s", sale.sale_number, user.id)
    return sale


def resume_sale(sale_id: int, user: User) -> Sale:
    """Reinstate a cancelled walk-in sale; its stock is deducted again."""
    _require_admin(user)

    def _op() -> Sale:
        sale = _load_sale(sale_id)
        if sale.status != "cancelled":
            raise InvalidTransitionError("Only cancelled sales can be resumed")

        for item in sale.items:
            stock_service.deduct_stock(
                product_id=item.product_id,
                quantity=item.quantity,
                actor_user_id=user.id,
                reference_id=sale.id,
                reference_kind=SALE_REFERENCE,
                notes=f"Sale {sale.sale_number} resumed",
                unit_price_cents=item.unit_price_cents,
            )
        sale.status = "completed"
        sale.cancelled_at = None
        sale.cancelled_by_user_id = None
        sale.completed_at = utcnow()
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s resumed by user %s", sale.sale_number, user.id)
    return sale


# =============================================================================
# Queries
# =============================================================================

def _scope_columns() -> dict:
    return {"owner": Sale.sold_by_user_id}


def get_sale(sale_id: int) -> Sale:
    return _load_sale(sale_id, lock=False)


def list_sales(
    *,
    scope: ViewScope,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"Invalid sale status: {status}")
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)

    query = scope.apply(db.session.query(Sale), _scope_columns())
    if status:
        query = query.filter(Sale.status == status)
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "sales": [s.to_dict() for s in sales],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def sales_stats(*, scope: ViewScope, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Totals over completed sales in the window."""
    query = scope.apply(db.session.query(Sale), _scope_columns()).filter(Sale.status == "completed")
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)

    row = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.coalesce(func.sum(Sale.total_cost_cents), 0),
        func.coalesce(func.sum(Sale.total_profit_cents), 0),
        func.coalesce(func.sum(Sale.net_profit_cents), 0),
        func.coalesce(func.sum(Sale.balance_cents), 0),
    ).one()
    count, revenue, cost, profit, net_profit, outstanding = row
    return {
        "total_sales": int(count),
        "total_revenue_cents": int(revenue),
        "total_cost_cents": int(cost),
        "total_profit_cents": int(profit),
        "net_profit_cents": int(net_profit),
        "outstanding_balance_cents": int(outstanding),
        "average_sale_cents": int(revenue) // int(count) if count else 0,
    }
