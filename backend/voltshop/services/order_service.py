"""
Order Service - order lifecycle with stock consistency

Every public mutation runs as one run_in_transaction unit: the order write,
its status history row, all stock movements and (on confirmation) the sale
commit together or not at all. Notifications are sent after the commit and
can never fail the transition.

Lifecycle (see order_lifecycle.TRANSITIONS):
    pending -> processing -> delivered -> confirmed
    pending -> cancelled (customer cancel or admin reject)
    admin override may move between any statuses except out of confirmed
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import case, func

from ..errors import ForbiddenError, InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderStatusHistory, Product, User
from ..models.orders import ORDER_PAYMENT_STATUSES, ORDER_STATUSES
from ..time_utils import business_date, business_day_bounds, utcnow
from ..validation import OrderRequest
from . import notification_service, order_lifecycle, sale_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .numbering_service import next_order_number
from .scopes import ViewScope

ORDER_REFERENCE = "Order"
STATS_PERIODS = {
    "today": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


# =============================================================================
# Pricing
# =============================================================================

def calculate_shipping_fee_cents(total_items: int, location: str | None) -> int:
    """Flat base fee plus a per-unit fee, with a surcharge for outlying areas."""
    config = current_app.config
    fee = config["SHIPPING_BASE_FEE_CENTS"] + config["SHIPPING_PER_ITEM_CENTS"] * total_items
    place = (location or "").lower()
    if any(area in place for area in config["SHIPPING_REMOTE_AREAS"]):
        fee += config["SHIPPING_REMOTE_SURCHARGE_CENTS"]
    return fee


def calculate_tax_cents(subtotal_cents: int) -> int:
    # Rounded half-up to the nearest cent
    return (subtotal_cents * current_app.config["TAX_RATE_BPS"] + 5_000) // 10_000


# =============================================================================
# Internal helpers
# =============================================================================

def _load_order(order_id: int, *, lock: bool = True) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def _record_status(order: Order, status: str, note: str | None, actor_user_id: int | None) -> None:
    order.status_history.append(OrderStatusHistory(
        status=status,
        note=note,
        changed_by_user_id=actor_user_id,
        occurred_at=utcnow(),
    ))


def _deduct_order_stock(order: Order, actor_user_id: int | None, notes: str) -> None:
    for item in order.items:
        stock_service.deduct_stock(
            product_id=item.product_id,
            quantity=item.quantity,
            actor_user_id=actor_user_id,
            reference_id=order.id,
            reference_kind=ORDER_REFERENCE,
            notes=notes,
            unit_price_cents=item.unit_price_cents,
        )


def _restore_order_stock(order: Order, actor_user_id: int | None, notes: str) -> None:
    for item in order.items:
        stock_service.restore_stock(
            product_id=item.product_id,
            quantity=item.quantity,
            actor_user_id=actor_user_id,
            reference_id=order.id,
            reference_kind=ORDER_REFERENCE,
            notes=notes,
            unit_price_cents=item.unit_price_cents,
        )


def _check_products_available(request: OrderRequest) -> dict[int, Product]:
    """
    Resolve every requested product and check availability up front so the
    caller gets the first offending product, not a half-built order.
    """
    wanted: dict[int, int] = {}
    for item in request.items:
        wanted[item["product_id"]] = wanted.get(item["product_id"], 0) + item["quantity"]

    products: dict[int, Product] = {}
    for product_id, quantity in wanted.items():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if not product:
            raise NotFoundError(f"Product not found: {product_id}", details={"product_id": product_id})
        if not product.is_active:
            raise ValidationError(
                f"Product {product.name} is not available",
                details={"product_id": product_id},
            )
        if product.available_stock < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.available_stock,
                requested=quantity,
            )
        products[product_id] = product
    return products


# =============================================================================
# Lifecycle operations
# =============================================================================

def create_order(request: OrderRequest, customer: User) -> Order:
    """
    Place an order: snapshot prices, deduct stock per item, status=pending.

    Raises ValidationError, NotFoundError or InsufficientStockError; on any
    of them no order exists and no stock moved.
    """
    def _op() -> Order:
        products = _check_products_available(request)

        order = Order(
            order_number=next_order_number(),
            customer_user_id=customer.id,
            customer_name=request.customer_name,
            customer_email=request.customer_email or customer.email,
            customer_phone=request.customer_phone,
            customer_location=request.customer_location,
            payment_method=request.payment_method,
            payment_status="pending",
            order_status="pending",
            notes=request.notes,
            shipping_address=request.shipping_address,
        )
        for line in request.items:
            product = products[line["product_id"]]
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_brand=product.brand,
                images=list(product.images or []),
                quantity=line["quantity"],
                unit_price_cents=product.selling_price_cents,
                unit_cost_cents=product.purchase_price_cents,
            ))

        order.recompute_totals()
        order.shipping_fee_cents = calculate_shipping_fee_cents(order.total_items, order.customer_location)
        order.tax_amount_cents = calculate_tax_cents(order.subtotal_cents)
        order.recompute_totals()

        db.session.add(order)
        db.session.flush()

        _deduct_order_stock(order, customer.id, f"Order {order.order_number}")
        _record_status(order, "pending", "Order placed", customer.id)
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Order %s created by user %s", order.order_number, customer.id)
    notification_service.notify(order, "new_order")
    return order


def _run_transition(order_id: int, action: str, user: User, apply) -> Order:
    transition = order_lifecycle.get_transition(action)

    def _op() -> Order:
        order = _load_order(order_id)
        order_lifecycle.authorize(transition, order, user)
        target = order_lifecycle.validate_transition(transition, order.order_status)
        order.order_status = target
        apply(order)
        return order

    order = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s: %s by user %s -> %s", order.order_number, action, user.id, order.order_status,
    )
    return order


def process_order(order_id: int, user: User) -> Order:
    def _apply(order: Order) -> None:
        if order.processed_by_user_id is None:
            order.processed_by_user_id = user.id
        _record_status(order, "processing", "Order processed and moved to processing", user.id)

    order = _run_transition(order_id, "process", user, _apply)
    notification_service.notify(order, "processing", target_user_id=order.customer_user_id)
    return order


def deliver_order(order_id: int, user: User) -> Order:
    def _apply(order: Order) -> None:
        if order.delivered_by_user_id is None:
            order.delivered_by_user_id = user.id
            order.delivered_at = utcnow()
        _record_status(order, "delivered", "Order marked as delivered", user.id)

    order = _run_transition(order_id, "deliver", user, _apply)
    notification_service.notify(order, "delivered", target_user_id=order.customer_user_id)
    return order


def reject_order(order_id: int, user: User, reason: str | None = None) -> Order:
    def _apply(order: Order) -> None:
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason or "Rejected by admin"
        _restore_order_stock(order, user.id, f"Order {order.order_number} rejected")
        _record_status(order, "cancelled", f"Order rejected. Reason: {reason or 'Not specified'}", user.id)

    order = _run_transition(order_id, "reject", user, _apply)
    notification_service.notify(
        order, "cancelled", note=order.cancellation_reason, target_user_id=order.customer_user_id,
    )
    return order


def cancel_order(order_id: int, user: User, reason: str | None = None) -> Order:
    def _apply(order: Order) -> None:
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason or "Cancelled by customer"
        _restore_order_stock(order, user.id, f"Order {order.order_number} cancelled")
        _record_status(order, "cancelled", f"Order cancelled by user. Reason: {reason or 'Not specified'}", user.id)

    order = _run_transition(order_id, "cancel", user, _apply)
    notification_service.notify(order, "cancelled", note=order.cancellation_reason)
    return order


def confirm_delivery(order_id: int, user: User, confirmation_note: str | None = None) -> Order:
    """Customer confirms receipt; the order's Sale is materialized in the same unit."""
    def _apply(order: Order) -> None:
        order.confirmed_at = utcnow()
        order.confirmed_by_user_id = user.id
        _record_status(
            order, "confirmed", f"Delivery confirmed. Note: {confirmation_note or 'No note'}", user.id,
        )
        sale_service.materialize_sale(order, actor_user_id=user.id)

    order = _run_transition(order_id, "confirm_delivery", user, _apply)
    notification_service.notify(order, "confirmed", note=confirmation_note)
    return order


def override_status(order_id: int, user: User, target_status: str, note: str | None = None) -> Order:
    """
    Admin status override.

    Side effects follow the target:
    - entering cancelled restores stock, leaving cancelled deducts it again
    - entering processing/delivered/confirmed sets the matching attribution
      fields if they are still empty
    - entering confirmed materializes the sale if the order has none
    """
    if not user.is_admin:
        raise ForbiddenError("Admin access required")

    def _op() -> Order:
        order = _load_order(order_id)
        previous = order.order_status
        order_lifecycle.validate_override(previous, target_status)
        now = utcnow()

        if previous == "cancelled":
            _deduct_order_stock(order, user.id, f"Order {order.order_number} reopened from cancelled")
            order.cancelled_at = None
            order.cancellation_reason = None

        order.order_status = target_status

        if target_status == "cancelled":
            order.cancelled_at = now
            order.cancellation_reason = note or "Order cancelled by admin"
            _restore_order_stock(order, user.id, f"Order {order.order_number} cancelled by admin")
        elif target_status == "processing":
            if order.processed_by_user_id is None:
                order.processed_by_user_id = user.id
        elif target_status == "delivered":
            if order.delivered_by_user_id is None:
                order.delivered_by_user_id = user.id
                order.delivered_at = now
        elif target_status == "confirmed":
            if order.confirmed_by_user_id is None:
                order.confirmed_by_user_id = user.id
                order.confirmed_at = now
            if order.sale_id is None:
                sale_service.materialize_sale(order, actor_user_id=user.id)

        _record_status(
            order, target_status, note or f"Status changed from {previous} to {target_status}", user.id,
        )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s status overridden to %s by admin %s", order.order_number, target_status, user.id,
    )
    if target_status == "cancelled":
        notification_service.notify(order, "cancelled", note=order.cancellation_reason)
    elif target_status in ("delivered", "processing", "confirmed"):
        notification_service.notify(order, target_status, note=note)
    return order


def update_payment_status(order_id: int, user: User, payment_status: str, note: str | None = None) -> Order:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    if payment_status not in ORDER_PAYMENT_STATUSES:
        raise ValidationError(
            f"Invalid payment status: {payment_status}",
            details={"allowed": list(ORDER_PAYMENT_STATUSES)},
        )

    def _op() -> Order:
        order = _load_order(order_id)
        if order.payment_status == payment_status:
            raise InvalidTransitionError(f"Payment status is already '{payment_status}'")
        previous = order.payment_status
        order.payment_status = payment_status
        _record_status(
            order,
            f"payment_{payment_status}",
            note or f"Payment status changed from {previous} to {payment_status}",
            user.id,
        )
        return order

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def _scope_columns() -> dict:
    return {"owner": Order.customer_user_id, "processor": Order.processed_by_user_id}


def list_orders(
    *,
    scope: ViewScope,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}")
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)

    query = scope.apply(db.session.query(Order), _scope_columns())
    if status:
        query = query.filter(Order.order_status == status)
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at < end)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "orders": [o.to_dict() for o in orders],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_order_for(order_id: int, user: User) -> tuple[Order, dict]:
    """Owners and admins may read an order; everyone else gets Forbidden."""
    order = _load_order(order_id, lock=False)
    if not user.is_admin and order.customer_user_id != user.id:
        raise ForbiddenError("Not authorized to view this order")
    return order, order_lifecycle.permission_flags(order, user)


def period_start(period: str) -> datetime:
    if period not in STATS_PERIODS:
        raise ValidationError(
            f"Invalid period: {period}",
            details={"allowed": list(STATS_PERIODS)},
        )
    window = STATS_PERIODS[period]
    if window is None:
        tz_name = current_app.config["BUSINESS_TIMEZONE"]
        start, _ = business_day_bounds(tz_name, business_date(tz_name))
        return start
    return utcnow() - window


def _status_counts(query) -> dict:
    rows = query.with_entities(Order.order_status, func.count(Order.id)).group_by(Order.order_status).all()
    counts = {status: 0 for status in ORDER_STATUSES}
    counts.update({status: count for status, count in rows})
    return counts


def _revenue(query) -> int:
    """Order value excluding cancelled orders."""
    value = query.with_entities(
        func.coalesce(
            func.sum(case((Order.order_status != "cancelled", Order.total_amount_cents), else_=0)),
            0,
        )
    ).scalar()
    return int(value or 0)


def order_stats(*, scope: ViewScope, period: str = "month") -> dict:
    query = scope.apply(db.session.query(Order), _scope_columns())
    query = query.filter(Order.created_at >= period_start(period))

    counts = _status_counts(query)
    total_orders = sum(counts.values())
    revenue = _revenue(query)
    billable = total_orders - counts["cancelled"]
    return {
        "period": period,
        "total_orders": total_orders,
        "total_revenue_cents": revenue,
        "average_order_value_cents": revenue // billable if billable else 0,
        "status_counts": counts,
    }


def dashboard_stats() -> dict:
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    today_start, today_end = business_day_bounds(tz_name, business_date(tz_name))
    week_start = utcnow() - timedelta(days=7)

    base = db.session.query(Order)
    today = base.filter(Order.created_at >= today_start, Order.created_at < today_end)
    week = base.filter(Order.created_at >= week_start)

    overall_counts = _status_counts(base)
    return {
        "today": {"orders": today.count(), "revenue_cents": _revenue(today)},
        "week": {"orders": week.count(), "revenue_cents": _revenue(week)},
        "overall": {
            "orders": sum(overall_counts.values()),
            "revenue_cents": _revenue(base),
            "status_counts": overall_counts,
        },
    }
