from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
ORDER_PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
ORDER_PAYMENT_METHODS = ("onDelivery", "mtn", "airtel", "card")


class Order(db.Model):
    """
    Customer order document.

    SNAPSHOTS: customer_* fields and OrderItem rows are copied at creation so
    later edits to the user or product never rewrite history.

    TOTALS: subtotal and total_amount are recomputed from items on every
    flush (models.events), so a persisted order never carries stale totals.

    Orders are never deleted; cancelled is a terminal status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(
            "order_status IN ('pending', 'confirmed', 'processing', 'shipped', 'delivered', 'cancelled')",
            name="ck_orders_status",
        ),
        db.Index("ix_orders_status_created", "order_status", "created_at"),
        db.Index("ix_orders_customer_created", "customer_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. ORD-20260115-0001
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_location = db.Column(db.String(255), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    order_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=False, default="onDelivery")

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    delivered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # Set once, when the confirmed order is materialized into a Sale
    sale_id = db.Column(db.Integer, nullable=True, unique=True)

    notes = db.Column(db.Text, nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy="selectin",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy="selectin",
        order_by="OrderStatusHistory.id",
    )

    def recompute_totals(self) -> None:
        for item in self.items:
            item.total_price_cents = item.quantity * item.unit_price_cents
        self.subtotal_cents = sum(item.total_price_cents for item in self.items)
        self.total_amount_cents = (
            self.subtotal_cents
            + (self.shipping_fee_cents or 0)
            + (self.tax_amount_cents or 0)
            - (self.discount_amount_cents or 0)
        )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.order_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer": {
                "user_id": self.customer_user_id,
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
                "location": self.customer_location,
            },
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "order_status": self.order_status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "processed_by_user_id": self.processed_by_user_id,
            "delivered_by_user_id": self.delivered_by_user_id,
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "delivered_at": to_utc_z(self.delivered_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "sale_id": self.sale_id,
            "notes": self.notes,
            "shipping_address": self.shipping_address,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_brand = db.Column(db.String(128), nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Purchase price when the order was placed; feeds sale cost on confirmation
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product_name,
            "brand": self.product_brand,
            "images": list(self.images or []),
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class OrderStatusHistory(db.Model):
    """
    Append-only audit trail: one row per order-status or payment-status change.

    Payment changes are recorded with status "payment_<status>".
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    status = db.Column(db.String(32), nullable=False)
    note = db.Column(db.String(500), nullable=True)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "note": self.note,
            "changed_by_user_id": self.changed_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
