from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SALE_STATUSES = ("completed", "cancelled", "refunded", "pending", "processing")
SALE_PAYMENT_STATUSES = ("pending", "paid", "partially_paid", "failed", "refunded")
SALE_PAYMENT_METHODS = ("cash", "card", "mobile_money", "bank_transfer", "onDelivery", "mtn", "airtel")
SALE_TYPES = ("walkin", "online", "phone", "wholesale", "retail")


class Sale(db.Model):
    """
    Financial record of goods leaving the shop.

    Created directly for walk-in sales, or exactly once from a confirmed
    Order (order_id set). Cost, price and profit are snapshotted per item.
    All aggregates are recomputed from items on every flush (models.events).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_sold_by_created", "sold_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. SALE-20260115-0001
    sale_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_name = db.Column(db.String(255), nullable=False, default="Walk-in Customer")
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_location = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    operational_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    sale_type = db.Column(db.String(16), nullable=False, default="walkin")

    sold_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy="selectin",
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )

    def recompute_totals(self) -> None:
        for item in self.items:
            item.total_price_cents = item.quantity * item.unit_price_cents
            item.total_cost_cents = item.quantity * (item.unit_cost_cents or 0)
            item.profit_cents = item.total_price_cents - item.total_cost_cents
        self.subtotal_cents = sum(item.total_price_cents for item in self.items)
        self.total_cost_cents = sum(item.total_cost_cents for item in self.items)
        self.total_amount_cents = (
            self.subtotal_cents
            + (self.tax_amount_cents or 0)
            + (self.shipping_fee_cents or 0)
            - (self.discount_amount_cents or 0)
        )
        self.total_profit_cents = self.total_amount_cents - self.total_cost_cents
        self.net_profit_cents = (
            self.total_profit_cents
            - (self.operational_cost_cents or 0)
            - (self.commission_amount_cents or 0)
        )
        self.balance_cents = self.total_amount_cents - (self.amount_paid_cents or 0)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
                "location": self.customer_location,
            },
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "total_amount_cents": self.total_amount_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "operational_cost_cents": self.operational_cost_cents,
            "commission_amount_cents": self.commission_amount_cents,
            "net_profit_cents": self.net_profit_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_cents": self.balance_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "sale_type": self.sale_type,
            "sold_by_user_id": self.sold_by_user_id,
            "order_id": self.order_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_brand = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product_name,
            "brand": self.product_brand,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "total_price_cents": self.total_price_cents,
            "total_cost_cents": self.total_cost_cents,
            "profit_cents": self.profit_cents,
        }
