from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

STOCK_MOVEMENT_TYPES = ("sale", "restock", "adjustment", "return")
STOCK_REFERENCE_KINDS = ("Order", "Sale", "Restock", "Adjustment")


class Product(db.Model):
    """
    Catalog item with its on-hand stock counter.

    STOCK DISCIPLINE:
    - stock is only changed through services.stock_service, which appends a
      StockHistoryEntry for every mutation in the same unit of work.
    - reserved_stock holds soft reservations; available_stock is derived and
      never stored.
    - Products are never hard-deleted. Inactive products stay visible to
      admins but cannot be ordered or sold.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("reserved_stock >= 0", name="ck_products_reserved_non_negative"),
        db.CheckConstraint("total_sold >= 0", name="ck_products_total_sold_non_negative"),
        db.Index("ix_products_category_active", "category", "is_active"),
        db.Index("ix_products_brand", "brand"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=False, default=10)

    total_sold = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    last_sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock_history = db.relationship(
        "StockHistoryEntry",
        backref="product",
        lazy="dynamic",
        order_by="StockHistoryEntry.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_stock(self) -> int:
        return max(0, (self.stock or 0) - (self.reserved_stock or 0))

    @property
    def is_out_of_stock(self) -> bool:
        return (self.stock or 0) <= 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < (self.stock or 0) <= (self.low_stock_alert or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self, include_cost: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "description": self.description,
            "images": list(self.images or []),
            "selling_price_cents": self.selling_price_cents,
            "stock": self.stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "low_stock_alert": self.low_stock_alert,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_cost:
            data.update({
                "purchase_price_cents": self.purchase_price_cents,
                "total_sold": self.total_sold,
                "total_revenue_cents": self.total_revenue_cents,
                "last_sold_at": to_utc_z(self.last_sold_at),
                "last_restocked_at": to_utc_z(self.last_restocked_at),
                "created_by_user_id": self.created_by_user_id,
            })
        return data


class StockHistoryEntry(db.Model):
    """
    Append-only stock movement row.

    new_stock - previous_stock == units_changed, and previous_stock is the
    product's stock immediately before the mutation. Rows are never updated
    or deleted (enforced by ORM listeners in models.events).
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint("new_stock - previous_stock = units_changed", name="ck_stock_history_delta"),
        db.Index("ix_stock_history_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_stock_history_reference", "reference_kind", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    units_changed = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)  # sale, restock, adjustment, return

    reference_id = db.Column(db.Integer, nullable=True)
    reference_kind = db.Column(db.String(16), nullable=True)  # Order, Sale, Restock, Adjustment

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "units_changed": self.units_changed,
            "type": self.type,
            "reference_id": self.reference_id,
            "reference_kind": self.reference_kind,
            "actor_user_id": self.actor_user_id,
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
        }
