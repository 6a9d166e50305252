from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

NOTIFICATION_TYPES = ("new_order", "cancelled", "delivered", "confirmed", "processing")


class Notification(db.Model):
    """Per-recipient inbox row for an order lifecycle event."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    order_number = db.Column(db.String(32), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(16), nullable=False)
    message = db.Column(db.String(500), nullable=False)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "total_amount_cents": self.total_amount_cents,
            "type": self.type,
            "message": self.message,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
