# Overview: Order notification fan-out and the per-user notification inbox.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification, Order, User
from ..models.notifications import NOTIFICATION_TYPES
from ..time_utils import utcnow

MESSAGE_TEMPLATES = {
    "new_order": "New order #{number} from {customer}",
    "cancelled": "Order #{number} has been cancelled",
    "delivered": "Order #{number} has been delivered",
    "confirmed": "Order #{number} delivery confirmed by customer",
    "processing": "Order #{number} is now being processed",
}
DEFAULT_TEMPLATE = "Order #{number} has been updated"


def build_message(order: Order, event_type: str, note: str | None = None) -> str:
    template = MESSAGE_TEMPLATES.get(event_type, DEFAULT_TEMPLATE)
    message = template.format(number=order.order_number, customer=order.customer_name)
    if note:
        message = f"{message}: {note}"
    return message


def _recipient_ids(target_user_id: int | None) -> list[int]:
    if target_user_id is not None:
        return [target_user_id]
    rows = (
        db.session.query(User.id)
        .filter(User.role == "admin", User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )
    return [row.id for row in rows]


def notify(order: Order, event_type: str, note: str | None = None, target_user_id: int | None = None) -> int:
    """
    Create one notification per recipient for an order event.

    Best-effort: called after the order's own commit, in a separate unit.
    Any failure is logged and rolled back, and 0 is returned; the order
    transition that triggered it has already succeeded.
    """
    try:
        if event_type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {event_type}")

        message = build_message(order, event_type, note)
        recipients = _recipient_ids(target_user_id)
        for user_id in recipients:
            db.session.add(Notification(
                user_id=user_id,
                order_id=order.id,
                order_number=order.order_number,
                customer_name=order.customer_name,
                total_amount_cents=order.total_amount_cents,
                type=event_type,
                message=message,
            ))
        db.session.commit()
        return len(recipients)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to create %s notifications for order %s", event_type, getattr(order, "id", None),
        )
        return 0


# =============================================================================
# Inbox
# =============================================================================

def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    limit = min(max(limit or 50, 1), 200)
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()


def _owned_notification(notification_id: int, user_id: int) -> Notification:
    notification = db.session.query(Notification).filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFoundError("Notification not found", details={"notification_id": notification_id})
    return notification


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    notification = _owned_notification(notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_as_read(user_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter_by(user_id=user_id, is_read=False)
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(notification_id: int, user_id: int) -> None:
    notification = _owned_notification(notification_id, user_id)
    db.session.delete(notification)
    db.session.commit()


def clear_notifications(user_id: int, *, read_only: bool = False) -> int:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if read_only:
        query = query.filter_by(is_read=True)
    deleted = query.delete(synchronize_session=False)
    db.session.commit()
    return deleted
