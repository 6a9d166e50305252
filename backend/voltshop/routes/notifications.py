# Overview: Flask API routes for the caller's notification inbox.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import notification_service
from ..validation import coerce_int

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").lower() in ("1", "true", "yes")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Query params: unreadOnly=true, limit (default 50, max 200)."""
    limit = coerce_int("limit", request.args.get("limit", "50"))
    notifications = notification_service.list_notifications(
        g.current_user.id, unread_only=_flag("unreadOnly"), limit=limit,
    )
    return jsonify({
        "success": True,
        "count": len(notifications),
        "unread_count": notification_service.unread_count(g.current_user.id),
        "notifications": [n.to_dict() for n in notifications],
    })


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"success": True, "count": notification_service.unread_count(g.current_user.id)})


@notifications_bp.put("/read-all")
@require_auth
def mark_all_read_route():
    updated = notification_service.mark_all_as_read(g.current_user.id)
    return jsonify({"success": True, "updated": updated})


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(notification_id, g.current_user.id)
    return jsonify({"success": True, "notification": notification.to_dict()})


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    notification_service.delete_notification(notification_id, g.current_user.id)
    return jsonify({"success": True, "message": "Notification deleted"})


@notifications_bp.delete("")
@require_auth
def clear_notifications_route():
    """Delete the caller's notifications; ?readOnly=true keeps unread ones."""
    deleted = notification_service.clear_notifications(g.current_user.id, read_only=_flag("readOnly"))
    return jsonify({"success": True, "deleted": deleted})
