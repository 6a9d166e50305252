# Overview: Flask API routes for admin user management; parses input and returns JSON responses.

# backend/voltshop/routes/admin.py
"""
Admin routes for user management.

Provides endpoints for listing and searching accounts, per-user stats and
activity, activation/deactivation, role changes and password resets. All
endpoints require the admin role.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..services import user_admin_service
from ..validation import parse_json_object

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    """
    List accounts, newest first.

    Query params:
    - role: admin | customer
    - includeInactive: default true
    """
    include_inactive = (request.args.get("includeInactive") or "true").lower() != "false"
    users = user_admin_service.list_users(role=request.args.get("role") or None, include_inactive=include_inactive)
    return jsonify({"success": True, "count": len(users), "users": [u.to_dict() for u in users]})


@admin_bp.get("/users/search")
@require_auth
@require_admin
def search_users_route():
    users = user_admin_service.search_users(request.args.get("q"))
    return jsonify({"success": True, "count": len(users), "users": [u.to_dict() for u in users]})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    user = user_admin_service.get_user(user_id)
    return jsonify({"success": True, "user": user.to_dict(), "stats": user_admin_service.user_stats(user)})


@admin_bp.get("/users/<int:user_id>/activity")
@require_auth
@require_admin
def user_activity_route(user_id: int):
    return jsonify({"success": True, **user_admin_service.user_activity(user_id)})


@admin_bp.put("/users/<int:user_id>/status")
@require_auth
@require_admin
def set_status_route(user_id: int):
    """Body: {"isActive": bool}. Deactivation signs the user out everywhere."""
    data = parse_json_object(request.get_json(silent=True))
    user, revoked = user_admin_service.set_user_status(user_id, data.get("isActive"), g.current_user)
    return jsonify({
        "success": True,
        "message": f"User {user.username} {'activated' if user.is_active else 'deactivated'}",
        "user": user.to_dict(),
        "sessions_revoked": revoked,
    })


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_admin
def set_role_route(user_id: int):
    data = parse_json_object(request.get_json(silent=True))
    user = user_admin_service.set_user_role(user_id, data.get("role"), g.current_user)
    return jsonify({"success": True, "message": f"User {user.username} is now {user.role}", "user": user.to_dict()})


@admin_bp.put("/users/<int:user_id>/reset-password")
@require_auth
@require_admin
def reset_password_route(user_id: int):
    data = parse_json_object(request.get_json(silent=True))
    user, revoked = user_admin_service.reset_password(user_id, data.get("newPassword"), g.current_user)
    return jsonify({
        "success": True,
        "message": f"Password reset for {user.username}",
        "sessions_revoked": revoked,
    })
