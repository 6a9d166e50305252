# Overview: Admin-side account management: listing, search, status, role and password resets.

"""
User Administration Service

Admins can deactivate, reactivate and re-role accounts and reset
passwords. An admin never changes their own status or role, and the shop
always keeps at least one active admin. Deactivation and password resets
revoke every open session of the account.
"""
from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Product, Sale, User
from ..models.auth import USER_ROLES
from ..time_utils import utcnow
from . import session_service
from .auth_service import hash_password

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 20
RECENT_ACTIVITY_LIMIT = 10


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def list_users(*, role: str | None = None, include_inactive: bool = True) -> list[User]:
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"Invalid role: {role}", details={"allowed": list(USER_ROLES)})

    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def search_users(term: str | None) -> list[User]:
    """Case-insensitive match on name, email, username or phone."""
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        raise ValidationError(f"Search query must be at least {SEARCH_MIN_LENGTH} characters")

    pattern = f"%{term}%"
    return (
        db.session.query(User)
        .filter(db.or_(
            User.name.ilike(pattern),
            User.email.ilike(pattern),
            User.username.ilike(pattern),
            User.phone.ilike(pattern),
        ))
        .order_by(User.name.asc(), User.id.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


def user_stats(user: User) -> dict:
    return {
        "sales_recorded": db.session.query(Sale).filter(Sale.sold_by_user_id == user.id).count(),
        "orders_placed": db.session.query(Order).filter(Order.customer_user_id == user.id).count(),
        "orders_processed": db.session.query(Order).filter(Order.processed_by_user_id == user.id).count(),
        "products_created": db.session.query(Product).filter(Product.created_by_user_id == user.id).count(),
    }


def _other_active_admins(user: User) -> int:
    return db.session.query(User).filter(
        User.role == "admin",
        User.is_active.is_(True),
        User.id != user.id,
    ).count()


def _guard_last_admin(user: User, action: str) -> None:
    if user.role == "admin" and user.is_active and _other_active_admins(user) == 0:
        raise ValidationError(f"Cannot {action} the last active admin")


def set_user_status(user_id: int, is_active, actor: User) -> tuple[User, int]:
    """
    Activate or deactivate an account.

    Returns (user, sessions_revoked).
    """
    if not isinstance(is_active, bool):
        raise ValidationError("isActive must be a boolean")

    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("Cannot change your own account status")
    if not is_active:
        _guard_last_admin(user, "deactivate")

    user.is_active = is_active
    db.session.commit()

    revoked = 0
    if not is_active:
        revoked = session_service.revoke_all_user_sessions(user.id, reason="Account deactivated by admin")

    current_app.logger.info(
        "User %s %s by admin %s (%s sessions revoked)",
        user.id, "activated" if is_active else "deactivated", actor.id, revoked,
    )
    return user, revoked


def set_user_role(user_id: int, role, actor: User) -> User:
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role: {role}", details={"allowed": list(USER_ROLES)})

    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("Cannot change your own role")
    if role != "admin":
        _guard_last_admin(user, "demote")

    user.role = role
    db.session.commit()
    current_app.logger.info("User %s role set to %s by admin %s", user.id, role, actor.id)
    return user


def reset_password(user_id: int, new_password, actor: User) -> tuple[User, int]:
    """Set a new password (strength-checked) and sign the user out everywhere."""
    user = get_user(user_id)
    user.password_hash = hash_password(new_password)
    db.session.commit()

    revoked = session_service.revoke_all_user_sessions(user.id, reason="Password reset by admin")
    current_app.logger.info("Password of user %s reset by admin %s", user.id, actor.id)
    return user, revoked


def user_activity(user_id: int) -> dict:
    """Recent work attributed to the user, plus 30-day counts."""
    user = get_user(user_id)
    since = utcnow() - timedelta(days=30)

    sales = db.session.query(Sale).filter(Sale.sold_by_user_id == user.id)
    processed = db.session.query(Order).filter(Order.processed_by_user_id == user.id)
    placed = db.session.query(Order).filter(Order.customer_user_id == user.id)
    products = db.session.query(Product).filter(Product.created_by_user_id == user.id)

    return {
        "user": user.to_dict(),
        "recent_sales": [
            s.to_dict() for s in sales.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(RECENT_ACTIVITY_LIMIT)
        ],
        "recent_orders": [
            o.to_dict() for o in placed.order_by(Order.created_at.desc(), Order.id.desc()).limit(RECENT_ACTIVITY_LIMIT)
        ],
        "recent_processed_orders": [
            o.to_dict()
            for o in processed.order_by(Order.created_at.desc(), Order.id.desc()).limit(RECENT_ACTIVITY_LIMIT)
        ],
        "recent_products": [
            p.to_dict(include_cost=True)
            for p in products.order_by(Product.created_at.desc(), Product.id.desc()).limit(RECENT_ACTIVITY_LIMIT)
        ],
        "last_30_days": {
            "sales_recorded": sales.filter(Sale.created_at >= since).count(),
            "orders_placed": placed.filter(Order.created_at >= since).count(),
            "orders_processed": processed.filter(Order.created_at >= since).count(),
            "products_created": products.filter(Product.created_at >= since).count(),
        },
    }
