# Overview: Order state machine: which action may run from which status, and by whom.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ForbiddenError, InvalidTransitionError, ValidationError
from ..models.orders import ORDER_STATUSES


@dataclass(frozen=True)
class Transition:
    action: str
    allowed_from: frozenset
    target: str
    actor: str  # "admin" or "owner"


TRANSITIONS = {
    "process": Transition("process", frozenset({"pending"}), "processing", "admin"),
    "deliver": Transition("deliver", frozenset({"processing"}), "delivered", "admin"),
    "reject": Transition("reject", frozenset({"pending"}), "cancelled", "admin"),
    "cancel": Transition("cancel", frozenset({"pending"}), "cancelled", "owner"),
    "confirm_delivery": Transition("confirm_delivery", frozenset({"delivered"}), "confirmed", "owner"),
}


def get_transition(action: str) -> Transition:
    try:
        return TRANSITIONS[action]
    except KeyError:
        raise ValidationError(f"Unknown order action: {action}") from None


def authorize(transition: Transition, order, user) -> None:
    """Owner actions need the purchasing customer; admin actions need role=admin."""
    if transition.actor == "admin":
        if not user.is_admin:
            raise ForbiddenError("Admin access required")
        return
    if order.customer_user_id != user.id:
        raise ForbiddenError(f"You can only {transition.action.replace('_', ' ')} your own orders")


def validate_transition(transition: Transition, current_status: str) -> str:
    """Return the target status or raise InvalidTransitionError."""
    if current_status not in transition.allowed_from:
        allowed = ", ".join(sorted(transition.allowed_from))
        raise InvalidTransitionError(
            f"Cannot {transition.action.replace('_', ' ')} an order with status '{current_status}'",
            details={"current_status": current_status, "allowed_from": allowed},
        )
    return transition.target


def validate_override(current_status: str, target_status: str) -> str:
    """
    Admin status override: any status to any other status, except that a
    confirmed order is closed (its sale already exists).
    """
    if target_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid order status: {target_status}",
            details={"allowed": list(ORDER_STATUSES)},
        )
    if target_status == current_status:
        raise InvalidTransitionError(f"Order is already '{current_status}'")
    if current_status == "confirmed":
        raise InvalidTransitionError("Confirmed orders cannot change status")
    return target_status


def permission_flags(order, user) -> dict:
    """What the viewing user may do next with this order."""
    is_owner = order.customer_user_id == user.id
    status = order.order_status
    return {
        "can_cancel": is_owner and status in TRANSITIONS["cancel"].allowed_from,
        "can_confirm": is_owner and status in TRANSITIONS["confirm_delivery"].allowed_from,
        "can_process": user.is_admin and status in TRANSITIONS["process"].allowed_from,
        "can_deliver": user.is_admin and status in TRANSITIONS["deliver"].allowed_from,
        "can_reject": user.is_admin and status in TRANSITIONS["reject"].allowed_from,
        "can_update_status": user.is_admin and status != "confirmed",
        "is_owner": is_owner,
    }
