# Overview: Flask API routes for order lifecycle operations; parses input and returns JSON responses.

# backend/voltshop/routes/orders.py
"""
Order routes

Customers place, cancel and confirm their own orders. Admins process,
deliver, reject, override status and record payment state.

Listing scope comes from the "view" query param, resolved once here:
- system: every order (admins only)
- my: orders the caller placed
- my-processed: orders the caller processed
Non-admins always get "my", whatever they ask for.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..services import order_service
from ..services.scopes import OrderView, order_scope_for
from ..validation import parse_date_param, parse_json_object, parse_note, parse_order_request, parse_page_args

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _default_view() -> OrderView:
    return OrderView.SYSTEM if g.current_user.is_admin else OrderView.MY


def _order_response(order, message: str | None = None, status: int = 200):
    body = {"success": True, "order": order.to_dict()}
    if message:
        body["message"] = message
    return jsonify(body), status


@orders_bp.post("")
@require_auth
def create_order_route():
    order_request = parse_order_request(request.get_json(silent=True))
    order = order_service.create_order(order_request, g.current_user)
    return _order_response(order, "Order placed successfully", 201)


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params: view, status, startDate, endDate, page, limit.
    """
    view = OrderView.parse(request.args.get("view"), _default_view())
    page, per_page = parse_page_args(request.args)

    result = order_service.list_orders(
        scope=order_scope_for(view, g.current_user),
        status=request.args.get("status") or None,
        start=parse_date_param(request.args.get("startDate"), "startDate"),
        end=parse_date_param(request.args.get("endDate"), "endDate", end_of_day=True),
        page=page,
        per_page=per_page,
    )
    return jsonify({"success": True, "view": view.value, **result})


@orders_bp.get("/my-orders")
@require_auth
def my_orders_route():
    page, per_page = parse_page_args(request.args)
    result = order_service.list_orders(
        scope=order_scope_for(OrderView.MY, g.current_user),
        status=request.args.get("status") or None,
        page=page,
        per_page=per_page,
    )
    return jsonify({"success": True, **result})


@orders_bp.get("/stats")
@require_auth
def order_stats_route():
    view = OrderView.parse(request.args.get("view"), _default_view())
    stats = order_service.order_stats(
        scope=order_scope_for(view, g.current_user),
        period=request.args.get("period") or "month",
    )
    return jsonify({"success": True, "view": view.value, "stats": stats})


@orders_bp.get("/dashboard/stats")
@require_auth
@require_admin
def dashboard_stats_route():
    return jsonify({"success": True, "stats": order_service.dashboard_stats()})


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order, permissions = order_service.get_order_for(order_id, g.current_user)
    return jsonify({"success": True, "order": order.to_dict(), "permissions": permissions})


# =============================================================================
# Customer actions
# =============================================================================

@orders_bp.put("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    data = parse_json_object(request.get_json(silent=True))
    order = order_service.cancel_order(order_id, g.current_user, reason=parse_note(data, "reason"))
    return _order_response(order, "Order cancelled successfully")


@orders_bp.put("/<int:order_id>/confirm-delivery")
@require_auth
def confirm_delivery_route(order_id: int):
    data = parse_json_object(request.get_json(silent=True))
    order = order_service.confirm_delivery(
        order_id, g.current_user, confirmation_note=parse_note(data, "confirmationNote"),
    )
    return _order_response(order, "Delivery confirmed successfully")


# =============================================================================
# Admin actions
# =============================================================================

@orders_bp.put("/<int:order_id>/process")
@require_auth
@require_admin
def process_order_route(order_id: int):
    order = order_service.process_order(order_id, g.current_user)
    return _order_response(order, "Order is now being processed")


@orders_bp.put("/<int:order_id>/deliver")
@require_auth
@require_admin
def deliver_order_route(order_id: int):
    order = order_service.deliver_order(order_id, g.current_user)
    return _order_response(order, "Order marked as delivered")


@orders_bp.put("/<int:order_id>/reject")
@require_auth
@require_admin
def reject_order_route(order_id: int):
    data = parse_json_object(request.get_json(silent=True))
    order = order_service.reject_order(order_id, g.current_user, reason=parse_note(data, "reason"))
    return _order_response(order, "Order rejected")


@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_admin
def override_status_route(order_id: int):
    data = parse_json_object(request.get_json(silent=True))
    target = data.get("orderStatus")
    if not target:
        raise ValidationError("orderStatus is required")
    order = order_service.override_status(order_id, g.current_user, str(target), note=parse_note(data, "note"))
    return _order_response(order, f"Order status updated to {order.order_status}")


@orders_bp.put("/<int:order_id>/payment")
@require_auth
@require_admin
def payment_status_route(order_id: int):
    data = parse_json_object(request.get_json(silent=True))
    payment_status = data.get("paymentStatus")
    if not payment_status:
        raise ValidationError("paymentStatus is required")
    order = order_service.update_payment_status(
        order_id, g.current_user, str(payment_status), note=parse_note(data, "note"),
    )
    return _order_response(order, f"Payment status updated to {order.payment_status}")
