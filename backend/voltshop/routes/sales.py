# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/voltshop/routes/sales.py
"""Sales API routes (admin only)"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..services import order_service, sale_service
from ..services.scopes import SaleView, sale_scope_for
from ..validation import coerce_int, parse_date_param, parse_json_object, parse_page_args, parse_sale_request

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_window():
    """Either ?period=today|week|month|year or ?startDate&endDate."""
    period = request.args.get("period")
    if period:
        return order_service.period_start(period), None
    return (
        parse_date_param(request.args.get("startDate"), "startDate"),
        parse_date_param(request.args.get("endDate"), "endDate", end_of_day=True),
    )


@sales_bp.post("/")
@require_auth
@require_admin
def create_sale_route():
    """Record a walk-in, phone or wholesale sale. Deducts stock."""
    sale_request = parse_sale_request(request.get_json(silent=True))
    sale = sale_service.create_sale(sale_request, g.current_user)
    return jsonify({"success": True, "sale": sale.to_dict()}), 201


@sales_bp.get("/")
@require_auth
@require_admin
def list_sales_route():
    view = SaleView.parse(request.args.get("view"), SaleView.SYSTEM)
    page, per_page = parse_page_args(request.args)
    start, end = _date_window()

    result = sale_service.list_sales(
        scope=sale_scope_for(view, g.current_user),
        status=request.args.get("status") or None,
        start=start,
        end=end,
        page=page,
        per_page=per_page,
    )
    return jsonify({"success": True, "view": view.value, **result})


@sales_bp.get("/stats")
@require_auth
@require_admin
def sales_stats_route():
    view = SaleView.parse(request.args.get("view"), SaleView.SYSTEM)
    start, end = _date_window()
    stats = sale_service.sales_stats(scope=sale_scope_for(view, g.current_user), start=start, end=end)
    return jsonify({"success": True, "view": view.value, "stats": stats})


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_admin
def get_sale_route(sale_id: int):
    return jsonify({"success": True, "sale": sale_service.get_sale(sale_id).to_dict()})


@sales_bp.put("/<int:sale_id>/payment")
@require_auth
@require_admin
def update_payment_route(sale_id: int):
    data = parse_json_object(request.get_json(silent=True))
    amount_paid = data.get("amountPaidCents")
    if amount_paid is not None:
        amount_paid = coerce_int("amountPaidCents", amount_paid)
        if amount_paid < 0:
            raise ValidationError("amountPaidCents must be >= 0")

    sale = sale_service.update_payment(
        sale_id,
        g.current_user,
        amount_paid_cents=amount_paid,
        payment_method=data.get("paymentMethod"),
    )
    return jsonify({"success": True, "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/cancel")
@require_auth
@require_admin
def cancel_sale_route(sale_id: int):
    sale = sale_service.cancel_sale(sale_id, g.current_user)
    return jsonify({"success": True, "message": "Sale cancelled", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/resume")
@require_auth
@require_admin
def resume_sale_route(sale_id: int):
    sale = sale_service.resume_sale(sale_id, g.current_user)
    return jsonify({"success": True, "message": "Sale resumed", "sale": sale.to_dict()})
