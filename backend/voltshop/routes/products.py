# Overview: Flask API routes for catalog and stock operations; parses input and returns JSON responses.

# backend/voltshop/routes/products.py
"""
Product catalog routes.

Reads are public (inactive products are hidden unless an admin asks).
Every write, and every stock movement, requires the admin role. Stock is
never writable through PUT /<id>; use restock, the stock correction
endpoint or the order/sale lifecycle.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import optional_auth, require_admin, require_auth
from ..models import Product
from ..services import catalog_analytics_service, products_service, stock_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    parse_json_object,
    parse_note,
    parse_page_args,
    parse_quantity,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "brand", "category", "description", "images",
        "purchase_price_cents", "selling_price_cents", "low_stock_alert", "is_active",
    },
    required_on_create={"name", "brand", "category", "purchase_price_cents", "selling_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _is_admin() -> bool:
    user = getattr(g, "current_user", None)
    return bool(user and user.is_admin)


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").lower() in ("1", "true", "yes")


@products_bp.get("")
@optional_auth
def list_products_route():
    """
    List catalog products.

    Query params:
    - category, brand, search: filters
    - inStock=true: only products with available units
    - page / limit: optional pagination; if page is omitted, returns all items
    - includeInactive=true: admins only
    """
    admin = _is_admin()
    page = None
    per_page = None
    if request.args.get("page") is not None:
        page, per_page = parse_page_args(request.args)

    result = products_service.list_products(
        include_inactive=admin and _flag("includeInactive"),
        category=request.args.get("category"),
        brand=request.args.get("brand"),
        search=request.args.get("search"),
        in_stock_only=_flag("inStock"),
        page=page,
        per_page=per_page,
        include_cost=admin,
    )
    return jsonify({"success": True, **result})


@products_bp.get("/low-stock")
@require_auth
@require_admin
def low_stock_route():
    products = products_service.list_low_stock()
    return jsonify({
        "success": True,
        "count": len(products),
        "products": [p.to_dict(include_cost=True) for p in products],
    })


@products_bp.get("/<int:product_id>")
@optional_auth
def get_product_route(product_id: int):
    admin = _is_admin()
    product = products_service.get_product(product_id, include_inactive=admin)
    return jsonify({"success": True, "product": product.to_dict(include_cost=admin)})


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """Create a product; an optional "stock" seeds the opening level."""
    payload = dict(parse_json_object(request.get_json(silent=True), required=True))
    opening_stock = payload.pop("stock", 0)
    if opening_stock is None:
        opening_stock = 0
    opening_stock = coerce_int("stock", opening_stock)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = products_service.create_product(patch=patch, user=g.current_user, opening_stock=opening_stock)
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)}), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = parse_json_object(request.get_json(silent=True))
    if "stock" in payload or "reserved_stock" in payload:
        raise ValidationError("Stock cannot be edited directly; use the stock endpoints")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    product = products_service.update_product(product_id, patch)
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def deactivate_product_route(product_id: int):
    product = products_service.deactivate_product(product_id)
    return jsonify({"success": True, "message": "Product deactivated", "product": product.to_dict(include_cost=True)})


# =============================================================================
# Stock
# =============================================================================

@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_admin
def restock_route(product_id: int):
    data = parse_json_object(request.get_json(silent=True))
    quantity = parse_quantity(data.get("quantity"))
    product = products_service.restock(product_id, quantity, g.current_user, notes=parse_note(data, "notes"))
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_admin
def set_stock_route(product_id: int):
    """Absolute correction: {"stock": <new level>, "notes": "..."}."""
    data = parse_json_object(request.get_json(silent=True))
    if data.get("stock") is None:
        raise ValidationError("stock is required")
    new_stock = coerce_int("stock", data.get("stock"))
    product = products_service.correct_stock(product_id, new_stock, g.current_user, notes=parse_note(data, "notes"))
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


@products_bp.get("/<int:product_id>/stock-history")
@require_auth
@require_admin
def stock_history_route(product_id: int):
    limit = coerce_int("limit", request.args.get("limit", "200"))
    entries = stock_service.list_stock_history(product_id, limit=min(max(limit, 1), 1000))
    return jsonify({
        "success": True,
        "product_id": product_id,
        "count": len(entries),
        "history": [e.to_dict() for e in entries],
    })


@products_bp.put("/<int:product_id>/stock-alert")
@require_auth
@require_admin
def stock_alert_route(product_id: int):
    data = parse_json_object(request.get_json(silent=True))
    if data.get("lowStockAlert") is None:
        raise ValidationError("lowStockAlert is required")
    product = products_service.set_stock_alert(product_id, coerce_int("lowStockAlert", data.get("lowStockAlert")))
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


@products_bp.post("/<int:product_id>/reserve")
@require_auth
@require_admin
def reserve_route(product_id: int):
    data = parse_json_object(request.get_json(silent=True))
    product = products_service.reserve(product_id, parse_quantity(data.get("quantity")))
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


@products_bp.post("/<int:product_id>/release")
@require_auth
@require_admin
def release_route(product_id: int):
    data = parse_json_object(request.get_json(silent=True))
    product = products_service.release(product_id, parse_quantity(data.get("quantity")))
    return jsonify({"success": True, "product": product.to_dict(include_cost=True)})


# =============================================================================
# Analytics
# =============================================================================

@products_bp.get("/analytics/top")
@require_auth
@require_admin
def top_products_route():
    """?by=units|revenue (default units), ?limit (default 5)."""
    by = request.args.get("by") or "units"
    limit = coerce_int("limit", request.args.get("limit", "5"))
    products = catalog_analytics_service.top_products(limit=limit, by=by)
    return jsonify({"success": True, "by": by, "count": len(products), "products": products})


@products_bp.get("/analytics/inventory")
@require_auth
@require_admin
def inventory_valuation_route():
    return jsonify({"success": True, "stats": catalog_analytics_service.inventory_valuation()})


@products_bp.get("/<int:product_id>/performance")
@require_auth
@require_admin
def product_performance_route(product_id: int):
    period = request.args.get("period") or None
    if period == "all":
        period = None
    return jsonify({"success": True, **catalog_analytics_service.product_performance(product_id, period=period)})
