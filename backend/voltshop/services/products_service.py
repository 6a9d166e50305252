# backend/voltshop/services/products_service.py
"""
Products Service

Catalog CRUD. Stock is not writable here: creation may seed an opening
stock level (recorded as an adjustment in the stock history) and every
later change goes through stock_service.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, User
from . import stock_service
from .concurrency import run_in_transaction

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "brand", "category", "description", "images",
    "purchase_price_cents", "selling_price_cents", "low_stock_alert", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_sku_free(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU already exists: {sku}")


def get_product(product_id: int, *, include_inactive: bool = True) -> Product:
    product = db.session.get(Product, product_id)
    if not product or (not include_inactive and not product.is_active):
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(
    *,
    include_inactive: bool = False,
    category: str | None = None,
    brand: str | None = None,
    search: str | None = None,
    in_stock_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
    include_cost: bool = False,
) -> dict:
    """
    Catalog listing with optional filters and pagination.

    If page is None, returns all matching items.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if category:
        base_query = base_query.filter(Product.category == category)
    if brand:
        base_query = base_query.filter(Product.brand == brand)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.brand.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    if in_stock_only:
        base_query = base_query.filter(Product.stock > Product.reserved_stock)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict(include_cost=include_cost) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict(include_cost=include_cost) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict, user: User, opening_stock: int = 0) -> Product:
    """
    Create product from a validated patch dict.

    Raises ConflictError if the SKU is taken.
    """
    if isinstance(opening_stock, bool) or not isinstance(opening_stock, int) or opening_stock < 0:
        raise ValidationError("stock must be an integer >= 0")

    def _op() -> Product:
        _check_sku_free(patch.get("sku"))

        product = Product(
            stock=0,
            reserved_stock=0,
            low_stock_alert=current_app.config.get("DEFAULT_LOW_STOCK_ALERT", 10),
            created_by_user_id=user.id,
        )
        apply_product_patch(product, patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Product violates a uniqueness constraint") from exc

        if opening_stock:
            stock_service.set_stock_level(
                product_id=product.id,
                new_stock=opening_stock,
                actor_user_id=user.id,
                notes="Opening stock",
            )
        return product

    product = run_in_transaction(_op)
    current_app.logger.info("Product %s created by user %s", product.id, user.id)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    def _op() -> Product:
        product = get_product(product_id)
        if "sku" in patch:
            _check_sku_free(patch["sku"], exclude_id=product.id)
        apply_product_patch(product, patch)
        return product

    return run_in_transaction(_op)


def deactivate_product(product_id: int) -> Product:
    """Products are never deleted; they are hidden from the storefront."""
    def _op() -> Product:
        product = get_product(product_id)
        product.is_active = False
        return product

    return run_in_transaction(_op)


def set_stock_alert(product_id: int, low_stock_alert: int) -> Product:
    if isinstance(low_stock_alert, bool) or not isinstance(low_stock_alert, int) or low_stock_alert < 0:
        raise ValidationError("lowStockAlert must be an integer >= 0")

    def _op() -> Product:
        product = get_product(product_id)
        product.low_stock_alert = low_stock_alert
        return product

    return run_in_transaction(_op)


def list_low_stock() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= Product.low_stock_alert)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


# =============================================================================
# Stock operations (each one its own transaction)
# =============================================================================

def restock(product_id: int, quantity: int, user: User, notes: str | None = None) -> Product:
    product = run_in_transaction(lambda: stock_service.restock_product(
        product_id=product_id,
        quantity=quantity,
        actor_user_id=user.id,
        notes=notes,
    ))
    current_app.logger.info("Product %s restocked with %s units by user %s", product_id, quantity, user.id)
    return product


def correct_stock(product_id: int, new_stock: int, user: User, notes: str | None = None) -> Product:
    product = run_in_transaction(lambda: stock_service.set_stock_level(
        product_id=product_id,
        new_stock=new_stock,
        actor_user_id=user.id,
        notes=notes,
    ))
    current_app.logger.info("Product %s stock set to %s by user %s", product_id, new_stock, user.id)
    return product


def reserve(product_id: int, quantity: int) -> Product:
    return run_in_transaction(lambda: stock_service.reserve_stock(product_id=product_id, quantity=quantity))


def release(product_id: int, quantity: int) -> Product:
    return run_in_transaction(lambda: stock_service.release_stock(product_id=product_id, quantity=quantity))
