# Overview: Catalog analytics over the per-product sale counters and sale lines.

"""
Catalog Analytics

Top sellers and inventory valuation read the running counters kept on
Product (total_sold, total_revenue_cents), so they are cheap. Per-product
performance for a period reads completed sale lines instead.
"""
from __future__ import annotations

from sqlalchemy import case, func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, StockHistoryEntry
from ..models.catalog import STOCK_MOVEMENT_TYPES
from . import products_service
from .order_service import period_start

TOP_PRODUCT_RANKINGS = {
    "units": Product.total_sold,
    "revenue": Product.total_revenue_cents,
}


def _estimated_profit_cents(product: Product) -> int:
    return (product.total_revenue_cents or 0) - (product.total_sold or 0) * (product.purchase_price_cents or 0)


def _ranked_row(product: Product) -> dict:
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "brand": product.brand,
        "category": product.category,
        "stock": product.stock,
        "selling_price_cents": product.selling_price_cents,
        "purchase_price_cents": product.purchase_price_cents,
        "total_sold": product.total_sold,
        "total_revenue_cents": product.total_revenue_cents,
        "estimated_profit_cents": _estimated_profit_cents(product),
    }


def top_products(*, limit: int = 5, by: str = "units") -> list[dict]:
    """Best sellers among active products, by units sold or by revenue."""
    if by not in TOP_PRODUCT_RANKINGS:
        raise ValidationError(f"Invalid ranking: {by}", details={"allowed": list(TOP_PRODUCT_RANKINGS)})
    if limit < 1:
        raise ValidationError("limit must be >= 1")

    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(TOP_PRODUCT_RANKINGS[by].desc(), Product.name.asc(), Product.id.asc())
        .limit(min(limit, 100))
        .all()
    )
    return [_ranked_row(p) for p in products]


def inventory_valuation() -> dict:
    """
    Value of the active catalog's on-hand stock.

    stock_value_cents prices units at cost, retail_value_cents at the
    current selling price.
    """
    active = db.session.query(Product).filter(Product.is_active.is_(True))
    row = active.with_entities(
        func.count(Product.id),
        func.coalesce(func.sum(Product.stock), 0),
        func.coalesce(func.sum(Product.stock * Product.purchase_price_cents), 0),
        func.coalesce(func.sum(Product.stock * Product.selling_price_cents), 0),
        func.coalesce(func.sum(case((Product.stock <= 0, 1), else_=0)), 0),
        func.coalesce(func.sum(case(
            (db.and_(Product.stock > 0, Product.stock <= Product.low_stock_alert), 1), else_=0,
        )), 0),
    ).one()

    total_products, total_units, stock_value, retail_value, out_of_stock, low_stock = (int(v) for v in row)
    return {
        "total_products": total_products,
        "total_units": total_units,
        "stock_value_cents": stock_value,
        "retail_value_cents": retail_value,
        "potential_profit_cents": retail_value - stock_value,
        "out_of_stock": out_of_stock,
        "low_stock": low_stock,
    }


def product_performance(product_id: int, *, period: str | None = None) -> dict:
    """
    Lifetime counters plus completed-sale figures for one product.

    period is one of today/week/month/year; None covers all time.
    """
    product = products_service.get_product(product_id)

    lines = (
        db.session.query(SaleItem)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(SaleItem.product_id == product.id, Sale.status == "completed")
    )
    if period:
        lines = lines.filter(Sale.created_at >= period_start(period))

    sale_count, units, revenue, cost, profit = lines.with_entities(
        func.count(func.distinct(Sale.id)),
        func.coalesce(func.sum(SaleItem.quantity), 0),
        func.coalesce(func.sum(SaleItem.total_price_cents), 0),
        func.coalesce(func.sum(SaleItem.total_cost_cents), 0),
        func.coalesce(func.sum(SaleItem.profit_cents), 0),
    ).one()

    movement_rows = (
        db.session.query(StockHistoryEntry.type, func.count(StockHistoryEntry.id))
        .filter(StockHistoryEntry.product_id == product.id)
        .group_by(StockHistoryEntry.type)
        .all()
    )
    movements = {kind: 0 for kind in STOCK_MOVEMENT_TYPES}
    movements.update({kind: count for kind, count in movement_rows})

    return {
        "product": _ranked_row(product),
        "period": period or "all",
        "sales": {
            "sale_count": int(sale_count),
            "units_sold": int(units),
            "revenue_cents": int(revenue),
            "cost_cents": int(cost),
            "profit_cents": int(profit),
        },
        "stock": {
            "on_hand": product.stock,
            "reserved": product.reserved_stock,
            "available": product.available_stock,
            "is_low_stock": product.is_low_stock,
            "movements": movements,
        },
    }
