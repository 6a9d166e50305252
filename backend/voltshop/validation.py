from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.orders import ORDER_PAYMENT_METHODS
from .models.sales import SALE_PAYMENT_METHODS
from .time_utils import parse_iso_datetime

# Maximum price: 9,999,999.99 in major units (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 10_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    # bool is an int subclass; reject it along with floats and "1e3"-style strings
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer") from None
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime") from None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"{col.key} must be a list of strings")
        return [v.strip() for v in value if v.strip()]

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("purchase_price_cents", "selling_price_cents"):
        if key in patch and patch[key] is not None:
            price = patch[key]
            if price < 0:
                raise ValidationError(f"{key} must be >= 0")
            if price > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")

    if "low_stock_alert" in patch and patch["low_stock_alert"] is not None:
        if patch["low_stock_alert"] < 0:
            raise ValidationError("low_stock_alert must be >= 0")


def parse_quantity(value: Any, name: str = "quantity") -> int:
    quantity = coerce_int(name, value)
    if quantity <= 0:
        raise ValidationError(f"{name} must be > 0")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"{name} cannot exceed {MAX_LINE_QUANTITY}")
    return quantity


def parse_cents(value: Any, name: str, *, default: int = 0) -> int:
    if value is None:
        return default
    cents = coerce_int(name, value)
    if cents < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def _optional_text(value: Any, name: str, max_length: int = 500) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return text or None


def parse_json_object(payload: Any, *, required: bool = False) -> dict:
    """
    Request body as a dict. A missing body is an empty object unless
    required; any other JSON value is rejected.
    """
    if payload is None and not required:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_note(payload: dict | None, key: str) -> str | None:
    return _optional_text(parse_json_object(payload).get(key), key)


def _required_text(value: Any, name: str, max_length: int) -> str:
    text = _optional_text(value, name, max_length)
    if text is None:
        raise ValidationError(f"{name} is required")
    return text


def _parse_items(raw_items: Any, *, allow_price: bool) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product", raw.get("productId"))
        if product_id is None:
            raise ValidationError(f"items[{index}].product is required")
        item = {
            "product_id": coerce_int(f"items[{index}].product", product_id),
            "quantity": parse_quantity(raw.get("quantity"), f"items[{index}].quantity"),
        }
        if allow_price and raw.get("unitPriceCents") is not None:
            item["unit_price_cents"] = parse_cents(raw.get("unitPriceCents"), f"items[{index}].unitPriceCents")
        items.append(item)
    return items


@dataclass(frozen=True)
class OrderRequest:
    items: list[dict]
    payment_method: str
    customer_name: str
    customer_phone: str
    customer_location: str
    customer_email: str | None = None
    notes: str | None = None
    shipping_address: dict | None = None


def parse_order_request(payload: dict | None) -> OrderRequest:
    """Validate a storefront checkout body; nothing is looked up here."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = _parse_items(payload.get("items"), allow_price=False)

    customer = payload.get("customerInfo")
    if not isinstance(customer, dict):
        raise ValidationError("customerInfo is required")
    missing = [k for k in ("name", "phone", "location") if customer.get(k) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing customer information: {', '.join(missing)}",
            details={"missing": missing},
        )

    payment_method = payload.get("paymentMethod") or "onDelivery"
    if payment_method not in ORDER_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            details={"allowed": list(ORDER_PAYMENT_METHODS)},
        )

    shipping_address = payload.get("shippingAddress")
    if shipping_address is not None:
        if not isinstance(shipping_address, dict):
            raise ValidationError("shippingAddress must be an object")
        shipping_address = {
            key: _optional_text(shipping_address.get(key), f"shippingAddress.{key}", 255)
            for key in ("street", "city", "state", "country", "postalCode")
            if shipping_address.get(key) is not None
        }

    return OrderRequest(
        items=items,
        payment_method=payment_method,
        customer_name=_required_text(customer["name"], "customerInfo.name", 255),
        customer_phone=_required_text(customer["phone"], "customerInfo.phone", 32),
        customer_location=_required_text(customer["location"], "customerInfo.location", 255),
        customer_email=_optional_text(customer.get("email"), "customerInfo.email", 255),
        notes=_optional_text(payload.get("notes"), "notes", 2000),
        shipping_address=shipping_address,
    )


@dataclass(frozen=True)
class SaleRequest:
    items: list[dict]
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    customer_location: str | None = None
    payment_method: str = "cash"
    amount_paid_cents: int | None = None
    discount_amount_cents: int = 0
    tax_amount_cents: int = 0
    operational_cost_cents: int = 0
    commission_amount_cents: int = 0
    sale_type: str = "walkin"
    notes: str | None = None


def parse_sale_request(payload: dict | None) -> SaleRequest:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer = payload.get("customer") or {}
    if not isinstance(customer, dict) or not str(customer.get("name") or "").strip():
        raise ValidationError("Customer name is required")

    items = _parse_items(payload.get("items"), allow_price=True)

    payment_method = payload.get("paymentMethod") or "cash"
    if payment_method not in SALE_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            details={"allowed": list(SALE_PAYMENT_METHODS)},
        )

    sale_type = payload.get("saleType") or "walkin"
    if sale_type not in ("walkin", "phone", "wholesale", "retail"):
        raise ValidationError(f"Invalid sale type: {sale_type}")

    amount_paid = payload.get("amountPaidCents")

    return SaleRequest(
        items=items,
        customer_name=_optional_text(customer.get("name"), "customer.name", 255),
        customer_phone=_optional_text(customer.get("phone"), "customer.phone", 32),
        customer_email=_optional_text(customer.get("email"), "customer.email", 255),
        customer_location=_optional_text(customer.get("location"), "customer.location", 255),
        payment_method=payment_method,
        amount_paid_cents=None if amount_paid is None else parse_cents(amount_paid, "amountPaidCents"),
        discount_amount_cents=parse_cents(payload.get("discountAmountCents"), "discountAmountCents"),
        tax_amount_cents=parse_cents(payload.get("taxAmountCents"), "taxAmountCents"),
        operational_cost_cents=parse_cents(payload.get("operationalCostCents"), "operationalCostCents"),
        commission_amount_cents=parse_cents(payload.get("commissionAmountCents"), "commissionAmountCents"),
        sale_type=sale_type,
        notes=_optional_text(payload.get("notes"), "notes", 2000),
    )


def parse_date_param(value: str | None, name: str, *, end_of_day: bool = False) -> datetime | None:
    """
    Query-string date filter. A bare YYYY-MM-DD end date covers that whole
    day, so the returned bound is exclusive.
    """
    if value is None or not value.strip():
        return None
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime") from None
    if end_of_day and len(value.strip()) == 10:
        dt = dt + timedelta(days=1)
    return dt


def parse_page_args(args) -> tuple[int, int]:
    page = coerce_int("page", args.get("page", "1"))
    per_page = coerce_int("limit", args.get("limit", args.get("per_page", "20")))
    if page < 1 or per_page < 1:
        raise ValidationError("page and limit must be >= 1")
    return page, per_page
