from __future__ import annotations
from datetime import datetime
from laundry.time_utils import parse_iso_datetime, to_utc_naive

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models import InventoryItem, Order, OrderLine
from .services.errors import ValidationError


# Largest accepted money value: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
MAX_LINE_QUANTITY = 10_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Request policy for one model:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    - extra_fields: non-column keys accepted as-is (validated by the caller)
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]
    extra_fields: set[str] = frozenset()  # type: ignore[assignment]


ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id", "branch_id", "priority", "discount_cents", "assigned_employee_id",
        "payment_status", "payment_method", "customer_name", "customer_phone",
        "pickup_date", "delivery_date", "notes",
    },
    required_on_create={"branch_id", "items"},
    extra_fields={"items"},
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "priority", "discount_cents", "status", "payment_status", "payment_method",
        "assigned_employee_id", "customer_name", "customer_phone",
        "pickup_date", "delivery_date", "notes",
    },
    extra_fields={"items"},
)

ORDER_LINE_POLICY = ModelValidationPolicy(
    writable_fields={"item_type", "service_type", "quantity", "unit_price_cents", "special_instructions"},
    required_on_create={"item_type", "quantity", "unit_price_cents"},
)

INVENTORY_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "branch_id", "item_name", "category", "sku", "unit", "current_stock",
        "reorder_level", "cost_per_unit_cents", "supplier_contact",
    },
    required_on_create={"branch_id", "item_name"},
)

INVENTORY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "item_name", "category", "sku", "unit", "current_stock", "reorder_level",
        "cost_per_unit_cents", "supplier_contact", "is_active",
    },
    extra_fields={"reason"},
)

_MONEY_FIELDS = {"unit_price_cents", "discount_cents", "cost_per_unit_cents"}
_NON_NEGATIVE_FIELDS = {"current_stock", "reorder_level"}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
            return value.strip().lower() in ("true", "1")
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return to_utc_naive(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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
    - the policy allowlist (writable_fields + extra_fields)
    - required_on_create (if partial=False)
    Returns a cleaned dict with only allowed fields.
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
        if k in policy.extra_fields:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    cleaned: dict = {}

    for k, raw in payload.items():
        if k in policy.extra_fields:
            cleaned[k] = raw
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            cleaned[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in _MONEY_FIELDS:
            enforce_amount(val, k)
        if k in _NON_NEGATIVE_FIELDS and val < 0:
            raise ValidationError(f"{k} must be >= 0")

        cleaned[k] = val

    return cleaned


def enforce_amount(value: int, field: str) -> None:
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def parse_order_items(items: Any) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    parsed = []
    for position, raw in enumerate(items):
        try:
            line = validate_payload(model=OrderLine, payload=raw, policy=ORDER_LINE_POLICY, partial=False)
        except ValidationError as e:
            raise ValidationError(e.message, details={"position": position})
        if line["quantity"] <= 0 or line["quantity"] > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"quantity must be between 1 and {MAX_LINE_QUANTITY}", details={"position": position}
            )
        parsed.append(line)
    return parsed


def parse_order_create(payload: dict) -> dict:
    data = validate_payload(model=Order, payload=payload, policy=ORDER_CREATE_POLICY, partial=False)
    data["items"] = parse_order_items(data["items"])
    return data


def parse_order_update(payload: dict) -> dict:
    data = validate_payload(model=Order, payload=payload, policy=ORDER_UPDATE_POLICY, partial=True)
    if not data:
        raise ValidationError("No fields to update")
    if "items" in data:
        data["items"] = parse_order_items(data["items"])
    return data


def parse_inventory_create(payload: dict) -> dict:
    data = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_CREATE_POLICY, partial=False)
    if "current_stock" in data:
        data["initial_stock"] = data.pop("current_stock") or 0
    return data


def parse_inventory_update(payload: dict) -> dict:
    data = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_UPDATE_POLICY, partial=True)
    if not data:
        raise ValidationError("No fields to update")
    return data


def parse_stock_adjustment(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if "delta" not in payload:
        raise ValidationError("Missing required fields: delta")
    reason = payload.get("reason")
    if reason is not None and len(str(reason)) > 255:
        raise ValidationError("reason exceeds max length 255")
    return {
        "delta": parse_int(payload["delta"], "delta"),
        "change_type": payload.get("change_type"),
        "reason": str(reason).strip() if reason is not None else None,
        "order_id": parse_int(payload["order_id"], "order_id") if payload.get("order_id") is not None else None,
    }


def parse_page_args(args) -> tuple[int, int]:
    page = parse_int(args.get("page", "1"), "page")
    limit = parse_int(args.get("limit", "10"), "limit")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    return page, min(limit, 100)
