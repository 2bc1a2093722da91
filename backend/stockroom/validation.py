# Overview: Request payload validation against model metadata and per-operation rules.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Text

from .errors import ValidationError
from .models import InventoryAdjustmentType, PaymentMethod, coerce_enum_value
from .time_utils import parse_iso_datetime


# $9,999,999.99; keeps cent totals well inside a 32-bit column
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may send for a model.

    writable_fields: allowlist; anything else is rejected outright
    required_on_create: must be present when partial=False
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    digits = text[1:] if text[:1] in ("-", "+") else text
    if not (digits.isascii() and digits.isdigit()):
        raise ValidationError(f"{key} must be a plain integer")
    return int(text)


def coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a datetime")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _normalize(column, value: Any):
    """Coerce one raw JSON value to the Python type its column stores."""
    kind = column.type

    # sqlalchemy.Enum subclasses String, so it goes first
    if isinstance(kind, Enum) and kind.enum_class is not None:
        try:
            return coerce_enum_value(kind.enum_class, value)
        except ValueError as exc:
            raise ValidationError(f"{column.key}: {exc}")
    if isinstance(kind, Integer):
        return coerce_int(column.key, value)
    if isinstance(kind, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if isinstance(kind, DateTime):
        return coerce_datetime(column.key, value)
    if isinstance(kind, (String, Text)):
        text = str(value).strip()
        if text == "" and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        if isinstance(kind, String) and kind.length and len(text) > kind.length:
            raise ValidationError(f"{column.key} exceeds max length {kind.length}")
        return text
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the policy and the model's column metadata
    and return only the cleaned, writable fields.

    partial=False is create semantics (required fields enforced);
    partial=True validates just the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _normalize(column, raw)

    return cleaned


def enforce_rules_product(patch: dict) -> None:
    """Product rules column metadata cannot express."""
    for key in ("price_cents", "cost_price_cents"):
        value = patch.get(key)
        if value is None:
            continue
        if value <= 0:
            raise ValidationError(f"{key} must be > 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    for key in ("stock", "min_stock", "max_stock"):
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")


def validate_adjustment_payload(payload: dict) -> dict:
    """{type, quantity, reason, notes?} -> normalized adjustment kwargs."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [k for k in ("type", "quantity", "reason") if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        adjustment_type = coerce_enum_value(InventoryAdjustmentType, payload["type"])
    except ValueError as exc:
        raise ValidationError(str(exc))

    quantity = coerce_int("quantity", payload["quantity"])
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    reason = str(payload["reason"]).strip()
    if not reason:
        raise ValidationError("reason cannot be blank")
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip()
        if len(notes) > 500:
            raise ValidationError("notes exceeds max length 500")

    return {
        "adjustment_type": adjustment_type,
        "quantity": quantity,
        "reason": reason,
        "notes": notes or None,
    }


def validate_order_payload(payload: dict) -> dict:
    """
    {customer_id?, items[{product_id, quantity, unit_price_cents?}],
     discount_cents?, tax_cents?, notes?} -> normalized create_order kwargs.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"customer_id", "items", "discount_cents", "tax_cents", "notes"}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") is None or raw.get("quantity") is None:
            raise ValidationError(f"items[{index}] requires product_id and quantity")
        product_id = coerce_int(f"items[{index}].product_id", raw["product_id"])
        quantity = coerce_int(f"items[{index}].quantity", raw["quantity"])
        if product_id <= 0:
            raise ValidationError(f"items[{index}].product_id must be > 0")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        unit_price = raw.get("unit_price_cents")
        if unit_price is not None:
            unit_price = coerce_int(f"items[{index}].unit_price_cents", unit_price)
            if unit_price <= 0 or unit_price > MAX_PRICE_CENTS:
                raise ValidationError(f"items[{index}].unit_price_cents out of range")
        items.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})

    customer_id = payload.get("customer_id")
    if customer_id is not None:
        customer_id = coerce_int("customer_id", customer_id)

    discount = coerce_int("discount_cents", payload.get("discount_cents", 0) or 0)
    tax = coerce_int("tax_cents", payload.get("tax_cents", 0) or 0)
    if discount < 0:
        raise ValidationError("discount_cents must be >= 0")
    if tax < 0:
        raise ValidationError("tax_cents must be >= 0")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip()
        if len(notes) > 1000:
            raise ValidationError("notes exceeds max length 1000")

    return {
        "customer_id": customer_id,
        "items": items,
        "discount_cents": discount,
        "tax_cents": tax,
        "notes": notes or None,
    }


def validate_payment_payload(payload: dict) -> dict:
    """{amount_cents, payment_method?, payment_date?, reference?, notes?}"""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if payload.get("amount_cents") is None:
        raise ValidationError("Missing required fields: amount_cents")

    amount = coerce_int("amount_cents", payload["amount_cents"])
    if amount <= 0:
        raise ValidationError("amount_cents must be > 0")

    try:
        method = coerce_enum_value(PaymentMethod, payload.get("payment_method") or PaymentMethod.CASH)
    except ValueError as exc:
        raise ValidationError(str(exc))

    payment_date = payload.get("payment_date")
    if payment_date is not None:
        payment_date = coerce_datetime("payment_date", payment_date)

    reference = payload.get("reference")
    if reference is not None:
        reference = str(reference).strip()
        if len(reference) > 100:
            raise ValidationError("reference exceeds max length 100")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip()
        if len(notes) > 500:
            raise ValidationError("notes exceeds max length 500")

    return {
        "amount_cents": amount,
        "payment_method": method,
        "payment_date": payment_date,
        "reference": reference or None,
        "notes": notes or None,
    }
