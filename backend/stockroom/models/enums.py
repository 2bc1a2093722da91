# backend/stockroom/models/enums.py
"""
Closed status/type vocabularies.

Every status or type column is backed by one of these; transition sites
dispatch over the full member set so an unknown value cannot slip through.
"""
from __future__ import annotations

from enum import Enum


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONTINUED = "DISCONTINUED"


class StockMovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"


class InventoryAdjustmentType(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"

    @property
    def movement_type(self) -> StockMovementType:
        if self is InventoryAdjustmentType.INCREASE:
            return StockMovementType.IN
        return StockMovementType.OUT


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    CHECK = "CHECK"


def coerce_enum_value(enum_cls, value):
    """Map a raw API value (any case) onto enum_cls, or raise ValueError."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        raise ValueError(f"invalid {enum_cls.__name__}: {value!r}")
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"invalid {enum_cls.__name__}: {value!r} (expected one of {allowed})")
