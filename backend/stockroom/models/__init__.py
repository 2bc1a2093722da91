from .enums import (
    ProductStatus,
    StockMovementType,
    InventoryAdjustmentType,
    OrderStatus,
    PaymentMethod,
    coerce_enum_value,
)
from .inventory import Product, StockMovement, InventoryAdjustment, ImmutableRecordError
from .customers import Customer
from .sales import Order, OrderItem, Payment, OrderNumberSequence

__all__ = [
    'ProductStatus', 'StockMovementType', 'InventoryAdjustmentType', 'OrderStatus', 'PaymentMethod', 'coerce_enum_value',
    'Product', 'StockMovement', 'InventoryAdjustment', 'ImmutableRecordError',
    'Customer',
    'Order', 'OrderItem', 'Payment', 'OrderNumberSequence',
]
