"""Infrastructure models package exports."""
from .base import Base, metadata
from .cart import CartMergeMarkerModel, CartModel
from .order import OrderItemModel, OrderModel, ProductModel
from .refund import RefundLedgerModel, RefundRecordModel

__all__ = [
    "Base",
    "metadata",
    "CartModel",
    "CartMergeMarkerModel",
    "OrderModel",
    "OrderItemModel",
    "ProductModel",
    "RefundLedgerModel",
    "RefundRecordModel",
]
