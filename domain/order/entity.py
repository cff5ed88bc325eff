"""
订单/商品领域实体（只读视图）

订单由结账流程创建；本服务只读取订单，并在退款提交时维护其退款状态。
金额统一使用整数分（cents）。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    CANCELED = "canceled"


@dataclass(frozen=True)
class OrderItem:
    item_id: str
    product_id: Optional[str]
    unit_price_cents: int
    quantity: int

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException(f"订单行数量必须大于0: {self.quantity}", field="quantity")
        if self.unit_price_cents < 0:
            raise DomainValidationException(f"单价不能为负: {self.unit_price_cents}", field="unit_price_cents")


@dataclass
class Order:
    """
    订单聚合（退款视角）

    业务规则：
    1. 结账后不可变，仅退款相关字段（status/refunded_total_cents/last_refund_at）可更新
    2. 已取消的订单状态不会被退款覆盖
    """

    id: str
    currency: str
    total_cents: int
    items: List[OrderItem] = field(default_factory=list)
    order_number: Optional[str] = None
    tenant_key: Optional[str] = None
    user_id: Optional[str] = None
    shipping_cents: int = 0
    payment_ref: Optional[str] = None
    processor_account_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PAID
    refunded_total_cents: int = 0
    last_refund_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total_cents < 0:
            raise DomainValidationException(f"订单金额不能为负: {self.total_cents}", field="total_cents")

    def items_by_id(self) -> Dict[str, OrderItem]:
        return {item.item_id: item for item in self.items}

    def apply_refund_state(self, refunded_total_cents: int, refunded_at: Optional[datetime] = None) -> None:
        """根据账本累计退款额重新推导订单状态"""
        self.refunded_total_cents = refunded_total_cents
        self.last_refund_at = refunded_at or datetime.now(timezone.utc)
        if self.status == OrderStatus.CANCELED:
            return
        if refunded_total_cents <= 0:
            self.status = OrderStatus.PAID
        elif refunded_total_cents >= self.total_cents:
            self.status = OrderStatus.REFUNDED
        else:
            self.status = OrderStatus.PARTIALLY_REFUNDED


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price_cents: int
    tenant_key: Optional[str] = None
    is_archived: bool = False
