"""
退款领域实体 - 退款账本与退款记录

所有金额均为整数分（cents），不使用浮点数。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class RefundReason(str, Enum):
    REQUESTED_BY_CUSTOMER = "requested_by_customer"
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    OTHER = "other"


class RefundRecordStatus(str, Enum):
    """退款记录状态（与处理器状态对齐）"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"  # 处理器调用结果未知（超时/网络中断）


@dataclass(frozen=True)
class LineSelection:
    item_id: str
    quantity: int


@dataclass
class RefundLedgerEntry:
    """
    订单退款账本 - 每个订单一条，由退款引擎独占维护

    业务规则：
    1. refunded_total_cents <= order.total_cents
    2. 每个订单行的已退数量 <= 购买数量
    3. 每次提交 version + 1（用于条件更新）
    """

    order_id: str
    refunded_total_cents: int = 0
    per_item_refunded_qty: Dict[str, int] = field(default_factory=dict)
    version: int = 0
    updated_at: Optional[datetime] = None

    def refunded_qty(self, item_id: str) -> int:
        return self.per_item_refunded_qty.get(item_id, 0)

    def advanced(self, amount_cents: int, per_item_qty: Dict[str, int]) -> "RefundLedgerEntry":
        """返回叠加本次退款后的新账本状态（不修改自身）"""
        merged = dict(self.per_item_refunded_qty)
        for item_id, qty in per_item_qty.items():
            merged[item_id] = merged.get(item_id, 0) + qty
        return RefundLedgerEntry(
            order_id=self.order_id,
            refunded_total_cents=self.refunded_total_cents + amount_cents,
            per_item_refunded_qty=merged,
            version=self.version + 1,
            updated_at=datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class RefundRemaining:
    order_id: str
    total_remaining_cents: int
    per_item: Dict[str, int]
    refunded_total_cents: int
    version: int
    refunded_per_item: Dict[str, int] = field(default_factory=dict)


@dataclass
class RefundRecord:
    """
    退款审计记录 - 每次（可能）动钱的退款尝试一条，创建后不可变

    reconciled=False 表示处理器可能已退款但账本未更新，需要人工对账。
    """

    id: Optional[int]
    order_id: str
    amount_cents: int
    currency: str
    status: RefundRecordStatus
    processor_refund_id: Optional[str] = None
    reconciled: bool = True
    reason: Optional[RefundReason] = None
    selections: List[LineSelection] = field(default_factory=list)
    restocking_fee_cents: int = 0
    refund_shipping_cents: int = 0
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)
