"""
退款账本与退款记录数据库模型
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base, utcnow


class RefundLedgerModel(Base):
    """
    退款账本（每订单一行）

    version 用于条件更新：UPDATE ... WHERE version = :expected
    """
    __tablename__ = "refund_ledger"

    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    refunded_total_cents = Column(Integer, nullable=False, default=0, comment="累计退款（分）")
    # {item_id: refunded_qty}
    per_item_refunded_qty = Column(JSON, nullable=False, default=dict, comment="每行已退数量")
    version = Column(Integer, nullable=False, default=1, comment="乐观锁版本")
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<RefundLedgerModel(order_id='{self.order_id}', "
            f"refunded_total_cents={self.refunded_total_cents}, version={self.version})>"
        )


class RefundRecordModel(Base):
    """
    退款审计记录（追加写）
    """
    __tablename__ = "refund_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True, comment="订单ID")

    processor_refund_id = Column(String(200), nullable=True, index=True, comment="渠道退款ID")
    amount_cents = Column(Integer, nullable=False, comment="退款金额（分）")
    currency = Column(String(3), nullable=False, comment="货币代码")
    status = Column(
        String(32),
        nullable=False,
        default="pending",
        comment="退款状态: pending/succeeded/failed/canceled/unknown"
    )
    reconciled = Column(Boolean, nullable=False, default=True, comment="账本是否已同步")

    reason = Column(String(32), nullable=True, comment="退款原因")
    selections = Column(JSON, nullable=False, default=list, comment="退款行 [{item_id, quantity}]")
    restocking_fee_cents = Column(Integer, nullable=False, default=0)
    refund_shipping_cents = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    idempotency_key = Column(String(128), nullable=True, comment="幂等键")
    failure_reason = Column(Text, nullable=True, comment="失败/未同步原因")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_refund_records_order_idempotency", "order_id", "idempotency_key"),
        Index("ix_refund_records_reconciled", "reconciled"),
    )

    def __repr__(self):
        return (
            f"<RefundRecordModel(id={self.id}, order_id='{self.order_id}', "
            f"amount_cents={self.amount_cents}, reconciled={self.reconciled})>"
        )
