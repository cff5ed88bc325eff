"""
订单/商品数据库模型

订单由结账流程写入，本服务只读，仅维护退款相关字段。
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    tenant_key = Column(String(128), nullable=True, index=True, comment="所属租户")
    name = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False, comment="价格（分）")
    is_archived = Column(Boolean, nullable=False, default=False, comment="是否下架")


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    order_number = Column(String(64), nullable=True, unique=True, comment="订单号")
    tenant_key = Column(String(128), nullable=True, index=True)
    user_id = Column(String(191), nullable=True, index=True)

    currency = Column(String(3), nullable=False, default="usd", comment="货币代码 ISO-4217")
    total_cents = Column(Integer, nullable=False, comment="订单总额（分）")
    shipping_cents = Column(Integer, nullable=False, default=0, comment="运费（分）")

    # 支付渠道引用（PaymentIntent / Charge）
    payment_ref = Column(String(200), nullable=True, comment="支付渠道的支付ID")
    processor_account_id = Column(String(200), nullable=True, comment="连接账户ID")

    status = Column(
        String(32),
        nullable=False,
        default="paid",
        index=True,
        comment="订单状态: paid/partially_refunded/refunded/canceled"
    )
    refunded_total_cents = Column(Integer, nullable=False, default=0, comment="已退款（分），由账本推导")
    last_refund_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', total_cents={self.total_cents}, status='{self.status}')>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    item_id = Column(String(64), primary_key=True, comment="订单内唯一的行ID")
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String(64), nullable=True)
    unit_price_cents = Column(Integer, nullable=False, comment="单价（分）")
    quantity = Column(Integer, nullable=False)

    order = relationship("OrderModel", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_product", "product_id"),
    )
