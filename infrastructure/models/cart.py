"""
购物车数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, UniqueConstraint

from .base import Base, utcnow


class CartModel(Base):
    """
    购物车数据库模型

    scope 字符串（"<tenant>::<user>"）是唯一主键
    """
    __tablename__ = "carts"

    scope = Column(String(320), primary_key=True, comment="购物车作用域键")
    tenant_key = Column(String(128), nullable=False, comment="租户键或 __global__")
    user_key = Column(String(191), nullable=False, comment="用户ID或 anon:<device>")

    # {product_id: quantity}
    items = Column(JSON, nullable=False, default=dict, comment="购物车行")
    # 行数冗余列，供清理任务按空购物车筛选
    item_count = Column(Integer, nullable=False, default=0, comment="购物车行数")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, comment="创建时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_carts_tenant_user", "tenant_key", "user_key"),
        Index("ix_carts_updated_at", "updated_at"),
    )

    def __repr__(self):
        return f"<CartModel(scope='{self.scope}')>"


class CartMergeMarkerModel(Base):
    """
    购物车合并标记

    (tenant_key, user_id) 唯一约束即合并的 CAS 守卫
    """
    __tablename__ = "cart_merge_markers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_key = Column(String(128), nullable=False, comment="租户键")
    user_id = Column(String(191), nullable=False, comment="用户ID")
    source_scope = Column(String(320), nullable=False, comment="被合并的匿名购物车作用域")
    merged_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, comment="合并时间")

    __table_args__ = (
        UniqueConstraint("tenant_key", "user_id", name="uq_cart_merge_markers_tenant_user"),
    )

    def __repr__(self):
        return f"<CartMergeMarkerModel(tenant_key='{self.tenant_key}', user_id='{self.user_id}')>"
