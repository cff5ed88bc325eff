"""create_cart_and_refund_tables

Revision ID: 3c1f0a7b2d54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f0a7b2d54'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 商品（只读视图，由目录服务写入）
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('tenant_key', sa.String(length=128), nullable=True, comment='所属租户'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, comment='价格（分）'),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否下架'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_tenant_key', 'products', ['tenant_key'], unique=False)

    # 订单（由结账流程写入）
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True, comment='订单号'),
        sa.Column('tenant_key', sa.String(length=128), nullable=True),
        sa.Column('user_id', sa.String(length=191), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd', comment='货币代码 ISO-4217'),
        sa.Column('total_cents', sa.Integer(), nullable=False, comment='订单总额（分）'),
        sa.Column('shipping_cents', sa.Integer(), nullable=False, server_default='0', comment='运费（分）'),
        sa.Column('payment_ref', sa.String(length=200), nullable=True, comment='支付渠道的支付ID'),
        sa.Column('processor_account_id', sa.String(length=200), nullable=True, comment='连接账户ID'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='paid',
                  comment='订单状态: paid/partially_refunded/refunded/canceled'),
        sa.Column('refunded_total_cents', sa.Integer(), nullable=False, server_default='0',
                  comment='已退款（分），由账本推导'),
        sa.Column('last_refund_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_tenant_key', 'orders', ['tenant_key'], unique=False)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('item_id', sa.String(length=64), nullable=False, comment='订单内唯一的行ID'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_id', sa.String(length=64), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, comment='单价（分）'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('order_id', 'item_id', name='pk_order_items'),
    )
    op.create_index('ix_order_items_product', 'order_items', ['product_id'], unique=False)

    # 购物车（scope 为唯一键）
    op.create_table(
        'carts',
        sa.Column('scope', sa.String(length=320), nullable=False, comment='购物车作用域键'),
        sa.Column('tenant_key', sa.String(length=128), nullable=False, comment='租户键或 __global__'),
        sa.Column('user_key', sa.String(length=191), nullable=False, comment='用户ID或 anon:<device>'),
        sa.Column('items', sa.JSON(), nullable=False, comment='购物车行'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('scope', name='pk_carts'),
    )
    op.create_index('ix_carts_tenant_user', 'carts', ['tenant_key', 'user_key'], unique=False)

    op.create_table(
        'cart_merge_markers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_key', sa.String(length=128), nullable=False, comment='租户键'),
        sa.Column('user_id', sa.String(length=191), nullable=False, comment='用户ID'),
        sa.Column('source_scope', sa.String(length=320), nullable=False, comment='被合并的匿名购物车作用域'),
        sa.Column('merged_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='合并时间'),
        sa.PrimaryKeyConstraint('id', name='pk_cart_merge_markers'),
        sa.UniqueConstraint('tenant_key', 'user_id', name='uq_cart_merge_markers_tenant_user'),
    )

    # 退款账本（每订单一行，version 条件更新）
    op.create_table(
        'refund_ledger',
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('refunded_total_cents', sa.Integer(), nullable=False, server_default='0', comment='累计退款（分）'),
        sa.Column('per_item_refunded_qty', sa.JSON(), nullable=False, comment='每行已退数量'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1', comment='乐观锁版本'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_refund_ledger_order_id_orders', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('order_id', name='pk_refund_ledger'),
    )

    # 退款审计记录（追加写）
    op.create_table(
        'refund_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('processor_refund_id', sa.String(length=200), nullable=True, comment='渠道退款ID'),
        sa.Column('amount_cents', sa.Integer(), nullable=False, comment='退款金额（分）'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending',
                  comment='退款状态: pending/succeeded/failed/canceled/unknown'),
        sa.Column('reconciled', sa.Boolean(), nullable=False, server_default=sa.true(), comment='账本是否已同步'),
        sa.Column('reason', sa.String(length=32), nullable=True, comment='退款原因'),
        sa.Column('selections', sa.JSON(), nullable=False, comment='退款行 [{item_id, quantity}]'),
        sa.Column('restocking_fee_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('refund_shipping_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True, comment='幂等键'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败/未同步原因'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_refund_records'),
    )
    op.create_index('ix_refund_records_order_id', 'refund_records', ['order_id'], unique=False)
    op.create_index('ix_refund_records_processor_refund_id', 'refund_records', ['processor_refund_id'], unique=False)
    op.create_index('ix_refund_records_created_at', 'refund_records', ['created_at'], unique=False)
    op.create_index('ix_refund_records_order_idempotency', 'refund_records', ['order_id', 'idempotency_key'], unique=False)
    op.create_index('ix_refund_records_reconciled', 'refund_records', ['reconciled'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_refund_records_reconciled', table_name='refund_records')
    op.drop_index('ix_refund_records_order_idempotency', table_name='refund_records')
    op.drop_index('ix_refund_records_created_at', table_name='refund_records')
    op.drop_index('ix_refund_records_processor_refund_id', table_name='refund_records')
    op.drop_index('ix_refund_records_order_id', table_name='refund_records')
    op.drop_table('refund_records')
    op.drop_table('refund_ledger')
    op.drop_table('cart_merge_markers')
    op.drop_index('ix_carts_tenant_user', table_name='carts')
    op.drop_table('carts')
    op.drop_index('ix_order_items_product', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_tenant_key', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_products_tenant_key', table_name='products')
    op.drop_table('products')
