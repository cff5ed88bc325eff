"""add_cart_cleanup_columns

Revision ID: 8e2b6c41f9a3
Revises: 3c1f0a7b2d54
Create Date: 2026-10-20 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8e2b6c41f9a3'
down_revision: Union[str, None] = '3c1f0a7b2d54'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 行数冗余列，供清理任务筛选空购物车
    with op.batch_alter_table('carts') as batch_op:
        batch_op.add_column(
            sa.Column('item_count', sa.Integer(), nullable=False, server_default='0', comment='购物车行数')
        )
    # 回填已有购物车的行数，避免被当作空购物车清理
    carts = sa.table(
        'carts',
        sa.column('scope', sa.String),
        sa.column('items', sa.JSON),
        sa.column('item_count', sa.Integer),
    )
    conn = op.get_bind()
    for scope, items in conn.execute(sa.select(carts.c.scope, carts.c.items)).all():
        conn.execute(
            carts.update().where(carts.c.scope == scope).values(item_count=len(items or {}))
        )
    op.create_index('ix_carts_updated_at', 'carts', ['updated_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_carts_updated_at', table_name='carts')
    with op.batch_alter_table('carts') as batch_op:
        batch_op.drop_column('item_count')
