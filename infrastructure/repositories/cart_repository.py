"""
购物车仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.cart.entity import Cart, CartMergeMarker
from domain.cart.repository import CartRepository, MergeAlreadyRecordedException, StaleCartRule
from domain.cart.scope import ANON_PREFIX, CartScope
from infrastructure.models.cart import CartMergeMarkerModel, CartModel


logger = get_logger(__name__)


class SQLAlchemyCartRepository(CartRepository):
    """购物车仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CartModel) -> Cart:
        """将数据库模型转换为领域实体"""
        return Cart(
            scope=CartScope(tenant_key=model.tenant_key, user_key=model.user_key),
            lines={str(k): int(v) for k, v in (model.items or {}).items()},
            updated_at=model.updated_at,
        )

    async def _get_model(self, scope: CartScope) -> Optional[CartModel]:
        result = await self.session.execute(select(CartModel).where(CartModel.scope == str(scope)))
        return result.scalar_one_or_none()

    async def get(self, scope: CartScope) -> Optional[Cart]:
        db_cart = await self._get_model(scope)
        return self._to_entity(db_cart) if db_cart else None

    async def save(self, cart: Cart) -> Cart:
        if cart.is_empty:
            await self.delete(cart.scope)
            return cart

        db_cart = await self._get_model(cart.scope)
        if db_cart is None:
            db_cart = CartModel(
                scope=cart.key,
                tenant_key=cart.scope.tenant_key,
                user_key=cart.scope.user_key,
            )
            self.session.add(db_cart)
        # 整体替换 JSON，确保变更被跟踪
        db_cart.items = dict(cart.lines)
        db_cart.item_count = len(cart.lines)
        db_cart.updated_at = cart.updated_at
        await self.session.flush()

        logger.debug("cart_saved", scope=cart.key, lines=len(cart.lines))
        return cart

    async def delete(self, scope: CartScope) -> bool:
        result = await self.session.execute(delete(CartModel).where(CartModel.scope == str(scope)))
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.debug("cart_deleted", scope=str(scope))
        return deleted

    async def get_merge_marker(self, tenant_key: str, user_id: str) -> Optional[CartMergeMarker]:
        result = await self.session.execute(
            select(CartMergeMarkerModel).where(
                CartMergeMarkerModel.tenant_key == tenant_key,
                CartMergeMarkerModel.user_id == user_id,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return CartMergeMarker(
            tenant_key=model.tenant_key,
            user_id=model.user_id,
            source_scope=model.source_scope,
            merged_at=model.merged_at,
        )

    async def add_merge_marker(self, marker: CartMergeMarker) -> CartMergeMarker:
        db_marker = CartMergeMarkerModel(
            tenant_key=marker.tenant_key,
            user_id=marker.user_id,
            source_scope=marker.source_scope,
            merged_at=marker.merged_at,
        )
        self.session.add(db_marker)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # 事务由 UoW 负责回滚
            logger.info(
                "cart_merge_marker_conflict",
                tenant_key=marker.tenant_key,
                user_id=marker.user_id,
            )
            raise MergeAlreadyRecordedException(marker.tenant_key, marker.user_id) from e
        return marker

    @staticmethod
    def _stale_condition(rule: StaleCartRule, cutoff: datetime):
        if rule is StaleCartRule.GUEST:
            return (CartModel.updated_at < cutoff) & CartModel.user_key.startswith(ANON_PREFIX)
        if rule is StaleCartRule.EMPTY:
            return (CartModel.updated_at < cutoff) & (CartModel.item_count == 0)
        raise ValueError(f"unknown cleanup rule: {rule}")

    async def count_stale(self, rule: StaleCartRule, cutoff: datetime) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CartModel).where(self._stale_condition(rule, cutoff))
        )
        return int(result.scalar_one())

    async def list_stale_scopes(self, rule: StaleCartRule, cutoff: datetime, limit: int) -> List[CartScope]:
        result = await self.session.execute(
            select(CartModel.tenant_key, CartModel.user_key)
            .where(self._stale_condition(rule, cutoff))
            .order_by(CartModel.updated_at.asc())
            .limit(limit)
        )
        return [CartScope(tenant_key=t, user_key=u) for t, u in result.all()]

    async def delete_stale(self, rule: StaleCartRule, cutoff: datetime, scopes: Sequence[CartScope]) -> int:
        if not scopes:
            return 0
        result = await self.session.execute(
            delete(CartModel)
            .where(CartModel.scope.in_([str(s) for s in scopes]))
            .where(self._stale_condition(rule, cutoff))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_updated_before(
        self, cutoff: datetime, *, after_key: Optional[str] = None, limit: int = 100
    ) -> List[Cart]:
        stmt = select(CartModel).where(CartModel.updated_at < cutoff)
        if after_key is not None:
            stmt = stmt.where(CartModel.scope > after_key)
        result = await self.session.execute(stmt.order_by(CartModel.scope.asc()).limit(limit))
        return [self._to_entity(m) for m in result.scalars().all()]
