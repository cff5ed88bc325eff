"""
订单/商品仓储实现
"""
from typing import Iterable, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.order.entity import Order, OrderItem, OrderStatus, Product
from domain.order.repository import OrderRepository, ProductRepository
from infrastructure.models.order import OrderItemModel, OrderModel, ProductModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            tenant_key=model.tenant_key,
            user_id=model.user_id,
            currency=model.currency,
            total_cents=model.total_cents,
            shipping_cents=model.shipping_cents or 0,
            payment_ref=model.payment_ref,
            processor_account_id=model.processor_account_id,
            status=OrderStatus(model.status),
            refunded_total_cents=model.refunded_total_cents or 0,
            last_refund_at=model.last_refund_at,
            created_at=model.created_at,
            items=[
                OrderItem(
                    item_id=item.item_id,
                    product_id=item.product_id,
                    unit_price_cents=item.unit_price_cents,
                    quantity=item.quantity,
                )
                for item in model.items
            ],
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            order_number=entity.order_number,
            tenant_key=entity.tenant_key,
            user_id=entity.user_id,
            currency=entity.currency,
            total_cents=entity.total_cents,
            shipping_cents=entity.shipping_cents,
            payment_ref=entity.payment_ref,
            processor_account_id=entity.processor_account_id,
            status=entity.status.value,
            refunded_total_cents=entity.refunded_total_cents,
            last_refund_at=entity.last_refund_at,
            items=[
                OrderItemModel(
                    item_id=item.item_id,
                    position=position,
                    product_id=item.product_id,
                    unit_price_cents=item.unit_price_cents,
                    quantity=item.quantity,
                )
                for position, item in enumerate(entity.items)
            ],
        )

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def add(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        logger.info("order_created", order_id=order.id, total_cents=order.total_cents)
        return order

    async def update_refund_state(self, order: Order) -> None:
        await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id)
            .values(
                status=order.status.value,
                refunded_total_cents=order.refunded_total_cents,
                last_refund_at=order.last_refund_at,
            )
        )
        logger.info(
            "order_refund_state_updated",
            order_id=order.id,
            status=order.status.value,
            refunded_total_cents=order.refunded_total_cents,
        )


class SQLAlchemyProductRepository(ProductRepository):
    """商品仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            name=model.name,
            price_cents=model.price_cents,
            tenant_key=model.tenant_key,
            is_archived=bool(model.is_archived),
        )

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self.session.execute(select(ProductModel).where(ProductModel.id == product_id))
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def add(self, product: Product) -> Product:
        self.session.add(
            ProductModel(
                id=product.id,
                name=product.name,
                price_cents=product.price_cents,
                tenant_key=product.tenant_key,
                is_archived=product.is_archived,
            )
        )
        await self.session.flush()
        return product

    async def list_unavailable(self, product_ids: Iterable[str]) -> Set[str]:
        ids = set(product_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(ProductModel.id, ProductModel.is_archived).where(ProductModel.id.in_(ids))
        )
        available = {pid for pid, archived in result.all() if not archived}
        return ids - available
