"""
购物车应用服务 - 基于 scope 的购物车读写

并发写入同一 scope 时后写覆盖（last-writer-wins）。
"""
from __future__ import annotations

from typing import Callable

from core.logging_config import get_logger
from domain.cart.entity import Cart
from domain.cart.scope import CartScope
from domain.common.exceptions import (
    DomainValidationException,
    ProductNotFoundException,
    ProductUnavailableException,
)
from domain.common.identifiers import extract_id
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class CartService:
    """购物车应用服务"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def get_cart(self, scope: CartScope) -> Cart:
        """读取购物车；不存在时返回未持久化的空购物车"""
        async with self._uow_factory(readonly=True) as uow:
            cart = await uow.cart_repository.get(scope)
        return cart or Cart(scope=scope)

    async def add_item(self, scope: CartScope, product_id, quantity: int = 1) -> Cart:
        pid = self._product_id(product_id)
        async with self._uow_factory() as uow:
            await self._ensure_product(uow, scope, pid)
            cart = await uow.cart_repository.get(scope) or Cart(scope=scope)
            cart.add(pid, quantity)
            await uow.cart_repository.save(cart)
        logger.info("cart_item_added", scope=scope.key, product_id=pid, quantity=quantity)
        return cart

    async def set_quantity(self, scope: CartScope, product_id, quantity: int) -> Cart:
        """设置商品数量；0 表示移除"""
        pid = self._product_id(product_id)
        async with self._uow_factory() as uow:
            if quantity > 0:
                await self._ensure_product(uow, scope, pid)
            cart = await uow.cart_repository.get(scope) or Cart(scope=scope)
            cart.set_quantity(pid, quantity)
            await uow.cart_repository.save(cart)
        logger.info("cart_item_quantity_set", scope=scope.key, product_id=pid, quantity=quantity)
        return cart

    async def remove_item(self, scope: CartScope, product_id) -> Cart:
        pid = self._product_id(product_id)
        async with self._uow_factory() as uow:
            cart = await uow.cart_repository.get(scope) or Cart(scope=scope)
            if cart.remove(pid):
                await uow.cart_repository.save(cart)
        return cart

    async def clear(self, scope: CartScope) -> bool:
        async with self._uow_factory() as uow:
            deleted = await uow.cart_repository.delete(scope)
        if deleted:
            logger.info("cart_cleared", scope=scope.key)
        return deleted

    @staticmethod
    def _product_id(product_id) -> str:
        pid = extract_id(product_id)
        if not pid:
            raise DomainValidationException("product_id is required", field="product_id")
        return pid

    @staticmethod
    async def _ensure_product(uow: AbstractUnitOfWork, scope: CartScope, product_id: str) -> None:
        product = await uow.product_repository.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundException(product_id)
        if product.is_archived:
            raise ProductUnavailableException(product_id, "archived")
        if not scope.is_global and product.tenant_key and product.tenant_key != scope.tenant_key:
            raise ProductUnavailableException(product_id, "belongs to another tenant")
