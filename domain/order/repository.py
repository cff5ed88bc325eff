"""
订单/商品仓储接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Set

from .entity import Order, Product


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单（含订单行）"""
        pass

    @abstractmethod
    async def add(self, order: Order) -> Order:
        """写入订单；结账流程与测试夹具使用"""
        pass

    @abstractmethod
    async def update_refund_state(self, order: Order) -> None:
        """仅更新退款相关字段"""
        pass


class ProductRepository(ABC):
    """商品仓储抽象接口（只读）"""

    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def add(self, product: Product) -> Product:
        pass

    @abstractmethod
    async def list_unavailable(self, product_ids: Iterable[str]) -> Set[str]:
        """返回其中已下架或不存在的商品ID"""
        pass
