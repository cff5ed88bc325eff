"""
购物车仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode

from .entity import Cart, CartMergeMarker
from .scope import CartScope


class MergeAlreadyRecordedException(BusinessException):
    """同一 (tenant, user) 的合并标记已存在"""

    def __init__(self, tenant_key: str, user_id: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="Cart merge already recorded",
            error_type="MergeAlreadyRecorded",
            details={"tenant_key": tenant_key, "user_id": user_id},
        )


class StaleCartRule(str, Enum):
    """可整车删除的过期购物车规则"""
    GUEST = "guest"  # 访客购物车，updated_at 早于截止时间
    EMPTY = "empty"  # 空购物车，updated_at 早于截止时间


class CartRepository(ABC):
    """购物车仓储抽象接口"""

    @abstractmethod
    async def get(self, scope: CartScope) -> Optional[Cart]:
        """按 scope 读取购物车"""
        pass

    @abstractmethod
    async def save(self, cart: Cart) -> Cart:
        """写入购物车（后写覆盖）；空购物车会被删除"""
        pass

    @abstractmethod
    async def delete(self, scope: CartScope) -> bool:
        """删除购物车"""
        pass

    @abstractmethod
    async def get_merge_marker(self, tenant_key: str, user_id: str) -> Optional[CartMergeMarker]:
        pass

    @abstractmethod
    async def add_merge_marker(self, marker: CartMergeMarker) -> CartMergeMarker:
        """插入合并标记；已存在时抛出 MergeAlreadyRecordedException"""
        pass

    @abstractmethod
    async def count_stale(self, rule: StaleCartRule, cutoff: datetime) -> int:
        pass

    @abstractmethod
    async def list_stale_scopes(self, rule: StaleCartRule, cutoff: datetime, limit: int) -> List[CartScope]:
        """按 updated_at 升序返回最多 limit 个命中规则的购物车"""
        pass

    @abstractmethod
    async def delete_stale(self, rule: StaleCartRule, cutoff: datetime, scopes: Sequence[CartScope]) -> int:
        """删除 scopes 中仍命中规则的购物车；期间被更新过的购物车保留"""
        pass

    @abstractmethod
    async def list_updated_before(
        self, cutoff: datetime, *, after_key: Optional[str] = None, limit: int = 100
    ) -> List[Cart]:
        """按 scope 键分页扫描 updated_at 早于 cutoff 的购物车"""
        pass
