"""
购物车领域实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from domain.cart.scope import CartScope
from domain.common.exceptions import DomainValidationException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_quantity(quantity: int, *, allow_zero: bool = False) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise DomainValidationException("数量必须为整数", field="quantity")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise DomainValidationException(f"数量必须为正整数: {quantity}", field="quantity")
    return quantity


@dataclass
class Cart:
    """
    购物车聚合 - 以 scope 为唯一键

    业务规则：
    1. 每个商品只出现一次，数量为正整数
    2. 数量降为0即移除该行
    3. 合并时相同商品数量相加，其余原样复制
    """

    scope: CartScope
    lines: Dict[str, int] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        for product_id, qty in list(self.lines.items()):
            _ensure_quantity(qty)
        if self.updated_at is None:
            self.updated_at = _utcnow()

    @property
    def key(self) -> str:
        return str(self.scope)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_quantity(self) -> int:
        return sum(self.lines.values())

    def quantity_of(self, product_id: str) -> int:
        return self.lines.get(product_id, 0)

    def add(self, product_id: str, quantity: int = 1) -> None:
        _ensure_quantity(quantity)
        self.lines[product_id] = self.lines.get(product_id, 0) + quantity
        self._touch()

    def set_quantity(self, product_id: str, quantity: int) -> None:
        _ensure_quantity(quantity, allow_zero=True)
        if quantity == 0:
            self.lines.pop(product_id, None)
        else:
            self.lines[product_id] = quantity
        self._touch()

    def remove(self, product_id: str) -> bool:
        removed = self.lines.pop(product_id, None) is not None
        if removed:
            self._touch()
        return removed

    def clear(self) -> None:
        self.lines.clear()
        self._touch()

    def absorb(self, other: "Cart") -> None:
        """Union ``other`` into this cart, summing shared products."""
        for product_id, qty in other.lines.items():
            self.lines[product_id] = self.lines.get(product_id, 0) + qty
        self._touch()

    def _touch(self) -> None:
        self.updated_at = _utcnow()


@dataclass(frozen=True)
class CartMergeMarker:
    """Records that the anonymous cart of a device was merged into a user cart."""

    tenant_key: str
    user_id: str
    source_scope: str
    merged_at: datetime = field(default_factory=_utcnow)
