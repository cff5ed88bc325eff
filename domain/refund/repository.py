"""
退款仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import RefundLedgerEntry, RefundRecord


class RefundLedgerRepository(ABC):
    """退款账本仓储：读取 + 条件写入"""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[RefundLedgerEntry]:
        pass

    @abstractmethod
    async def insert(self, entry: RefundLedgerEntry) -> bool:
        """首次写入；同一订单已存在账本时返回 False"""
        pass

    @abstractmethod
    async def compare_and_set(self, entry: RefundLedgerEntry, expected_version: int) -> bool:
        """仅当存储版本仍为 expected_version 时写入 entry；返回是否写入成功"""
        pass


class RefundRecordRepository(ABC):
    """退款记录仓储（追加写）"""

    @abstractmethod
    async def create(self, record: RefundRecord) -> RefundRecord:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, order_id: str, idempotency_key: str) -> Optional[RefundRecord]:
        pass

    @abstractmethod
    async def list_by_order(self, order_id: str) -> List[RefundRecord]:
        pass

    @abstractmethod
    async def list_unreconciled(self, skip: int = 0, limit: int = 100) -> List[RefundRecord]:
        pass

    @abstractmethod
    async def mark_reconciled(self, order_id: str, idempotency_key: str, note: str) -> int:
        """把同一幂等键下尚未对账的记录标记为已对账；返回更新条数"""
        pass
