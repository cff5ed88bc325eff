"""
退款账本/退款记录仓储实现
"""
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.refund.entity import (
    LineSelection,
    RefundLedgerEntry,
    RefundReason,
    RefundRecord,
    RefundRecordStatus,
)
from domain.refund.repository import RefundLedgerRepository, RefundRecordRepository
from infrastructure.models.refund import RefundLedgerModel, RefundRecordModel


logger = get_logger(__name__)


class SQLAlchemyRefundLedgerRepository(RefundLedgerRepository):
    """退款账本仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundLedgerModel) -> RefundLedgerEntry:
        return RefundLedgerEntry(
            order_id=model.order_id,
            refunded_total_cents=model.refunded_total_cents,
            per_item_refunded_qty={str(k): int(v) for k, v in (model.per_item_refunded_qty or {}).items()},
            version=model.version,
            updated_at=model.updated_at,
        )

    async def get(self, order_id: str) -> Optional[RefundLedgerEntry]:
        # populate_existing：条件更新后重新读取时不使用身份映射中的旧值
        result = await self.session.execute(
            select(RefundLedgerModel)
            .where(RefundLedgerModel.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def insert(self, entry: RefundLedgerEntry) -> bool:
        model = RefundLedgerModel(
            order_id=entry.order_id,
            refunded_total_cents=entry.refunded_total_cents,
            per_item_refunded_qty=dict(entry.per_item_refunded_qty),
            version=entry.version,
            updated_at=entry.updated_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("refund_ledger_insert_conflict", order_id=entry.order_id)
            return False
        return True

    async def compare_and_set(self, entry: RefundLedgerEntry, expected_version: int) -> bool:
        result = await self.session.execute(
            update(RefundLedgerModel)
            .where(
                RefundLedgerModel.order_id == entry.order_id,
                RefundLedgerModel.version == expected_version,
            )
            .values(
                refunded_total_cents=entry.refunded_total_cents,
                per_item_refunded_qty=dict(entry.per_item_refunded_qty),
                version=entry.version,
                updated_at=entry.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "refund_ledger_version_conflict",
                order_id=entry.order_id,
                expected_version=expected_version,
            )
            return False
        return True


class SQLAlchemyRefundRecordRepository(RefundRecordRepository):
    """退款记录仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundRecordModel) -> RefundRecord:
        """将数据库模型转换为领域实体"""
        return RefundRecord(
            id=model.id,
            order_id=model.order_id,
            amount_cents=model.amount_cents,
            currency=model.currency,
            status=RefundRecordStatus(model.status),
            processor_refund_id=model.processor_refund_id,
            reconciled=bool(model.reconciled),
            reason=RefundReason(model.reason) if model.reason else None,
            selections=[
                LineSelection(item_id=str(s["item_id"]), quantity=int(s["quantity"]))
                for s in (model.selections or [])
            ],
            restocking_fee_cents=model.restocking_fee_cents or 0,
            refund_shipping_cents=model.refund_shipping_cents or 0,
            notes=model.notes,
            idempotency_key=model.idempotency_key,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
        )

    def _to_model(self, entity: RefundRecord) -> RefundRecordModel:
        """将领域实体转换为数据库模型"""
        return RefundRecordModel(
            id=entity.id,
            order_id=entity.order_id,
            amount_cents=entity.amount_cents,
            currency=entity.currency,
            status=entity.status.value,
            processor_refund_id=entity.processor_refund_id,
            reconciled=entity.reconciled,
            reason=entity.reason.value if entity.reason else None,
            selections=[{"item_id": s.item_id, "quantity": s.quantity} for s in entity.selections],
            restocking_fee_cents=entity.restocking_fee_cents,
            refund_shipping_cents=entity.refund_shipping_cents,
            notes=entity.notes,
            idempotency_key=entity.idempotency_key,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
        )

    async def create(self, record: RefundRecord) -> RefundRecord:
        """创建退款记录"""
        db_record = self._to_model(record)
        self.session.add(db_record)
        await self.session.flush()
        await self.session.refresh(db_record)

        logger.info(
            "refund_record_created",
            refund_record_id=db_record.id,
            order_id=db_record.order_id,
            amount_cents=db_record.amount_cents,
            processor_refund_id=db_record.processor_refund_id,
            reconciled=db_record.reconciled,
        )
        return self._to_entity(db_record)

    async def get_by_idempotency_key(self, order_id: str, idempotency_key: str) -> Optional[RefundRecord]:
        result = await self.session.execute(
            select(RefundRecordModel)
            .where(
                RefundRecordModel.order_id == order_id,
                RefundRecordModel.idempotency_key == idempotency_key,
            )
            .order_by(RefundRecordModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_order(self, order_id: str) -> List[RefundRecord]:
        result = await self.session.execute(
            select(RefundRecordModel)
            .where(RefundRecordModel.order_id == order_id)
            .order_by(RefundRecordModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_unreconciled(self, skip: int = 0, limit: int = 100) -> List[RefundRecord]:
        result = await self.session.execute(
            select(RefundRecordModel)
            .where(RefundRecordModel.reconciled.is_(False))
            .order_by(RefundRecordModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_reconciled(self, order_id: str, idempotency_key: str, note: str) -> int:
        result = await self.session.execute(
            update(RefundRecordModel)
            .where(
                RefundRecordModel.order_id == order_id,
                RefundRecordModel.idempotency_key == idempotency_key,
                RefundRecordModel.reconciled.is_(False),
            )
            .values(
                reconciled=True,
                failure_reason=func.coalesce(RefundRecordModel.failure_reason, "") + f" | {note}",
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                "refund_records_reconciled",
                order_id=order_id,
                idempotency_key=idempotency_key,
                count=result.rowcount,
            )
        return result.rowcount or 0
