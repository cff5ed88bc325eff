"""
Refund engine (application/services).

Plans a partial refund against the order's ledger, asks the payment processor
to move the money once, then commits ledger, audit record and order status in
one unit of work. Refunds of one order are serialized by a per-order lock and
the ledger update is conditional on the version read while planning.

When the processor may have moved money but the ledger was not updated, an
unreconciled RefundRecord is written and PartialCommitError is raised. Such
refunds are never retried automatically.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, NoReturn, Optional

from application.dtos.payments import ProcessorRefund, ProcessorRefundRequest
from application.dtos.refunds import RefundCommand, RefundOutcome
from application.ports.locks import OrderLockManager, OrderLockUnavailable
from application.ports.payment_gateway import (
    PaymentOutcomeUnknownError,
    PaymentProviderError,
    PaymentRecoverableError,
    RefundProcessor,
)
from core.logging_config import get_logger
from domain.common.identifiers import extract_id
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.refund.calculation import (
    aggregate_selections,
    build_idempotency_key,
    items_refund_cents,
    net_refund_cents,
    validate_selections,
)
from domain.refund.entity import RefundRecord, RefundRecordStatus, RefundRemaining
from domain.refund.errors import (
    ExceedsRefundableError,
    FullyRefundedError,
    InvalidSelectionError,
    LedgerOverrunError,
    OrderNotFoundError,
    PartialCommitError,
    ProcessorDeclinedError,
)
from domain.refund.ledger import RefundLedger, remaining_for, reserve_unreconciled


logger = get_logger(__name__)

_DECLINED_STATUSES = {"failed", "canceled"}


@dataclass(frozen=True)
class RefundPlan:
    order: Order
    remaining: RefundRemaining
    per_item: Dict[str, int]
    items_cents: int
    amount_cents: int
    idempotency_key: str


class RefundEngine:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: RefundProcessor,
        locks: OrderLockManager,
        *,
        processor_timeout_seconds: float = 15.0,
        max_processor_timeout_seconds: Optional[float] = None,
        default_currency: str = "usd",
    ) -> None:
        self._uow_factory = uow_factory
        self._processor = processor
        self._locks = locks
        self._processor_timeout = processor_timeout_seconds
        # 订单锁的 TTL 按这个上限配置，单次请求不能超过它
        self._max_processor_timeout = max_processor_timeout_seconds or processor_timeout_seconds
        self._default_currency = default_currency

    async def get_remaining(self, order_id) -> RefundRemaining:
        oid = self._order_id(order_id)
        async with self._uow_factory(readonly=True) as uow:
            ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
            return await ledger.get_remaining(oid)

    async def list_unreconciled(self, skip: int = 0, limit: int = 100) -> List[RefundRecord]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.refund_record_repository.list_unreconciled(skip=skip, limit=limit)

    async def refund(self, command: RefundCommand) -> RefundOutcome:
        order_id = self._order_id(command.order_id)

        if command.idempotency_key:
            replay = await self._find_replay(order_id, command.idempotency_key)
            if replay is not None:
                return replay

        try:
            async with self._locks.hold(order_id):
                return await self._refund_locked(order_id, command)
        except OrderLockUnavailable as exc:
            logger.warning("refund_lock_unavailable", order_id=order_id)
            raise LedgerOverrunError(order_id, "another refund for this order is in progress") from exc

    async def _refund_locked(self, order_id: str, command: RefundCommand) -> RefundOutcome:
        if command.idempotency_key:
            # 锁内再确认一次，防止同一请求并发重放
            replay = await self._find_replay(order_id, command.idempotency_key)
            if replay is not None:
                return replay

        plan = await self._plan(order_id, command)
        logger.info(
            "refund_planned",
            order_id=order_id,
            amount_cents=plan.amount_cents,
            items_cents=plan.items_cents,
            ledger_version=plan.remaining.version,
            idempotency_key=plan.idempotency_key,
        )

        processor_refund = await self._call_processor(plan, command)
        return await self._commit(plan, command, processor_refund)

    async def _plan(self, order_id: str, command: RefundCommand) -> RefundPlan:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            entry = await uow.refund_ledger_repository.get(order_id)
            records = await uow.refund_record_repository.list_by_order(order_id)

        remaining = remaining_for(order, entry)
        if remaining.total_remaining_cents <= 0:
            raise FullyRefundedError(order_id)

        key = command.idempotency_key or build_idempotency_key(
            order_id,
            command.selections,
            reason=command.reason,
            restocking_fee_cents=command.restocking_fee_cents,
            refund_shipping_cents=command.refund_shipping_cents,
            ledger_version=remaining.version,
        )
        # 未对账的退款可能已经打款，规划时按已退处理
        available = reserve_unreconciled(remaining, records, exclude_key=key)
        if available is not remaining:
            logger.warning(
                "refund_unreconciled_held_back",
                order_id=order_id,
                ledger_remaining_cents=remaining.total_remaining_cents,
                available_cents=available.total_remaining_cents,
            )

        per_item = aggregate_selections(order_id, command.selections)
        validate_selections(order, per_item, available)

        items_cents = items_refund_cents(order, per_item)
        amount = net_refund_cents(items_cents, command.restocking_fee_cents, command.refund_shipping_cents)
        if amount <= 0:
            raise InvalidSelectionError(order_id, "Nothing to refund: net refund amount is zero")
        if amount > available.total_remaining_cents:
            raise ExceedsRefundableError(order_id, amount, available.total_remaining_cents)
        return RefundPlan(
            order=order,
            remaining=remaining,
            per_item=per_item,
            items_cents=items_cents,
            amount_cents=amount,
            idempotency_key=key,
        )

    async def _call_processor(self, plan: RefundPlan, command: RefundCommand) -> ProcessorRefund:
        order = plan.order
        if not order.payment_ref:
            raise ProcessorDeclinedError(order.id, "order has no captured payment to refund")

        metadata = {
            "order_id": order.id,
            "restocking_fee_cents": str(command.restocking_fee_cents),
            "refund_shipping_cents": str(command.refund_shipping_cents),
        }
        if order.order_number:
            metadata["order_number"] = order.order_number
        if command.reason:
            metadata["app_reason"] = command.reason.value

        req = ProcessorRefundRequest(
            payment_ref=order.payment_ref,
            amount_cents=plan.amount_cents,
            currency=(order.currency or self._default_currency).lower(),
            idempotency_key=plan.idempotency_key,
            order_id=order.id,
            reason=command.reason.value if command.reason else None,
            account_id=order.processor_account_id,
            metadata=metadata,
        )
        timeout = min(command.timeout_seconds or self._processor_timeout, self._max_processor_timeout)

        try:
            result = await asyncio.wait_for(self._processor.create_refund(req), timeout=timeout)
        except asyncio.TimeoutError:
            await self._record_unreconciled(plan, command, None, RefundRecordStatus.UNKNOWN, "processor timeout")
        except PaymentOutcomeUnknownError as exc:
            await self._record_unreconciled(plan, command, None, RefundRecordStatus.UNKNOWN, exc.message)
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            logger.warning(
                "refund_processor_declined",
                order_id=order.id,
                provider=exc.provider,
                provider_code=exc.provider_code,
                error=exc.message,
            )
            raise ProcessorDeclinedError(order.id, exc.message, provider_code=exc.provider_code) from exc

        if result.status in _DECLINED_STATUSES:
            logger.warning(
                "refund_processor_declined",
                order_id=order.id,
                provider=result.provider,
                processor_refund_id=result.refund_id,
                status=result.status,
            )
            raise ProcessorDeclinedError(order.id, f"refund {result.refund_id} is {result.status}")
        return result

    async def _commit(
        self,
        plan: RefundPlan,
        command: RefundCommand,
        processor_refund: ProcessorRefund,
    ) -> RefundOutcome:
        order_id = plan.order.id
        status = (
            RefundRecordStatus.PENDING if processor_refund.status == "pending" else RefundRecordStatus.SUCCEEDED
        )
        try:
            async with self._uow_factory() as uow:
                ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
                updated = await ledger.commit(
                    order_id,
                    plan.amount_cents,
                    plan.per_item,
                    expected_version=plan.remaining.version,
                )
                record = await uow.refund_record_repository.create(
                    self._record(plan, command, processor_refund.refund_id, status, reconciled=True)
                )
                # 同一处理器请求之前超时留下的记录，由本次成功结果对账
                await uow.refund_record_repository.mark_reconciled(
                    order_id, plan.idempotency_key, f"settled by refund record {record.id}"
                )
                order = await uow.order_repository.get_by_id(order_id) or plan.order
                order.apply_refund_state(updated.refunded_total_cents, updated.updated_at)
                await uow.order_repository.update_refund_state(order)
        except Exception as exc:
            await self._record_unreconciled(
                plan,
                command,
                processor_refund.refund_id,
                status,
                f"ledger commit failed: {exc}",
                cause=exc,
            )

        logger.info(
            "refund_committed",
            order_id=order_id,
            amount_cents=plan.amount_cents,
            processor_refund_id=processor_refund.refund_id,
            refund_record_id=record.id,
            refunded_total_cents=updated.refunded_total_cents,
        )
        return RefundOutcome(
            processor_refund_id=processor_refund.refund_id,
            amount_cents=plan.amount_cents,
            record=record,
        )

    async def _record_unreconciled(
        self,
        plan: RefundPlan,
        command: RefundCommand,
        processor_refund_id: Optional[str],
        status: RefundRecordStatus,
        reason: str,
        *,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        """Persist an unreconciled record and raise PartialCommitError."""
        order_id = plan.order.id
        record_id: Optional[int] = None
        try:
            async with self._uow_factory() as uow:
                record = await uow.refund_record_repository.create(
                    self._record(
                        plan, command, processor_refund_id, status, reconciled=False, failure_reason=reason
                    )
                )
                record_id = record.id
        except Exception:
            logger.exception(
                "refund_unreconciled_record_failed",
                order_id=order_id,
                processor_refund_id=processor_refund_id,
            )

        logger.error(
            "refund_partial_commit",
            order_id=order_id,
            amount_cents=plan.amount_cents,
            processor_refund_id=processor_refund_id,
            refund_record_id=record_id,
            reason=reason,
        )
        raise PartialCommitError(
            order_id,
            processor_refund_id=processor_refund_id,
            refund_record_id=record_id,
            reason=reason,
        ) from cause

    async def _find_replay(self, order_id: str, idempotency_key: str) -> Optional[RefundOutcome]:
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.refund_record_repository.get_by_idempotency_key(order_id, idempotency_key)
        if existing is None:
            return None
        if not existing.reconciled:
            raise PartialCommitError(
                order_id,
                processor_refund_id=existing.processor_refund_id,
                refund_record_id=existing.id,
                reason="previous attempt with this idempotency key awaits reconciliation",
            )
        logger.info(
            "refund_replayed",
            order_id=order_id,
            refund_record_id=existing.id,
            processor_refund_id=existing.processor_refund_id,
        )
        return RefundOutcome(
            processor_refund_id=existing.processor_refund_id,
            amount_cents=existing.amount_cents,
            record=existing,
            replayed=True,
        )

    def _record(
        self,
        plan: RefundPlan,
        command: RefundCommand,
        processor_refund_id: Optional[str],
        status: RefundRecordStatus,
        *,
        reconciled: bool,
        failure_reason: Optional[str] = None,
    ) -> RefundRecord:
        return RefundRecord(
            id=None,
            order_id=plan.order.id,
            amount_cents=plan.amount_cents,
            currency=(plan.order.currency or self._default_currency).lower(),
            status=status,
            processor_refund_id=processor_refund_id,
            reconciled=reconciled,
            reason=command.reason,
            selections=list(command.selections),
            restocking_fee_cents=command.restocking_fee_cents,
            refund_shipping_cents=command.refund_shipping_cents,
            notes=command.notes,
            idempotency_key=plan.idempotency_key,
            failure_reason=failure_reason,
        )

    @staticmethod
    def _order_id(order_id) -> str:
        oid = extract_id(order_id)
        if not oid:
            raise InvalidSelectionError("", "orderId is required")
        return oid
