import asyncio

import pytest
from pydantic import ValidationError

from application.dtos.refunds import RefundCommand
from application.ports.payment_gateway import PaymentOutcomeUnknownError, PaymentProviderError
from application.services.refund_engine import RefundEngine
from core.config import RefundSettings
from domain.order.entity import OrderStatus
from domain.refund.entity import LineSelection, RefundReason, RefundRecordStatus
from domain.refund.errors import (
    ExceedsRefundableError,
    FullyRefundedError,
    InvalidSelectionError,
    LedgerOverrunError,
    OrderNotFoundError,
    PartialCommitError,
    ProcessorDeclinedError,
)
from domain.refund.ledger import RefundLedger
from infrastructure.locks import InProcessOrderLocks


def _cmd(*pairs, order_id="ord_1", **kwargs) -> RefundCommand:
    return RefundCommand(
        order_id=order_id,
        selections=[LineSelection(item_id, qty) for item_id, qty in pairs],
        **kwargs,
    )


@pytest.fixture
def engine(uow_factory, processor, locks):
    return RefundEngine(uow_factory, processor, locks, processor_timeout_seconds=1.0)


async def _ledger_total(uow_factory, order_id="ord_1") -> int:
    async with uow_factory(readonly=True) as uow:
        entry = await uow.refund_ledger_repository.get(order_id)
    return entry.refunded_total_cents if entry else 0


@pytest.mark.asyncio
async def test_partial_refund_sequence(engine, processor, uow_factory, seed_order):
    await seed_order()

    first = await engine.refund(_cmd(("A", 1)))
    assert first.amount_cents == 3000
    assert first.processor_refund_id == "re_1"
    assert first.record.reconciled is True
    assert (await engine.get_remaining("ord_1")).total_remaining_cents == 7000

    second = await engine.refund(_cmd(("A", 1), ("B", 1), restocking_fee_cents=500))
    assert second.amount_cents == 6500
    remaining = await engine.get_remaining("ord_1")
    assert remaining.total_remaining_cents == 500
    assert remaining.per_item == {"A": 0, "B": 0}
    assert remaining.refunded_per_item == {"A": 2, "B": 1}

    with pytest.raises(ExceedsRefundableError) as exc:
        await engine.refund(_cmd(refund_shipping_cents=600))
    assert exc.value.remaining == 500

    last = await engine.refund(_cmd(refund_shipping_cents=500))
    assert last.amount_cents == 500
    assert await _ledger_total(uow_factory) == 10000

    with pytest.raises(FullyRefundedError):
        await engine.refund(_cmd(refund_shipping_cents=100))

    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("ord_1")
        records = await uow.refund_record_repository.list_by_order("ord_1")
    assert order.status is OrderStatus.REFUNDED
    assert order.refunded_total_cents == 10000
    assert [r.amount_cents for r in records] == [3000, 6500, 500]
    assert len(processor.requests) == 3


@pytest.mark.asyncio
async def test_invalid_selection_leaves_ledger_untouched(engine, processor, uow_factory, seed_order):
    await seed_order()
    with pytest.raises(InvalidSelectionError):
        await engine.refund(_cmd(("A", 3)))
    with pytest.raises(InvalidSelectionError):
        await engine.refund(_cmd(("Z", 1)))
    assert await _ledger_total(uow_factory) == 0
    assert processor.requests == []


@pytest.mark.asyncio
async def test_zero_net_refund_is_rejected(engine, seed_order):
    await seed_order()
    with pytest.raises(InvalidSelectionError):
        await engine.refund(_cmd(("A", 1), restocking_fee_cents=3000))
    with pytest.raises(InvalidSelectionError):
        await engine.refund(_cmd())


@pytest.mark.asyncio
async def test_unknown_order(engine):
    with pytest.raises(OrderNotFoundError):
        await engine.refund(_cmd(("A", 1), order_id="missing"))
    with pytest.raises(OrderNotFoundError):
        await engine.get_remaining({"id": "missing"})


@pytest.mark.asyncio
async def test_processor_request_shape(engine, processor, seed_order, make_order):
    await seed_order(make_order(processor_account_id="acct_1"))
    await engine.refund(_cmd(("B", 1), reason=RefundReason.OTHER, notes="damaged box"))

    req = processor.requests[0]
    assert req.payment_ref == "pi_123"
    assert req.amount_cents == 4000
    assert req.currency == "usd"
    assert req.account_id == "acct_1"
    assert req.reason == "other"
    assert req.metadata["app_reason"] == "other"
    assert req.metadata["order_number"] == "N-ord_1"
    assert len(req.idempotency_key) == 64


@pytest.mark.asyncio
async def test_client_key_replays_committed_refund(engine, processor, seed_order):
    await seed_order()
    first = await engine.refund(_cmd(("A", 1), idempotency_key="client-key-1"))
    again = await engine.refund(_cmd(("A", 1), idempotency_key="client-key-1"))

    assert again.replayed is True
    assert again.record.id == first.record.id
    assert again.processor_refund_id == first.processor_refund_id
    assert len(processor.requests) == 1
    assert processor.requests[0].idempotency_key == "client-key-1"


@pytest.mark.asyncio
async def test_generated_key_changes_with_ledger_version(engine, processor, seed_order):
    await seed_order()
    await engine.refund(_cmd(("A", 1)))
    await engine.refund(_cmd(("A", 1)))
    keys = [r.idempotency_key for r in processor.requests]
    assert keys[0] != keys[1]


@pytest.mark.asyncio
async def test_lock_held_means_overrun(engine, locks, processor, seed_order):
    await seed_order()
    async with locks.hold("ord_1"):
        with pytest.raises(LedgerOverrunError):
            await engine.refund(_cmd(("A", 1)))
    assert processor.requests == []


@pytest.mark.asyncio
async def test_processor_timeout_records_unreconciled(engine, processor, uow_factory, seed_order):
    await seed_order()
    processor.delay = 5.0

    with pytest.raises(PartialCommitError) as exc:
        await engine.refund(_cmd(("A", 1), timeout_seconds=0.05))
    assert exc.value.processor_refund_id is None
    assert exc.value.refund_record_id is not None
    assert await _ledger_total(uow_factory) == 0

    pending = await engine.list_unreconciled()
    assert len(pending) == 1
    assert pending[0].status is RefundRecordStatus.UNKNOWN
    assert pending[0].reconciled is False
    assert pending[0].failure_reason == "processor timeout"


@pytest.mark.asyncio
async def test_unknown_outcome_blocks_replay(engine, processor, seed_order):
    await seed_order()
    processor.error = PaymentOutcomeUnknownError("connection reset", provider="stub")

    with pytest.raises(PartialCommitError):
        await engine.refund(_cmd(("A", 1), idempotency_key="client-key-2"))

    processor.error = None
    with pytest.raises(PartialCommitError):
        await engine.refund(_cmd(("A", 1), idempotency_key="client-key-2"))
    assert len(processor.requests) == 1


@pytest.mark.asyncio
async def test_processor_decline(engine, processor, uow_factory, seed_order, make_order):
    await seed_order()
    processor.error = PaymentProviderError("card issuer declined", provider="stub", provider_code="declined")
    with pytest.raises(ProcessorDeclinedError):
        await engine.refund(_cmd(("A", 1)))

    processor.error = None
    processor.status = "failed"
    with pytest.raises(ProcessorDeclinedError):
        await engine.refund(_cmd(("A", 1)))

    await seed_order(make_order("ord_2", payment_ref=None))
    with pytest.raises(ProcessorDeclinedError):
        await engine.refund(_cmd(("A", 1), order_id="ord_2"))

    assert await _ledger_total(uow_factory) == 0
    assert await engine.list_unreconciled() == []


@pytest.mark.asyncio
async def test_commit_failure_after_processor_success(engine, processor, uow_factory, seed_order):
    await seed_order()

    # 处理器退款期间账本被其他写入推进
    async def sneaky_refund(req):
        async with uow_factory() as uow:
            await RefundLedger(uow.order_repository, uow.refund_ledger_repository).commit("ord_1", 4000, {"B": 1})
        return await type(processor).create_refund(processor, req)

    processor.create_refund = sneaky_refund

    with pytest.raises(PartialCommitError) as exc:
        await engine.refund(_cmd(("A", 1)))
    assert exc.value.processor_refund_id == "re_1"
    assert isinstance(exc.value.__cause__, LedgerOverrunError)

    pending = await engine.list_unreconciled()
    assert [r.processor_refund_id for r in pending] == ["re_1"]
    assert pending[0].status is RefundRecordStatus.SUCCEEDED
    assert await _ledger_total(uow_factory) == 4000


@pytest.mark.asyncio
async def test_concurrent_refunds_are_serialized(uow_factory, processor, seed_order):
    await seed_order()
    processor.delay = 0.05
    engine = RefundEngine(uow_factory, processor, InProcessOrderLocks(blocking_timeout=0))

    results = await asyncio.gather(
        engine.refund(_cmd(("B", 1))),
        engine.refund(_cmd(("B", 1))),
        return_exceptions=True,
    )
    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1 and isinstance(failed[0], LedgerOverrunError)
    assert await _ledger_total(uow_factory) == 4000


@pytest.mark.asyncio
async def test_unreconciled_refund_holds_back_balance(engine, processor, uow_factory, seed_order):
    await seed_order()
    processor.delay = 5.0
    with pytest.raises(PartialCommitError):
        await engine.refund(_cmd(("B", 1), timeout_seconds=0.05))

    # 超时的 B 可能已经打款，不能再次退
    processor.delay = 0.0
    with pytest.raises(InvalidSelectionError):
        await engine.refund(_cmd(("A", 2), ("B", 1)))
    with pytest.raises(ExceedsRefundableError):
        await engine.refund(_cmd(("A", 2), refund_shipping_cents=1))

    outcome = await engine.refund(_cmd(("A", 2)))
    assert outcome.amount_cents == 6000
    assert sum(r.amount_cents for r in processor.requests) <= 10000

    with pytest.raises(ExceedsRefundableError):
        await engine.refund(_cmd(refund_shipping_cents=1))
    # 账本只记已确认的部分，未对账记录仍待人工处理
    assert await _ledger_total(uow_factory) == 6000
    assert len(await engine.list_unreconciled()) == 1


@pytest.mark.asyncio
async def test_retry_after_timeout_reconciles_previous_record(engine, processor, uow_factory, seed_order):
    await seed_order()
    processor.delay = 5.0
    with pytest.raises(PartialCommitError):
        await engine.refund(_cmd(("A", 1), timeout_seconds=0.05))

    processor.delay = 0.0
    outcome = await engine.refund(_cmd(("A", 1)))

    assert outcome.amount_cents == 3000
    assert len(processor.requests) == 2
    assert processor.requests[0].idempotency_key == processor.requests[1].idempotency_key
    assert await engine.list_unreconciled() == []
    assert await _ledger_total(uow_factory) == 3000
    assert (await engine.get_remaining("ord_1")).total_remaining_cents == 7000


@pytest.mark.asyncio
async def test_request_timeout_is_capped(uow_factory, processor, locks, seed_order):
    await seed_order()
    processor.delay = 5.0
    engine = RefundEngine(
        uow_factory,
        processor,
        locks,
        processor_timeout_seconds=10.0,
        max_processor_timeout_seconds=0.05,
    )

    with pytest.raises(PartialCommitError):
        await asyncio.wait_for(engine.refund(_cmd(("A", 1), timeout_seconds=10.0)), timeout=2.0)


def test_lock_ttl_must_outlive_processor_call():
    with pytest.raises(ValidationError):
        RefundSettings(lock_timeout_seconds=30)
    with pytest.raises(ValidationError):
        RefundSettings(processor_timeout_seconds=50, lock_timeout_seconds=60)

    ok = RefundSettings()
    assert ok.lock_timeout_seconds > ok.max_processor_timeout_seconds + ok.lock_db_margin_seconds
