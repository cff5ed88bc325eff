import pytest

from domain.refund.errors import LedgerOverrunError, OrderNotFoundError
from domain.refund.ledger import RefundLedger


@pytest.mark.asyncio
async def test_commit_advances_version(uow_factory, seed_order):
    order = await seed_order()
    async with uow_factory() as uow:
        ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
        first = await ledger.commit(order.id, 3000, {"A": 1}, expected_version=0)
        second = await ledger.commit(order.id, 4000, {"B": 1}, expected_version=1)
    assert first.version == 1
    assert second.version == 2

    async with uow_factory(readonly=True) as uow:
        remaining = await RefundLedger(uow.order_repository, uow.refund_ledger_repository).get_remaining(order.id)
    assert remaining.total_remaining_cents == 3000
    assert remaining.per_item == {"A": 1, "B": 0}
    assert remaining.version == 2


@pytest.mark.asyncio
async def test_stale_version_is_rejected(uow_factory, seed_order):
    order = await seed_order()
    async with uow_factory() as uow:
        await RefundLedger(uow.order_repository, uow.refund_ledger_repository).commit(order.id, 3000, {"A": 1})

    with pytest.raises(LedgerOverrunError):
        async with uow_factory() as uow:
            ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
            await ledger.commit(order.id, 3000, {"A": 1}, expected_version=0)

    async with uow_factory(readonly=True) as uow:
        entry = await uow.refund_ledger_repository.get(order.id)
    assert entry.refunded_total_cents == 3000
    assert entry.version == 1


@pytest.mark.asyncio
async def test_conservation_is_enforced_on_commit(uow_factory, seed_order):
    order = await seed_order()
    with pytest.raises(LedgerOverrunError):
        async with uow_factory() as uow:
            ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
            await ledger.commit(order.id, 3000, {"A": 3})

    with pytest.raises(LedgerOverrunError):
        async with uow_factory() as uow:
            ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
            await ledger.commit(order.id, 10001, {})

    async with uow_factory(readonly=True) as uow:
        assert await uow.refund_ledger_repository.get(order.id) is None


@pytest.mark.asyncio
async def test_unknown_order(uow_factory):
    async with uow_factory(readonly=True) as uow:
        ledger = RefundLedger(uow.order_repository, uow.refund_ledger_repository)
        with pytest.raises(OrderNotFoundError):
            await ledger.get_remaining("nope")
