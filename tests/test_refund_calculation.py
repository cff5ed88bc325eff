import pytest

from domain.refund.calculation import (
    aggregate_selections,
    build_idempotency_key,
    items_refund_cents,
    net_refund_cents,
    validate_selections,
)
from domain.refund.entity import LineSelection, RefundLedgerEntry, RefundReason
from domain.refund.errors import InvalidSelectionError, LedgerOverrunError, RefundErrorKind
from domain.refund.ledger import remaining_for, violates_conservation


def test_net_refund_applies_fee_and_shipping():
    assert net_refund_cents(7000, 500) == 6500
    assert net_refund_cents(3000, 0, 800) == 3800
    assert net_refund_cents(200, 500) == 0


def test_aggregate_sums_repeated_items():
    sels = [LineSelection("A", 1), LineSelection("B", 1), LineSelection("A", 1)]
    assert aggregate_selections("o1", sels) == {"A": 2, "B": 1}
    with pytest.raises(InvalidSelectionError):
        aggregate_selections("o1", [LineSelection("A", 0)])


def test_validate_rejects_unknown_and_excess(make_order):
    order = make_order()
    remaining = remaining_for(order, None)
    assert items_refund_cents(order, {"A": 1, "B": 1}) == 7000

    with pytest.raises(InvalidSelectionError) as exc:
        validate_selections(order, {"A": 3}, remaining)
    assert exc.value.kind is RefundErrorKind.INVALID_SELECTION
    assert exc.value.item_id == "A"

    with pytest.raises(InvalidSelectionError):
        validate_selections(order, {"Z": 1}, remaining)


def test_remaining_reflects_ledger(make_order):
    order = make_order()
    entry = RefundLedgerEntry(order_id=order.id).advanced(3000, {"A": 1})
    remaining = remaining_for(order, entry)
    assert remaining.total_remaining_cents == 7000
    assert remaining.per_item == {"A": 1, "B": 1}
    assert remaining.refunded_per_item == {"A": 1, "B": 0}
    assert remaining.version == 1


def test_conservation_violations(make_order):
    order = make_order()
    base = RefundLedgerEntry(order_id=order.id)
    assert violates_conservation(order, base.advanced(10000, {"A": 2, "B": 1})) is None
    assert violates_conservation(order, base.advanced(10001, {})) is not None
    assert violates_conservation(order, base.advanced(0, {"B": 2})) is not None


def test_idempotency_key_is_deterministic():
    a = [LineSelection("A", 1), LineSelection("B", 1)]
    b = [LineSelection("B", 1), LineSelection("A", 1)]
    key = build_idempotency_key("o1", a, reason=RefundReason.DUPLICATE, restocking_fee_cents=500)
    assert key == build_idempotency_key("o1", b, reason=RefundReason.DUPLICATE, restocking_fee_cents=500)
    assert len(key) == 64

    assert key != build_idempotency_key("o1", a, reason=RefundReason.DUPLICATE, restocking_fee_cents=400)
    assert key != build_idempotency_key("o2", a, reason=RefundReason.DUPLICATE, restocking_fee_cents=500)
    assert key != build_idempotency_key(
        "o1", a, reason=RefundReason.DUPLICATE, restocking_fee_cents=500, ledger_version=1
    )


def test_ledger_overrun_carries_kind():
    err = LedgerOverrunError("o1", "version moved")
    assert err.kind is RefundErrorKind.LEDGER_OVERRUN
    assert err.order_id == "o1"
