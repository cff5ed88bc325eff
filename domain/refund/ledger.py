"""
Refund ledger - per-order cumulative refund state.

The ledger is the single source of truth for how much of an order has been
refunded. Writes are conditional on the version read by the caller, so two
commits racing on one order cannot both succeed.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, Optional

import structlog

from domain.order.entity import Order
from domain.order.repository import OrderRepository
from domain.refund.entity import RefundLedgerEntry, RefundRecord, RefundRemaining
from domain.refund.errors import LedgerOverrunError, OrderNotFoundError
from domain.refund.repository import RefundLedgerRepository


logger = structlog.get_logger(__name__)


def remaining_for(order: Order, entry: Optional[RefundLedgerEntry]) -> RefundRemaining:
    entry = entry or RefundLedgerEntry(order_id=order.id)
    per_item = {
        item.item_id: max(0, item.quantity - entry.refunded_qty(item.item_id))
        for item in order.items
    }
    return RefundRemaining(
        order_id=order.id,
        total_remaining_cents=max(0, order.total_cents - entry.refunded_total_cents),
        per_item=per_item,
        refunded_total_cents=entry.refunded_total_cents,
        version=entry.version,
        refunded_per_item={item.item_id: entry.refunded_qty(item.item_id) for item in order.items},
    )


def reserve_unreconciled(
    remaining: RefundRemaining,
    records: Iterable[RefundRecord],
    *,
    exclude_key: Optional[str] = None,
) -> RefundRemaining:
    """Hold back amounts and quantities of unreconciled refunds.

    An unreconciled record may already have moved money at the processor, so
    it is treated as refunded until someone reconciles it. Records carrying
    ``exclude_key`` are the same processor request being retried and are not
    held back twice.
    """
    held_cents = 0
    held_qty: Dict[str, int] = {}
    for record in records:
        if record.reconciled or (exclude_key and record.idempotency_key == exclude_key):
            continue
        held_cents += record.amount_cents
        for sel in record.selections:
            held_qty[sel.item_id] = held_qty.get(sel.item_id, 0) + sel.quantity
    if not held_cents and not held_qty:
        return remaining
    return replace(
        remaining,
        total_remaining_cents=max(0, remaining.total_remaining_cents - held_cents),
        per_item={k: max(0, v - held_qty.get(k, 0)) for k, v in remaining.per_item.items()},
    )


def violates_conservation(order: Order, entry: RefundLedgerEntry) -> Optional[str]:
    if entry.refunded_total_cents > order.total_cents:
        return f"refunded total {entry.refunded_total_cents} exceeds order total {order.total_cents}"
    items = order.items_by_id()
    for item_id, qty in entry.per_item_refunded_qty.items():
        item = items.get(item_id)
        if item is None:
            return f"unknown item {item_id}"
        if qty > item.quantity:
            return f"item {item_id} refunded quantity {qty} exceeds purchased {item.quantity}"
    return None


class RefundLedger:
    def __init__(self, orders: OrderRepository, entries: RefundLedgerRepository) -> None:
        self.orders = orders
        self.entries = entries

    async def _load_order(self, order_id: str) -> Order:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_remaining(self, order_id: str) -> RefundRemaining:
        order = await self._load_order(order_id)
        entry = await self.entries.get(order_id)
        return remaining_for(order, entry)

    async def commit(
        self,
        order_id: str,
        amount_cents: int,
        per_item_qty: Dict[str, int],
        expected_version: Optional[int] = None,
    ) -> RefundLedgerEntry:
        """Apply one refund to the ledger.

        Raises LedgerOverrunError when the stored version moved away from
        ``expected_version`` or the result would break conservation.
        """
        order = await self._load_order(order_id)
        current = await self.entries.get(order_id) or RefundLedgerEntry(order_id=order_id)
        if expected_version is None:
            expected_version = current.version
        if current.version != expected_version:
            raise LedgerOverrunError(
                order_id, f"version moved from {expected_version} to {current.version}"
            )
        if amount_cents < 0 or any(q < 0 for q in per_item_qty.values()):
            raise LedgerOverrunError(order_id, "negative refund amount or quantity")

        updated = current.advanced(amount_cents, per_item_qty)
        violation = violates_conservation(order, updated)
        if violation:
            raise LedgerOverrunError(order_id, violation)

        if expected_version == 0:
            applied = await self.entries.insert(updated)
        else:
            applied = await self.entries.compare_and_set(updated, expected_version)
        if not applied:
            raise LedgerOverrunError(order_id, "concurrent ledger update")

        logger.info(
            "refund_ledger_committed",
            order_id=order_id,
            amount_cents=amount_cents,
            refunded_total_cents=updated.refunded_total_cents,
            version=updated.version,
        )
        return updated
