"""
Pure refund arithmetic and request normalization.

Nothing here touches storage or the processor; the engine composes these
helpers inside its lock.
"""
from __future__ import annotations

import hashlib
import json
from typing import Dict, Iterable, List, Optional

from domain.order.entity import Order
from domain.refund.entity import LineSelection, RefundReason, RefundRemaining
from domain.refund.errors import InvalidSelectionError


def aggregate_selections(order_id: str, selections: Iterable[LineSelection]) -> Dict[str, int]:
    """Sum quantities per item; repeated lines for one item count together."""
    per_item: Dict[str, int] = {}
    for sel in selections:
        if isinstance(sel.quantity, bool) or not isinstance(sel.quantity, int) or sel.quantity <= 0:
            raise InvalidSelectionError(
                order_id,
                f"Selection quantity must be a positive integer (item {sel.item_id})",
                item_id=sel.item_id,
            )
        per_item[sel.item_id] = per_item.get(sel.item_id, 0) + sel.quantity
    return per_item


def validate_selections(order: Order, per_item: Dict[str, int], remaining: RefundRemaining) -> None:
    items = order.items_by_id()
    for item_id, qty in per_item.items():
        if item_id not in items:
            raise InvalidSelectionError(order.id, f"Item not found on order: {item_id}", item_id=item_id)
        left = remaining.per_item.get(item_id, 0)
        if qty > left:
            raise InvalidSelectionError(
                order.id,
                f"Quantity {qty} exceeds remaining refundable quantity {left} for item {item_id}",
                item_id=item_id,
            )


def items_refund_cents(order: Order, per_item: Dict[str, int]) -> int:
    items = order.items_by_id()
    return sum(items[item_id].unit_price_cents * qty for item_id, qty in per_item.items())


def net_refund_cents(items_cents: int, restocking_fee_cents: int = 0, refund_shipping_cents: int = 0) -> int:
    """Items minus restocking fee plus refunded shipping, floored at zero."""
    return max(0, items_cents - restocking_fee_cents + refund_shipping_cents)


def build_idempotency_key(
    order_id: str,
    selections: Iterable[LineSelection],
    *,
    reason: Optional[RefundReason] = None,
    restocking_fee_cents: int = 0,
    refund_shipping_cents: int = 0,
    ledger_version: int = 0,
) -> str:
    """Deterministic processor idempotency key for one refund attempt.

    Selections are sorted so ordering does not matter and notes are left out
    so free text does not change the key. The ledger version makes a repeat
    of the same selection after a committed refund a new attempt.
    """
    ordered: List[dict] = [
        {"itemId": s.item_id, "quantity": s.quantity}
        for s in sorted(selections, key=lambda s: (s.item_id, s.quantity))
    ]
    payload = json.dumps(
        {
            "orderId": order_id,
            "selections": ordered,
            "options": {
                "reason": reason.value if reason else None,
                "restockingFeeCents": restocking_fee_cents,
                "refundShippingCents": refund_shipping_cents,
            },
            "ledgerVersion": ledger_version,
        },
        separators=(",", ":"),
        sort_keys=False,
    )
    return hashlib.sha256(f"refund:v2:{payload}".encode("utf-8")).hexdigest()
