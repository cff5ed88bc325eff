"""
Refund failure taxonomy.

Every failure the refund engine can report is one subclass of RefundError and
carries a RefundErrorKind; callers switch on ``exc.kind`` instead of parsing
messages. ``kind.value`` is the stable code exposed over HTTP.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class RefundErrorKind(str, Enum):
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_SELECTION = "INVALID_SELECTION"
    FULLY_REFUNDED = "ALREADY_FULLY_REFUNDED"
    EXCEEDS_REFUNDABLE = "EXCEEDS_REMAINING"
    LEDGER_OVERRUN = "LEDGER_OVERRUN"
    PARTIAL_COMMIT = "PARTIAL_COMMIT"
    PROCESSOR_DECLINED = "PROCESSOR_DECLINED"


class RefundError(BusinessException):
    kind: RefundErrorKind

    def __init__(
        self,
        kind: RefundErrorKind,
        code: int,
        message: str,
        *,
        order_id: Optional[str] = None,
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.order_id = order_id
        full_details = {"order_id": order_id} if order_id else {}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=kind.value,
            details=full_details or None,
            field=field,
        )


class OrderNotFoundError(RefundError):
    def __init__(self, order_id: str):
        super().__init__(
            RefundErrorKind.ORDER_NOT_FOUND,
            BusinessCode.ORDER_NOT_FOUND,
            f"Order not found: {order_id}",
            order_id=order_id,
        )


class InvalidSelectionError(RefundError):
    def __init__(self, order_id: str, message: str, *, item_id: Optional[str] = None):
        super().__init__(
            RefundErrorKind.INVALID_SELECTION,
            BusinessCode.REFUND_INVALID_SELECTION,
            message,
            order_id=order_id,
            details={"item_id": item_id} if item_id else None,
            field="selections",
        )
        self.item_id = item_id


class FullyRefundedError(RefundError):
    def __init__(self, order_id: str):
        super().__init__(
            RefundErrorKind.FULLY_REFUNDED,
            BusinessCode.REFUND_ALREADY_FULL,
            "Order is already fully refunded",
            order_id=order_id,
        )


class ExceedsRefundableError(RefundError):
    def __init__(self, order_id: str, requested: int, remaining: int):
        super().__init__(
            RefundErrorKind.EXCEEDS_REFUNDABLE,
            BusinessCode.REFUND_EXCEEDS_REMAINING,
            f"Refund exceeds remaining refundable amount (requested {requested}, remaining {remaining})",
            order_id=order_id,
            details={"requested": requested, "remaining": remaining},
        )
        self.requested = requested
        self.remaining = remaining


class LedgerOverrunError(RefundError):
    def __init__(self, order_id: str, reason: str = "concurrent refund in progress"):
        super().__init__(
            RefundErrorKind.LEDGER_OVERRUN,
            BusinessCode.REFUND_LEDGER_OVERRUN,
            f"Refund ledger rejected the update: {reason}",
            order_id=order_id,
            details={"reason": reason},
        )
        self.reason = reason


class PartialCommitError(RefundError):
    """Money may have moved at the processor but the ledger was not updated."""

    def __init__(
        self,
        order_id: str,
        *,
        processor_refund_id: Optional[str],
        refund_record_id: Optional[int],
        reason: str,
    ):
        super().__init__(
            RefundErrorKind.PARTIAL_COMMIT,
            BusinessCode.REFUND_PARTIAL_COMMIT,
            "Refund reached the payment processor but was not recorded; manual reconciliation required",
            order_id=order_id,
            details={
                "processor_refund_id": processor_refund_id,
                "refund_record_id": refund_record_id,
                "reason": reason,
            },
        )
        self.processor_refund_id = processor_refund_id
        self.refund_record_id = refund_record_id
        self.reason = reason


class ProcessorDeclinedError(RefundError):
    def __init__(self, order_id: str, message: str, *, provider_code: Optional[str] = None):
        super().__init__(
            RefundErrorKind.PROCESSOR_DECLINED,
            BusinessCode.REFUND_PROCESSOR_DECLINED,
            f"Payment processor declined the refund: {message}",
            order_id=order_id,
            details={"provider_code": provider_code} if provider_code else None,
        )
