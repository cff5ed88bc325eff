"""Refund domain exports."""
from .entity import (
    LineSelection,
    RefundLedgerEntry,
    RefundReason,
    RefundRecord,
    RefundRecordStatus,
    RefundRemaining,
)
from .errors import (
    ExceedsRefundableError,
    FullyRefundedError,
    InvalidSelectionError,
    LedgerOverrunError,
    OrderNotFoundError,
    PartialCommitError,
    ProcessorDeclinedError,
    RefundError,
    RefundErrorKind,
)
from .ledger import RefundLedger

__all__ = [
    "LineSelection",
    "RefundLedgerEntry",
    "RefundReason",
    "RefundRecord",
    "RefundRecordStatus",
    "RefundRemaining",
    "ExceedsRefundableError",
    "FullyRefundedError",
    "InvalidSelectionError",
    "LedgerOverrunError",
    "OrderNotFoundError",
    "PartialCommitError",
    "ProcessorDeclinedError",
    "RefundError",
    "RefundErrorKind",
    "RefundLedger",
]
