"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    OUTCOME_UNKNOWN = 60002


# Provider refund status -> local refund record status
PROVIDER_REFUND_STATUS_TO_INTERNAL = {
    "stripe": {
        "succeeded": "succeeded",
        "pending": "pending",
        "requires_action": "pending",
        "failed": "failed",
        "canceled": "canceled",
    },
}

# Local refund reasons the processor understands; anything else is kept only
# in our own records (metadata).
PROVIDER_REFUND_REASONS = {
    "stripe": frozenset({"requested_by_customer", "duplicate", "fraudulent"}),
}
