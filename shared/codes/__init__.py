"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found

    # Cart errors (21xxx)
    CART_IDENTITY_UNRESOLVED = 21001
    PRODUCT_NOT_FOUND = 21002
    PRODUCT_UNAVAILABLE = 21003

    # Order / refund errors (22xxx)
    ORDER_NOT_FOUND = 22001
    REFUND_INVALID_SELECTION = 22002
    REFUND_ALREADY_FULL = 22003
    REFUND_EXCEEDS_REMAINING = 22004
    REFUND_LEDGER_OVERRUN = 22005
    REFUND_PARTIAL_COMMIT = 22006
    REFUND_PROCESSOR_DECLINED = 22007

    # Authorization errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
