"""
Refund processor port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters and
reports failures with the exceptions below so the engine can tell a definitive
decline apart from a call whose outcome is unknown.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import ProcessorRefund, ProcessorRefundRequest
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class _ProviderErrorBase(BusinessException):
    def __init__(
        self,
        code: int,
        error_type: str,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)


class PaymentProviderError(_ProviderErrorBase):
    """The processor definitively refused the request; no money moved."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            PaymentCode.PROVIDER_ERROR, "PaymentProviderError", message,
            provider=provider, provider_code=provider_code, details=details,
        )


class PaymentRecoverableError(_ProviderErrorBase):
    """Rejected before processing (e.g. rate limited); safe to retry."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            PaymentCode.PROVIDER_RECOVERABLE, "PaymentRecoverableError", message,
            provider=provider, provider_code=provider_code, details=details,
        )


class PaymentOutcomeUnknownError(_ProviderErrorBase):
    """Transport failed after the request may have been processed."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            PaymentCode.OUTCOME_UNKNOWN, "PaymentOutcomeUnknownError", message,
            provider=provider, provider_code=provider_code, details=details,
        )


@runtime_checkable
class RefundProcessor(Protocol):
    """Processor protocol for issuing refunds against a captured payment."""

    provider: str

    async def create_refund(self, req: ProcessorRefundRequest) -> ProcessorRefund: ...
