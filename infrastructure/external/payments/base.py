"""
Base refund processor implementing shared concerns: retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
Only PaymentRecoverableError (rejected before processing) is retried; a call
whose outcome is unknown must never be repeated here.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import ProcessorRefund, ProcessorRefundRequest
from application.ports.payment_gateway import PaymentRecoverableError
from core.logging_config import get_logger
from shared.codes.payment_codes import PROVIDER_REFUND_REASONS, PROVIDER_REFUND_STATUS_TO_INTERNAL


logger = get_logger(__name__)

T = TypeVar("T")


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(PaymentRecoverableError),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def create_refund(self, req: ProcessorRefundRequest) -> ProcessorRefund:
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_REFUND_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _map_reason(self, reason: Optional[str]) -> Optional[str]:
        if not reason:
            return None
        supported = PROVIDER_REFUND_REASONS.get(self.provider, frozenset())
        return reason if reason in supported else None

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
