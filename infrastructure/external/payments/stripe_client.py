"""
Stripe refunds adapter using the official stripe-python SDK.

Notes on SDK usage:
- Refunds target either a PaymentIntent (``pi_...``) or a Charge (``ch_...``).
- Idempotency keys, the connected account and the API key are passed as
  per-request options so no module-level state is mutated.
- The SDK is synchronous; calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import stripe

from application.dtos.payments import ProcessorRefund, ProcessorRefundRequest
from application.ports.payment_gateway import (
    PaymentOutcomeUnknownError,
    PaymentProviderError,
    PaymentRecoverableError,
)
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient


class StripeRefundProcessor(BasePaymentClient):
    provider = "stripe"

    def __init__(self, secret_key: Optional[str] = None, api_version: Optional[str] = None):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self._secret_key = secret_key or payment_settings.stripe.secret_key
        if not self._secret_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        self._api_version = api_version or payment_settings.stripe.api_version

    def _params(self, req: ProcessorRefundRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "amount": req.amount_cents,
            "metadata": {"order_id": req.order_id, **req.metadata},
            "idempotency_key": req.idempotency_key,
            "api_key": self._secret_key,
        }
        if req.payment_ref.startswith("ch_"):
            params["charge"] = req.payment_ref
        else:
            params["payment_intent"] = req.payment_ref
        reason = self._map_reason(req.reason)
        if reason:
            params["reason"] = reason
        if req.account_id:
            params["stripe_account"] = req.account_id
        if self._api_version:
            params["stripe_version"] = self._api_version
        return params

    async def _create_once(self, req: ProcessorRefundRequest) -> Any:
        params = self._params(req)
        try:
            return await asyncio.to_thread(stripe.Refund.create, **params)
        except stripe.RateLimitError as exc:
            raise PaymentRecoverableError(
                str(exc), provider=self.provider, provider_code=getattr(exc, "code", None)
            ) from exc
        except (stripe.APIConnectionError, stripe.APIError) as exc:
            # 请求可能已被处理
            raise PaymentOutcomeUnknownError(
                str(exc), provider=self.provider, provider_code=getattr(exc, "code", None)
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                getattr(exc, "user_message", None) or str(exc),
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            ) from exc

    async def create_refund(self, req: ProcessorRefundRequest) -> ProcessorRefund:
        self._log("refund_request", order_id=req.order_id, amount_cents=req.amount_cents)
        refund = await self._retry(lambda: self._create_once(req))
        result = ProcessorRefund(
            refund_id=str(refund["id"]),
            status=self._map_status(str(refund.get("status") or "")),
            amount_cents=int(refund.get("amount") or req.amount_cents),
            provider=self.provider,
            provider_ref=str(refund.get("payment_intent") or refund.get("charge") or "") or None,
        )
        self._log("refund_response", order_id=req.order_id, refund_id=result.refund_id, status=result.status)
        return result
