import pytest

stripe = pytest.importorskip("stripe")

from application.dtos.payments import ProcessorRefundRequest  # noqa: E402
from application.ports.payment_gateway import (  # noqa: E402
    PaymentOutcomeUnknownError,
    PaymentProviderError,
    PaymentRecoverableError,
)
from infrastructure.external.payments import get_refund_processor  # noqa: E402
from infrastructure.external.payments.base import BasePaymentClient  # noqa: E402
from infrastructure.external.payments.stripe_client import StripeRefundProcessor  # noqa: E402


def _req(**overrides) -> ProcessorRefundRequest:
    values = dict(
        payment_ref="pi_123",
        amount_cents=3000,
        currency="usd",
        idempotency_key="k" * 64,
        order_id="ord_1",
        reason="other",
        metadata={"app_reason": "other"},
    )
    values.update(overrides)
    return ProcessorRefundRequest(**values)


@pytest.fixture
def client():
    c = StripeRefundProcessor(secret_key="sk_test_123")
    c._retry_cfg = {"max": 2, "base": 0}
    return c


def test_provider_status_mapping():
    class _MapClient(BasePaymentClient):
        provider = "stripe"

    c = _MapClient()
    assert c._map_status("succeeded") == "succeeded"
    assert c._map_status("requires_action") == "pending"
    assert c._map_status("canceled") == "canceled"
    assert c._map_reason("duplicate") == "duplicate"
    assert c._map_reason("other") is None


def test_missing_secret_key(monkeypatch):
    from core.settings import payment_settings

    monkeypatch.setattr(payment_settings.stripe, "secret_key", None)
    with pytest.raises(RuntimeError):
        StripeRefundProcessor()
    with pytest.raises(ValueError):
        get_refund_processor("paypal")


@pytest.mark.asyncio
async def test_refund_params_and_result(client, monkeypatch):
    calls = []

    def fake_create(**params):
        calls.append(params)
        return {"id": "re_1", "status": "succeeded", "amount": 3000, "payment_intent": "pi_123"}

    monkeypatch.setattr(stripe.Refund, "create", fake_create)
    result = await client.create_refund(_req(account_id="acct_9"))

    assert result.refund_id == "re_1"
    assert result.status == "succeeded"
    assert result.provider_ref == "pi_123"
    params = calls[0]
    assert params["payment_intent"] == "pi_123"
    assert params["idempotency_key"] == "k" * 64
    assert params["stripe_account"] == "acct_9"
    assert params["api_key"] == "sk_test_123"
    assert "reason" not in params
    assert params["metadata"]["app_reason"] == "other"


@pytest.mark.asyncio
async def test_charge_refs_use_charge_param(client, monkeypatch):
    calls = []

    def fake_create(**params):
        calls.append(params)
        return {"id": "re_2", "status": "pending", "amount": 3000, "charge": "ch_1"}

    monkeypatch.setattr(stripe.Refund, "create", fake_create)
    result = await client.create_refund(_req(payment_ref="ch_1", reason="duplicate"))
    assert calls[0]["charge"] == "ch_1"
    assert calls[0]["reason"] == "duplicate"
    assert result.status == "pending"


@pytest.mark.asyncio
async def test_rate_limit_is_retried(client, monkeypatch):
    attempts = []

    def fake_create(**params):
        attempts.append(params)
        if len(attempts) < 3:
            raise stripe.RateLimitError("slow down")
        return {"id": "re_3", "status": "succeeded", "amount": 3000}

    monkeypatch.setattr(stripe.Refund, "create", fake_create)
    result = await client.create_refund(_req())
    assert result.refund_id == "re_3"
    assert len(attempts) == 3

    attempts.clear()

    def always_limited(**params):
        attempts.append(params)
        raise stripe.RateLimitError("slow down")

    monkeypatch.setattr(stripe.Refund, "create", always_limited)
    with pytest.raises(PaymentRecoverableError):
        await client.create_refund(_req())
    assert len(attempts) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (lambda: stripe.APIConnectionError("network down"), PaymentOutcomeUnknownError),
        (lambda: stripe.APIError("internal"), PaymentOutcomeUnknownError),
        (lambda: stripe.InvalidRequestError("charge already refunded", param="charge"), PaymentProviderError),
    ],
)
async def test_error_mapping_is_not_retried(client, monkeypatch, error, expected):
    attempts = []

    def fake_create(**params):
        attempts.append(params)
        raise error()

    monkeypatch.setattr(stripe.Refund, "create", fake_create)
    with pytest.raises(expected):
        await client.create_refund(_req())
    assert len(attempts) == 1
