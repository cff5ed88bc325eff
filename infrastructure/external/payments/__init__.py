"""
Factory for refund processor clients.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import RefundProcessor
from core.settings import payment_settings


def get_refund_processor(provider: Optional[str] = None) -> RefundProcessor:
    name = (provider or payment_settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeRefundProcessor
        return StripeRefundProcessor()
    raise ValueError(f"Unsupported payment provider: {name}")
