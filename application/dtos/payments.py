"""
DTOs exchanged with the payment processor port.

Amounts are integer minor units (cents); processors that need another unit
convert inside their adapter.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProcessorRefundRequest(BaseModel):
    payment_ref: str = Field(..., description="PaymentIntent or Charge id the refund targets")
    amount_cents: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    idempotency_key: str
    order_id: str
    reason: Optional[str] = None
    account_id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ProcessorRefund(BaseModel):
    refund_id: str
    status: str = Field(..., description="pending/succeeded/failed/canceled (normalized)")
    amount_cents: int
    provider: str
    provider_ref: Optional[str] = None
