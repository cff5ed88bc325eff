"""
Admin refund request/response DTOs (camelCase on the wire).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config import MAX_PROCESSOR_TIMEOUT_MS
from domain.refund.entity import LineSelection, RefundReason, RefundRecord


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RefundSelectionDTO(_CamelModel):
    type: Literal["quantity"] = "quantity"
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, le=100)


class RefundRequestDTO(_CamelModel):
    order_id: str = Field(..., min_length=1)
    # 允许为空：仅退运费
    selections: List[RefundSelectionDTO] = Field(default_factory=list)
    reason: Optional[RefundReason] = None
    restocking_fee_cents: int = Field(default=0, ge=0, le=3000)
    refund_shipping_cents: int = Field(default=0, ge=0, le=15000)
    notes: Optional[str] = Field(default=None, max_length=1000)
    idempotency_key: Optional[str] = Field(default=None, min_length=8, max_length=128)
    timeout_ms: Optional[int] = Field(default=None, ge=1000, le=MAX_PROCESSOR_TIMEOUT_MS)

    def to_command(self) -> "RefundCommand":
        return RefundCommand(
            order_id=self.order_id,
            selections=[LineSelection(item_id=s.item_id, quantity=s.quantity) for s in self.selections],
            reason=self.reason,
            restocking_fee_cents=self.restocking_fee_cents,
            refund_shipping_cents=self.refund_shipping_cents,
            notes=self.notes,
            idempotency_key=self.idempotency_key,
            timeout_seconds=self.timeout_ms / 1000 if self.timeout_ms else None,
        )


@dataclass
class RefundCommand:
    """Engine input, already normalized at the boundary."""

    order_id: str
    selections: List[LineSelection] = field(default_factory=list)
    reason: Optional[RefundReason] = None
    restocking_fee_cents: int = 0
    refund_shipping_cents: int = 0
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    timeout_seconds: Optional[float] = None


@dataclass
class RefundOutcome:
    processor_refund_id: Optional[str]
    amount_cents: int
    record: RefundRecord
    replayed: bool = False


class RefundResponseDTO(_CamelModel):
    ok: bool = True
    processor_refund_id: Optional[str]
    amount_cents: int
    refund_record_id: Optional[int]

    @classmethod
    def from_outcome(cls, outcome: RefundOutcome) -> "RefundResponseDTO":
        return cls(
            processor_refund_id=outcome.processor_refund_id,
            amount_cents=outcome.amount_cents,
            refund_record_id=outcome.record.id,
        )


class RefundRemainingDTO(_CamelModel):
    ok: bool = True
    order_id: str
    remaining_cents: int
    refunded_total_cents: int
    by_item_id: Dict[str, int]
    refunded_qty_by_item_id: Dict[str, int]


class RefundRecordDTO(_CamelModel):
    id: Optional[int]
    order_id: str
    processor_refund_id: Optional[str]
    amount_cents: int
    currency: str
    status: str
    reconciled: bool
    reason: Optional[str] = None
    failure_reason: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_entity(cls, record: RefundRecord) -> "RefundRecordDTO":
        return cls(
            id=record.id,
            order_id=record.order_id,
            processor_refund_id=record.processor_refund_id,
            amount_cents=record.amount_cents,
            currency=record.currency,
            status=record.status.value,
            reconciled=record.reconciled,
            reason=record.reason.value if record.reason else None,
            failure_reason=record.failure_reason,
            idempotency_key=record.idempotency_key,
            created_at=record.created_at.isoformat() if record.created_at else None,
        )
