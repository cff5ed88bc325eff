"""
Admin refund API routes.

Admin-only (role from settings.refunds.admin_role). Bodies and responses are
camelCase; every refund engine failure is answered by the global handler as
``500 {error, code, orderId}``.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from starlette import status as http_status

from api.dependencies import get_refund_engine, get_refund_reader, require_admin
from application.dtos.refunds import (
    RefundRecordDTO,
    RefundRemainingDTO,
    RefundRequestDTO,
    RefundResponseDTO,
)
from application.services.refund_engine import RefundEngine
from core.logging_config import get_logger
from core.response import refund_error_response
from domain.common.session import Session
from domain.refund.errors import OrderNotFoundError


router = APIRouter(prefix="/admin/refunds", tags=["Refunds"])
logger = get_logger(__name__)


@router.post("", response_model=RefundResponseDTO)
async def create_refund(
    payload: RefundRequestDTO,
    session: Session = Depends(require_admin),
    engine: RefundEngine = Depends(get_refund_engine),
):
    """Issue a partial refund for an order."""
    logger.info(
        "admin_refund_requested",
        order_id=payload.order_id,
        admin_user_id=session.user_id,
        selections=len(payload.selections),
    )
    outcome = await engine.refund(payload.to_command())
    return RefundResponseDTO.from_outcome(outcome)


@router.get("/remaining", response_model=RefundRemainingDTO)
async def get_remaining(
    order_id: str = Query(..., alias="orderId", min_length=1),
    session: Session = Depends(require_admin),
    engine: RefundEngine = Depends(get_refund_reader),
):
    try:
        remaining = await engine.get_remaining(order_id)
    except OrderNotFoundError as exc:
        return refund_error_response(http_status.HTTP_404_NOT_FOUND, exc.message, exc.kind.value, exc.order_id)
    return RefundRemainingDTO(
        order_id=remaining.order_id,
        remaining_cents=remaining.total_remaining_cents,
        refunded_total_cents=remaining.refunded_total_cents,
        by_item_id=remaining.per_item,
        refunded_qty_by_item_id=remaining.refunded_per_item,
    )


@router.get("/unreconciled")
async def list_unreconciled(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    session: Session = Depends(require_admin),
    engine: RefundEngine = Depends(get_refund_reader),
):
    """Refund records whose money may have moved without a ledger update."""
    records = await engine.list_unreconciled(skip=skip, limit=limit)
    return {
        "ok": True,
        "records": [RefundRecordDTO.from_entity(r).model_dump(by_alias=True, mode="json") for r in records],
    }
