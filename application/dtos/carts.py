"""
Cart DTOs.
"""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from application.services.cart_cleanup import CartCleanupResult
from domain.cart.entity import Cart


class CartLineDTO(BaseModel):
    product_id: str
    quantity: int


class CartDTO(BaseModel):
    scope: str
    tenant_key: str
    user_key: str
    lines: List[CartLineDTO] = Field(default_factory=list)
    total_quantity: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, cart: Cart) -> "CartDTO":
        return cls(
            scope=cart.key,
            tenant_key=cart.scope.tenant_key,
            user_key=cart.scope.user_key,
            lines=[CartLineDTO(product_id=pid, quantity=qty) for pid, qty in sorted(cart.lines.items())],
            total_quantity=cart.total_quantity,
            updated_at=cart.updated_at,
        )


class AddCartItemDTO(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, gt=0, le=999)


class SetCartItemQuantityDTO(BaseModel):
    quantity: int = Field(..., ge=0, le=999)


class MergeResultDTO(BaseModel):
    merged: bool
    reason: str
    active_scope: str
    cart: CartDTO


class _CleanupModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartCleanupRuleDTO(_CleanupModel):
    rule: str
    description: str
    matched: int
    deleted: int
    pruned_lines: int
    error_count: int


class CartCleanupResultDTO(_CleanupModel):
    dry_run: bool
    started_at: datetime
    finished_at: Optional[datetime] = None
    total_matched: int
    total_deleted: int
    had_errors: bool
    results: List[CartCleanupRuleDTO] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: CartCleanupResult) -> "CartCleanupResultDTO":
        return cls(
            dry_run=result.dry_run,
            started_at=result.started_at,
            finished_at=result.finished_at,
            total_matched=result.total_matched,
            total_deleted=result.total_deleted,
            had_errors=result.had_errors,
            results=[CartCleanupRuleDTO.model_validate(asdict(r)) for r in result.results],
        )


class CartCleanupResponseDTO(_CleanupModel):
    ok: bool
    result: CartCleanupResultDTO
