"""
Login-time cart merge.

Folds the anonymous (device) cart of a tenant into the user's cart exactly
once per (tenant, user). The marker insert and the cart writes share one unit
of work, and the unique marker is the guard against concurrent merges.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.logging_config import get_logger
from domain.cart.entity import Cart, CartMergeMarker
from domain.cart.repository import MergeAlreadyRecordedException
from domain.cart.scope import CartScope, build
from domain.common.exceptions import DomainValidationException
from domain.common.identifiers import extract_id
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeOutcome:
    merged: bool
    reason: str
    user_scope: CartScope
    cart: Optional[Cart] = None


class CartMergeService:
    MERGED = "merged"
    SAME_SCOPE = "same_scope"
    ALREADY_MERGED = "already_merged"
    PENDING_SOURCE = "pending_source"
    NOTHING_TO_MERGE = "nothing_to_merge"

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def merge(self, tenant_slug: Any, user_id: Any, device_id: Any) -> MergeOutcome:
        uid = extract_id(user_id)
        if not uid:
            raise DomainValidationException("user_id is required to merge a cart", field="user_id")

        anon_scope = build(tenant_slug, device_id=device_id)
        user_scope = build(tenant_slug, user_id=uid)

        if anon_scope == user_scope:
            return await self._noop(user_scope, self.SAME_SCOPE)
        if anon_scope.is_pending:
            # 共享占位购物车，不能归属到任何用户
            logger.warning("cart_merge_skipped_pending", tenant_key=user_scope.tenant_key, user_id=uid)
            return await self._noop(user_scope, self.PENDING_SOURCE)

        try:
            async with self._uow_factory() as uow:
                repo = uow.cart_repository
                if await repo.get_merge_marker(user_scope.tenant_key, uid) is not None:
                    user_cart = await repo.get(user_scope)
                    return MergeOutcome(False, self.ALREADY_MERGED, user_scope, user_cart)

                anon_cart = await repo.get(anon_scope)
                user_cart = await repo.get(user_scope) or Cart(scope=user_scope)
                if anon_cart is None or anon_cart.is_empty:
                    return MergeOutcome(False, self.NOTHING_TO_MERGE, user_scope, user_cart)

                await repo.add_merge_marker(
                    CartMergeMarker(
                        tenant_key=user_scope.tenant_key,
                        user_id=uid,
                        source_scope=anon_scope.key,
                    )
                )
                user_cart.absorb(anon_cart)
                await repo.save(user_cart)
                await repo.delete(anon_scope)
        except MergeAlreadyRecordedException:
            logger.info("cart_merge_lost_race", tenant_key=user_scope.tenant_key, user_id=uid)
            return await self._noop(user_scope, self.ALREADY_MERGED)

        logger.info(
            "cart_merged",
            tenant_key=user_scope.tenant_key,
            user_id=uid,
            source_scope=anon_scope.key,
            lines=len(anon_cart.lines),
        )
        return MergeOutcome(True, self.MERGED, user_scope, user_cart)

    async def _noop(self, user_scope: CartScope, reason: str) -> MergeOutcome:
        async with self._uow_factory(readonly=True) as uow:
            cart = await uow.cart_repository.get(user_scope)
        return MergeOutcome(False, reason, user_scope, cart)
