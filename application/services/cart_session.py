"""
Cart session state machine.

A session starts as GUEST (device scope) or USER (user scope). The only
transition is GUEST -> USER on login, which runs the cart merge once and
rebinds the active scope to the user's cart.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from application.services.cart_merge import CartMergeService, MergeOutcome
from domain.cart.identity import CartIdentity, GuestIdentity, UserIdentity, scope_for
from domain.cart.scope import CartScope
from domain.common.exceptions import DomainValidationException
from domain.common.identifiers import extract_id


class CartSessionState(str, Enum):
    GUEST = "guest"
    USER = "user"


class CartSession:
    def __init__(
        self,
        merge_service: CartMergeService,
        tenant_slug: Optional[str],
        identity: CartIdentity,
    ) -> None:
        self._merge_service = merge_service
        self.tenant_slug = tenant_slug
        self.active_scope: CartScope = scope_for(identity, tenant_slug)
        if isinstance(identity, UserIdentity):
            self.state = CartSessionState.USER
            self.user_id: Optional[str] = identity.user_id
            self.device_id = identity.guest_session_id
        else:
            self.state = CartSessionState.GUEST
            self.user_id = None
            self.device_id = identity.guest_session_id

    @classmethod
    def for_identity(
        cls,
        identity: CartIdentity,
        tenant_slug: Optional[str],
        merge_service: CartMergeService,
    ) -> "CartSession":
        """Build the session for the current request; Unresolved is rejected."""
        return cls(merge_service, tenant_slug, identity)

    @classmethod
    def guest(cls, device_id: Optional[str], tenant_slug: Optional[str], merge_service: CartMergeService) -> "CartSession":
        return cls(merge_service, tenant_slug, GuestIdentity(guest_session_id=device_id))

    @property
    def is_guest(self) -> bool:
        return self.state is CartSessionState.GUEST

    async def on_login(self, user_id: Any) -> MergeOutcome:
        uid = extract_id(user_id)
        if not uid:
            raise DomainValidationException("user_id is required to log in", field="user_id")

        if self.state is CartSessionState.USER:
            if uid != self.user_id:
                raise DomainValidationException(
                    "Cart session already belongs to another user", field="user_id"
                )
            return MergeOutcome(False, CartMergeService.ALREADY_MERGED, self.active_scope)

        outcome = await self._merge_service.merge(self.tenant_slug, uid, self.device_id)
        self.state = CartSessionState.USER
        self.user_id = uid
        self.active_scope = outcome.user_scope
        return outcome
