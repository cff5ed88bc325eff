"""
Cart identity resolution.

The identity is recomputed on every request from the session lookup and the
device cookie and never persisted. Resolution has no side effects; minting a
device id is the job of the upstream collaborator that owns the cookie.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Union

from domain.cart.scope import CartScope, build
from domain.common.exceptions import CartIdentityUnresolvedException
from domain.common.identifiers import extract_id
from domain.common.session import Session


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    guest_session_id: Optional[str] = None


@dataclass(frozen=True)
class GuestIdentity:
    guest_session_id: str


@dataclass(frozen=True)
class Unresolved:
    pass


CartIdentity = Union[UserIdentity, GuestIdentity, Unresolved]


class CartIdentityResolver:
    def __init__(self, device_cookie_name: str = "ah_device_id") -> None:
        self.device_cookie_name = device_cookie_name

    def resolve(self, session: Optional[Session], cookies: Mapping[str, str]) -> CartIdentity:
        device_id = extract_id(cookies.get(self.device_cookie_name))
        user_id = extract_id(session.user_id) if session else None
        if user_id:
            return UserIdentity(user_id=user_id, guest_session_id=device_id)
        if device_id:
            return GuestIdentity(guest_session_id=device_id)
        return Unresolved()


def scope_for(identity: CartIdentity, tenant_slug: Optional[str]) -> CartScope:
    """Scope a request reads and writes for ``identity``.

    ``Unresolved`` has no safe scope: writing to the shared pending scope
    would leak carts between callers.
    """
    if isinstance(identity, UserIdentity):
        return build(tenant_slug, user_id=identity.user_id)
    if isinstance(identity, GuestIdentity):
        return build(tenant_slug, device_id=identity.guest_session_id)
    raise CartIdentityUnresolvedException()
