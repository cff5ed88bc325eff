"""Cart domain exports."""
from .entity import Cart, CartMergeMarker
from .identity import CartIdentity, CartIdentityResolver, GuestIdentity, Unresolved, UserIdentity, scope_for
from .repository import CartRepository, MergeAlreadyRecordedException
from .scope import CartScope, build

__all__ = [
    "Cart",
    "CartMergeMarker",
    "CartIdentity",
    "CartIdentityResolver",
    "GuestIdentity",
    "Unresolved",
    "UserIdentity",
    "scope_for",
    "CartRepository",
    "MergeAlreadyRecordedException",
    "CartScope",
    "build",
]
