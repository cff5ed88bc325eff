"""
Cart scope keys.

A cart scope partitions cart storage by tenant and owner. The serialized form
``"<tenant_key>::<user_key>"`` is the only key carts are stored under, so two
carts with the same scope string are the same cart.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from domain.common.exceptions import DomainValidationException
from domain.common.identifiers import extract_id


logger = structlog.get_logger(__name__)

SEPARATOR = "::"
DEFAULT_TENANT = "__global__"
ANON_PREFIX = "anon:"
PENDING_DEVICE = "pending"


@dataclass(frozen=True)
class CartScope:
    tenant_key: str
    user_key: str

    def __str__(self) -> str:
        return f"{self.tenant_key}{SEPARATOR}{self.user_key}"

    @property
    def key(self) -> str:
        return str(self)

    @property
    def is_anonymous(self) -> bool:
        return self.user_key.startswith(ANON_PREFIX)

    @property
    def is_pending(self) -> bool:
        """Fallback scope shared by every caller without a device id."""
        return self.user_key == f"{ANON_PREFIX}{PENDING_DEVICE}"

    @property
    def is_global(self) -> bool:
        return self.tenant_key == DEFAULT_TENANT

    @classmethod
    def parse(cls, text: str) -> "CartScope":
        tenant_key, sep, user_key = (text or "").partition(SEPARATOR)
        if not sep or not tenant_key or not user_key:
            raise DomainValidationException(f"Malformed cart scope: {text!r}", field="scope")
        return cls(tenant_key=tenant_key, user_key=user_key)


def normalize_tenant(tenant_slug: Any) -> str:
    slug = extract_id(tenant_slug)
    if not slug:
        return DEFAULT_TENANT
    # "tenant::x" collapses to its tenant part
    slug = slug.split(SEPARATOR, 1)[0].strip()
    return slug or DEFAULT_TENANT


def build(tenant_slug: Any = None, user_id: Any = None, device_id: Any = None) -> CartScope:
    """Compute the cart scope for a tenant and either a user or a device.

    >>> str(build("acme", "u1"))
    'acme::u1'
    >>> str(build(None, None))
    '__global__::anon:pending'
    """
    tenant_key = normalize_tenant(tenant_slug)

    user = extract_id(user_id)
    if user:
        return CartScope(tenant_key=tenant_key, user_key=user)

    device = extract_id(device_id)
    if device:
        return CartScope(tenant_key=tenant_key, user_key=f"{ANON_PREFIX}{device}")

    logger.warning("cart_scope_pending_fallback", tenant_key=tenant_key)
    return CartScope(tenant_key=tenant_key, user_key=f"{ANON_PREFIX}{PENDING_DEVICE}")

