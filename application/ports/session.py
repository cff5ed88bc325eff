"""Session lookup port.

The authentication service owns token issuance; this service only asks who
the caller is.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from domain.common.session import Session


@runtime_checkable
class SessionResolver(Protocol):
    def resolve(self, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[Session]: ...
