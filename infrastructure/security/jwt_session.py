"""
JWT 会话解析 - 从 Bearer 头或会话 Cookie 中读取调用方身份

令牌由认证服务签发；这里只校验签名与过期时间，不签发令牌。
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

import jwt

from core.config import settings
from core.logging_config import get_logger
from domain.common.identifiers import extract_id
from domain.common.session import Session


logger = get_logger(__name__)


class JwtSessionResolver:
    """SessionResolver 的 PyJWT 实现"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        cookie_name: Optional[str] = None,
    ) -> None:
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM
        self._cookie_name = cookie_name or settings.cart.session_cookie_name

    def _token(self, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[str]:
        auth = headers.get("authorization") or headers.get("Authorization")
        if auth:
            scheme, _, credentials = auth.partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()
        token = cookies.get(self._cookie_name)
        return token.strip() if token and token.strip() else None

    @staticmethod
    def _roles(payload: dict[str, Any]) -> tuple:
        roles = payload.get("roles")
        if roles is None and payload.get("role"):
            roles = [payload["role"]]
        if isinstance(roles, str):
            roles = [roles]
        return tuple(str(r) for r in (roles or []) if r)

    def resolve(self, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[Session]:
        token = self._token(headers, cookies)
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("session_token_expired")
            return None
        except jwt.PyJWTError as e:
            logger.warning("invalid_session_token", error=str(e))
            return None

        user_id = extract_id(payload.get("sub")) or extract_id(payload.get("id"))
        if not user_id:
            return None
        return Session(user_id=user_id, roles=self._roles(payload))
