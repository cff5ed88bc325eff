"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class AuthorizationError(BusinessException):
    """调用方缺少所需角色"""

    def __init__(self, required_role: Optional[str] = None):
        details = {"required_role": required_role} if required_role else None
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Forbidden",
            error_type="FORBIDDEN",
            details=details,
        )


class UnauthorizedException(BusinessException):
    """未授权异常"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
        )


class CartIdentityUnresolvedException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.CART_IDENTITY_UNRESOLVED,
            message="Cart identity could not be resolved (no session and no device id)",
            error_type="CartIdentityUnresolved",
        )


class ProductNotFoundException(BusinessException):
    def __init__(self, product_id: str):
        super().__init__(
            code=BusinessCode.PRODUCT_NOT_FOUND,
            message=f"Product not found: {product_id}",
            error_type="ProductNotFound",
            details={"product_id": product_id},
            field="product_id",
        )


class ProductUnavailableException(BusinessException):
    def __init__(self, product_id: str, reason: str):
        super().__init__(
            code=BusinessCode.PRODUCT_UNAVAILABLE,
            message=f"Product {product_id} cannot be added to this cart: {reason}",
            error_type="ProductUnavailable",
            details={"product_id": product_id, "reason": reason},
            field="product_id",
        )
