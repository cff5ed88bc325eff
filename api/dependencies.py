"""
API依赖项 - 会话、身份与应用服务装配

协作对象（处理器、订单锁、UoW 工厂、会话解析器）在应用启动时创建并挂在
app.state 上，这里只负责取出并注入。
"""
import hmac
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer

from application.ports.locks import OrderLockManager
from application.ports.payment_gateway import RefundProcessor
from application.ports.session import SessionResolver
from application.services.cart_cleanup import CartCleanupService
from application.services.cart_merge import CartMergeService
from application.services.cart_service import CartService
from application.services.refund_engine import RefundEngine
from core.config import settings
from domain.cart.identity import CartIdentity, CartIdentityResolver
from domain.common.exceptions import AuthorizationError, UnauthorizedException
from domain.common.session import Session
from domain.common.unit_of_work import AbstractUnitOfWork

# HTTP Bearer for Swagger UI; the token is read by the session resolver
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def get_uow_factory(request: Request) -> Callable[..., AbstractUnitOfWork]:
    return request.app.state.uow_factory


def get_session_resolver(request: Request) -> SessionResolver:
    return request.app.state.session_resolver


async def get_current_session(
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    _bearer=Depends(http_bearer),
) -> Optional[Session]:
    """当前调用方会话；匿名调用返回 None"""
    return resolver.resolve(request.headers, request.cookies)


async def require_admin(session: Optional[Session] = Depends(get_current_session)) -> Session:
    """要求管理员角色"""
    role = settings.refunds.admin_role
    if session is None or not session.has_role(role):
        raise AuthorizationError(required_role=role)
    return session


async def require_cleanup_caller(
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    _bearer=Depends(http_bearer),
) -> str:
    """
    清理任务调用方：定时任务携带 ``Bearer <cart.cleanup_secret>``，或管理员会话

    Returns:
        触发方标识，"cron" 或管理员 user_id
    """
    secret = settings.cart.cleanup_secret
    authorization = request.headers.get("authorization", "")
    if secret and hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        return "cron"

    session = resolver.resolve(request.headers, request.cookies)
    role = settings.refunds.admin_role
    if session is None:
        raise UnauthorizedException()
    if not session.has_role(role):
        raise AuthorizationError(required_role=role)
    return session.user_id


async def get_cart_identity(
    request: Request,
    session: Optional[Session] = Depends(get_current_session),
) -> CartIdentity:
    resolver = CartIdentityResolver(device_cookie_name=settings.cart.device_cookie_name)
    return resolver.resolve(session, request.cookies)


def get_refund_processor(request: Request) -> RefundProcessor:
    processor = getattr(request.app.state, "refund_processor", None)
    if processor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Refund processor is not configured",
        )
    return processor


def get_order_locks(request: Request) -> OrderLockManager:
    return request.app.state.order_locks


async def get_refund_engine(
    uow_factory=Depends(get_uow_factory),
    processor: RefundProcessor = Depends(get_refund_processor),
    locks: OrderLockManager = Depends(get_order_locks),
) -> RefundEngine:
    return RefundEngine(
        uow_factory,
        processor,
        locks,
        processor_timeout_seconds=settings.refunds.processor_timeout_seconds,
        max_processor_timeout_seconds=settings.refunds.max_processor_timeout_seconds,
        default_currency=settings.refunds.default_currency,
    )


async def get_cart_service(uow_factory=Depends(get_uow_factory)) -> CartService:
    return CartService(uow_factory=uow_factory)


async def get_cart_cleanup_service(uow_factory=Depends(get_uow_factory)) -> CartCleanupService:
    return CartCleanupService(uow_factory=uow_factory)


async def get_merge_service(uow_factory=Depends(get_uow_factory)) -> CartMergeService:
    return CartMergeService(uow_factory=uow_factory)


async def get_refund_reader(
    request: Request,
    uow_factory=Depends(get_uow_factory),
    locks: OrderLockManager = Depends(get_order_locks),
) -> RefundEngine:
    """只读查询（剩余可退、待对账记录）不依赖处理器配置"""
    return RefundEngine(uow_factory, getattr(request.app.state, "refund_processor", None), locks)
