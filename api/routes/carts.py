"""
购物车API路由

身份来自会话（已登录）或设备 Cookie（访客）；两者都没有时拒绝读写。
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_cart_identity, get_cart_service, get_merge_service
from application.dtos.carts import (
    AddCartItemDTO,
    CartDTO,
    MergeResultDTO,
    SetCartItemQuantityDTO,
)
from application.services.cart_merge import CartMergeService
from application.services.cart_service import CartService
from application.services.cart_session import CartSession
from core.response import Response, success_response
from domain.cart.entity import Cart
from domain.cart.identity import CartIdentity, UserIdentity, scope_for
from domain.common.exceptions import UnauthorizedException


router = APIRouter(prefix="/carts", tags=["Carts"])


@router.get("/{tenant}", response_model=Response[CartDTO])
async def get_cart(
    tenant: str,
    identity: CartIdentity = Depends(get_cart_identity),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.get_cart(scope_for(identity, tenant))
    return success_response(data=CartDTO.from_entity(cart))


@router.post("/{tenant}/items", response_model=Response[CartDTO])
async def add_item(
    tenant: str,
    payload: AddCartItemDTO,
    identity: CartIdentity = Depends(get_cart_identity),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.add_item(scope_for(identity, tenant), payload.product_id, payload.quantity)
    return success_response(data=CartDTO.from_entity(cart))


@router.put("/{tenant}/items/{product_id}", response_model=Response[CartDTO])
async def set_item_quantity(
    tenant: str,
    product_id: str,
    payload: SetCartItemQuantityDTO,
    identity: CartIdentity = Depends(get_cart_identity),
    service: CartService = Depends(get_cart_service),
):
    """设置数量；0 表示移除"""
    cart = await service.set_quantity(scope_for(identity, tenant), product_id, payload.quantity)
    return success_response(data=CartDTO.from_entity(cart))


@router.delete("/{tenant}/items/{product_id}", response_model=Response[CartDTO])
async def remove_item(
    tenant: str,
    product_id: str,
    identity: CartIdentity = Depends(get_cart_identity),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.remove_item(scope_for(identity, tenant), product_id)
    return success_response(data=CartDTO.from_entity(cart))


@router.delete("/{tenant}", response_model=Response[CartDTO])
async def clear_cart(
    tenant: str,
    identity: CartIdentity = Depends(get_cart_identity),
    service: CartService = Depends(get_cart_service),
):
    scope = scope_for(identity, tenant)
    await service.clear(scope)
    return success_response(data=CartDTO.from_entity(Cart(scope=scope)))


@router.post("/{tenant}/merge", response_model=Response[MergeResultDTO])
async def merge_cart(
    tenant: str,
    identity: CartIdentity = Depends(get_cart_identity),
    merge_service: CartMergeService = Depends(get_merge_service),
):
    """登录后把本设备的访客购物车并入用户购物车（幂等）"""
    if not isinstance(identity, UserIdentity):
        raise UnauthorizedException("Login required to merge carts")

    cart_session = CartSession.guest(identity.guest_session_id, tenant, merge_service)
    outcome = await cart_session.on_login(identity.user_id)
    cart = outcome.cart or Cart(scope=outcome.user_scope)
    return success_response(
        data=MergeResultDTO(
            merged=outcome.merged,
            reason=outcome.reason,
            active_scope=cart_session.active_scope.key,
            cart=CartDTO.from_entity(cart),
        )
    )
