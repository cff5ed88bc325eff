import pytest

from application.services.cart_service import CartService
from domain.cart.entity import Cart
from domain.cart.scope import build
from domain.common.exceptions import (
    DomainValidationException,
    ProductNotFoundException,
    ProductUnavailableException,
)


def test_cart_entity_rules():
    cart = Cart(scope=build("acme", "u1"))
    cart.add("X", 2)
    cart.add("X")
    assert cart.quantity_of("X") == 3
    cart.set_quantity("X", 0)
    assert cart.is_empty
    with pytest.raises(DomainValidationException):
        cart.add("X", 0)
    with pytest.raises(DomainValidationException):
        Cart(scope=build("acme", "u1"), lines={"X": -1})


@pytest.mark.asyncio
async def test_add_update_remove(uow_factory, seed_product):
    await seed_product("X")
    await seed_product("Y")
    svc = CartService(uow_factory)
    scope = build("acme", device_id="dev-1")

    assert (await svc.get_cart(scope)).is_empty

    await svc.add_item(scope, "X", 2)
    await svc.add_item(scope, {"id": "X"}, 1)
    cart = await svc.add_item(scope, "Y")
    assert cart.lines == {"X": 3, "Y": 1}

    cart = await svc.set_quantity(scope, "X", 5)
    assert cart.quantity_of("X") == 5
    cart = await svc.set_quantity(scope, "Y", 0)
    assert "Y" not in cart.lines

    cart = await svc.remove_item(scope, "X")
    assert cart.is_empty
    assert (await svc.get_cart(scope)).is_empty


@pytest.mark.asyncio
async def test_clear_reports_whether_cart_existed(uow_factory, seed_product):
    await seed_product("X")
    svc = CartService(uow_factory)
    scope = build("acme", "u1")
    assert await svc.clear(scope) is False
    await svc.add_item(scope, "X")
    assert await svc.clear(scope) is True


@pytest.mark.asyncio
async def test_product_validation(uow_factory, seed_product):
    await seed_product("old", archived=True)
    await seed_product("foreign", tenant_key="globex")
    await seed_product("shared", tenant_key=None)
    svc = CartService(uow_factory)
    scope = build("acme", "u1")

    with pytest.raises(ProductNotFoundException):
        await svc.add_item(scope, "missing")
    with pytest.raises(ProductUnavailableException):
        await svc.add_item(scope, "old")
    with pytest.raises(ProductUnavailableException):
        await svc.add_item(scope, "foreign")

    cart = await svc.add_item(scope, "shared")
    assert cart.lines == {"shared": 1}
    # 全局作用域不校验租户归属
    cart = await svc.add_item(build(None, "u1"), "foreign")
    assert cart.lines == {"foreign": 1}


@pytest.mark.asyncio
async def test_carts_are_isolated_per_scope(uow_factory, seed_product):
    await seed_product("X")
    svc = CartService(uow_factory)
    await svc.add_item(build("acme", "u1"), "X", 1)
    await svc.add_item(build("acme", device_id="dev-1"), "X", 4)
    assert (await svc.get_cart(build("acme", "u1"))).lines == {"X": 1}
    assert (await svc.get_cart(build("acme", device_id="dev-1"))).lines == {"X": 4}
