import asyncio

import pytest

from application.services.cart_merge import CartMergeService
from application.services.cart_session import CartSession, CartSessionState
from domain.cart.entity import Cart
from domain.cart.identity import UserIdentity
from domain.cart.scope import build
from domain.common.exceptions import DomainValidationException
from infrastructure.repositories.cart_repository import SQLAlchemyCartRepository


async def _put_cart(uow_factory, scope, lines):
    async with uow_factory() as uow:
        await uow.cart_repository.save(Cart(scope=scope, lines=dict(lines)))


async def _get_cart(uow_factory, scope):
    async with uow_factory(readonly=True) as uow:
        return await uow.cart_repository.get(scope)


@pytest.mark.asyncio
async def test_merge_sums_quantities_and_is_idempotent(uow_factory):
    anon = build("acme", device_id="dev-1")
    user = build("acme", user_id="u1")
    await _put_cart(uow_factory, anon, {"X": 2})
    await _put_cart(uow_factory, user, {"X": 1, "Y": 4})

    svc = CartMergeService(uow_factory)
    first = await svc.merge("acme", "u1", "dev-1")
    assert first.merged is True
    assert first.reason == CartMergeService.MERGED
    assert first.cart.lines == {"X": 3, "Y": 4}
    assert await _get_cart(uow_factory, anon) is None

    # 同一设备再次带着新的匿名购物车登录，也不会二次合并
    await _put_cart(uow_factory, anon, {"X": 2})
    second = await svc.merge("acme", "u1", "dev-1")
    assert second.merged is False
    assert second.reason == CartMergeService.ALREADY_MERGED
    stored = await _get_cart(uow_factory, user)
    assert stored.lines == {"X": 3, "Y": 4}


@pytest.mark.asyncio
async def test_merge_copies_into_missing_user_cart(uow_factory):
    await _put_cart(uow_factory, build("acme", device_id="dev-2"), {"Z": 1})

    outcome = await CartMergeService(uow_factory).merge({"id": "acme"}, {"id": "u2"}, "dev-2")
    assert outcome.merged
    assert (await _get_cart(uow_factory, build("acme", user_id="u2"))).lines == {"Z": 1}


@pytest.mark.asyncio
async def test_merge_without_anonymous_cart_leaves_no_marker(uow_factory):
    svc = CartMergeService(uow_factory)
    outcome = await svc.merge("acme", "u3", "dev-3")
    assert outcome.reason == CartMergeService.NOTHING_TO_MERGE

    async with uow_factory(readonly=True) as uow:
        assert await uow.cart_repository.get_merge_marker("acme", "u3") is None

    # 之后出现的访客购物车仍可合并
    await _put_cart(uow_factory, build("acme", device_id="dev-3"), {"X": 1})
    assert (await svc.merge("acme", "u3", "dev-3")).merged


@pytest.mark.asyncio
async def test_concurrent_merges_apply_once(uow_factory):
    anon = build("acme", device_id="dev-8")
    user = build("acme", user_id="u8")
    await _put_cart(uow_factory, anon, {"X": 2})
    await _put_cart(uow_factory, user, {"X": 1})

    svc = CartMergeService(uow_factory)
    outcomes = await asyncio.gather(svc.merge("acme", "u8", "dev-8"), svc.merge("acme", "u8", "dev-8"))

    assert sorted(o.reason for o in outcomes) == [CartMergeService.ALREADY_MERGED, CartMergeService.MERGED]
    assert (await _get_cart(uow_factory, user)).lines == {"X": 3}
    assert await _get_cart(uow_factory, anon) is None


@pytest.mark.asyncio
async def test_failed_merge_rolls_back_and_retry_converges(uow_factory, monkeypatch):
    anon = build("acme", device_id="dev-9")
    user = build("acme", user_id="u9")
    await _put_cart(uow_factory, anon, {"X": 2})
    await _put_cart(uow_factory, user, {"X": 1})

    async def broken_delete(self, scope):
        raise RuntimeError("database went away")

    with monkeypatch.context() as m:
        m.setattr(SQLAlchemyCartRepository, "delete", broken_delete)
        with pytest.raises(RuntimeError):
            await CartMergeService(uow_factory).merge("acme", "u9", "dev-9")

    # 整个事务回滚：匿名购物车、用户购物车和合并标记都保持原样
    assert (await _get_cart(uow_factory, anon)).lines == {"X": 2}
    assert (await _get_cart(uow_factory, user)).lines == {"X": 1}
    async with uow_factory(readonly=True) as uow:
        assert await uow.cart_repository.get_merge_marker("acme", "u9") is None

    retry = await CartMergeService(uow_factory).merge("acme", "u9", "dev-9")
    assert retry.merged is True
    assert (await _get_cart(uow_factory, user)).lines == {"X": 3}
    assert await _get_cart(uow_factory, anon) is None


@pytest.mark.asyncio
async def test_pending_scope_is_never_merged(uow_factory):
    pending = build("acme")
    await _put_cart(uow_factory, pending, {"X": 5})

    outcome = await CartMergeService(uow_factory).merge("acme", "u4", None)
    assert outcome.merged is False
    assert outcome.reason == CartMergeService.PENDING_SOURCE
    assert (await _get_cart(uow_factory, pending)).lines == {"X": 5}


@pytest.mark.asyncio
async def test_merge_is_partitioned_by_tenant(uow_factory):
    await _put_cart(uow_factory, build("acme", device_id="dev-5"), {"X": 1})
    await _put_cart(uow_factory, build("globex", device_id="dev-5"), {"Y": 1})

    svc = CartMergeService(uow_factory)
    assert (await svc.merge("acme", "u5", "dev-5")).merged
    assert (await svc.merge("globex", "u5", "dev-5")).merged
    assert (await _get_cart(uow_factory, build("acme", user_id="u5"))).lines == {"X": 1}
    assert (await _get_cart(uow_factory, build("globex", user_id="u5"))).lines == {"Y": 1}


@pytest.mark.asyncio
async def test_merge_requires_user():
    with pytest.raises(DomainValidationException):
        await CartMergeService(uow_factory=None).merge("acme", None, "dev-1")


@pytest.mark.asyncio
async def test_session_login_rebinds_active_scope(uow_factory):
    await _put_cart(uow_factory, build("acme", device_id="dev-6"), {"X": 2})
    session = CartSession.guest("dev-6", "acme", CartMergeService(uow_factory))
    assert session.is_guest
    assert session.active_scope.key == "acme::anon:dev-6"

    outcome = await session.on_login("u6")
    assert outcome.merged
    assert session.state is CartSessionState.USER
    assert session.active_scope.key == "acme::u6"

    again = await session.on_login("u6")
    assert again.merged is False
    assert again.reason == CartMergeService.ALREADY_MERGED


@pytest.mark.asyncio
async def test_session_rejects_switching_user(uow_factory):
    session = CartSession.for_identity(UserIdentity("u7", "dev-7"), "acme", CartMergeService(uow_factory))
    assert session.state is CartSessionState.USER
    with pytest.raises(DomainValidationException):
        await session.on_login("someone-else")
