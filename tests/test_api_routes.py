from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from api.dependencies import (
    get_order_locks,
    get_refund_processor,
    get_session_resolver,
    get_uow_factory,
)
from application.ports.payment_gateway import PaymentOutcomeUnknownError
from core.config import settings
from domain.cart.entity import Cart
from domain.cart.scope import build
from infrastructure.security.jwt_session import JwtSessionResolver
from main import app

SECRET = "route-test-secret-0123456789abcdef"


def _bearer(sub="admin-1", **claims) -> dict:
    token = jwt.encode({"sub": sub, **claims}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


ADMIN = _bearer(roles=["super-admin"])


@pytest_asyncio.fixture
async def client(uow_factory, processor, locks):
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_session_resolver] = lambda: JwtSessionResolver(secret_key=SECRET)
    app.dependency_overrides[get_order_locks] = lambda: locks
    app.dependency_overrides[get_refund_processor] = lambda: processor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_refund_requires_admin(client, seed_order):
    await seed_order()
    body = {"orderId": "ord_1", "selections": [{"itemId": "A", "quantity": 1}]}

    resp = await client.post("/api/v1/admin/refunds", json=body)
    assert resp.status_code == 403
    assert resp.json() == {"error": "FORBIDDEN"}

    resp = await client.post("/api/v1/admin/refunds", json=body, headers=_bearer(sub="u1", role="customer"))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refund_success_is_camel_case(client, seed_order):
    await seed_order()
    resp = await client.post(
        "/api/v1/admin/refunds",
        json={
            "orderId": "ord_1",
            "selections": [{"type": "quantity", "itemId": "A", "quantity": 1}],
            "reason": "requested_by_customer",
            "notes": "wrong size",
        },
        headers=ADMIN,
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "processorRefundId": "re_1",
        "amountCents": 3000,
        "refundRecordId": 1,
    }
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_refund_engine_errors_are_flat(client, seed_order):
    await seed_order()
    resp = await client.post(
        "/api/v1/admin/refunds",
        json={"orderId": "ord_1", "selections": [{"itemId": "A", "quantity": 3}]},
        headers=ADMIN,
    )
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "INVALID_SELECTION"
    assert body["orderId"] == "ord_1"
    assert "exceeds" in body["error"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"orderId": "ord_1", "selections": [{"itemId": "A", "quantity": 0}]},
        {"orderId": "ord_1", "selections": [{"itemId": "A", "quantity": 101}]},
        {"orderId": "ord_1", "restockingFeeCents": 3001},
        {"orderId": "ord_1", "refundShippingCents": -1},
        {"orderId": "ord_1", "idempotencyKey": "short"},
        {"orderId": "ord_1", "timeoutMs": 500},
        {"orderId": "ord_1", "timeoutMs": 30001},
        {"orderId": "ord_1", "unexpected": True},
        {"selections": []},
    ],
)
async def test_refund_body_validation(client, body):
    resp = await client.post("/api/v1/admin/refunds", json=body, headers=ADMIN)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_remaining_endpoint(client, seed_order):
    await seed_order()
    await client.post(
        "/api/v1/admin/refunds",
        json={"orderId": "ord_1", "selections": [{"itemId": "B", "quantity": 1}]},
        headers=ADMIN,
    )

    resp = await client.get("/api/v1/admin/refunds/remaining", params={"orderId": "ord_1"}, headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "orderId": "ord_1",
        "remainingCents": 6000,
        "refundedTotalCents": 4000,
        "byItemId": {"A": 2, "B": 0},
        "refundedQtyByItemId": {"A": 0, "B": 1},
    }

    resp = await client.get("/api/v1/admin/refunds/remaining", params={"orderId": "nope"}, headers=ADMIN)
    assert resp.status_code == 404
    assert resp.json()["code"] == "ORDER_NOT_FOUND"
    assert resp.json()["orderId"] == "nope"


@pytest.mark.asyncio
async def test_unreconciled_listing(client, processor, seed_order):
    await seed_order()
    processor.error = PaymentOutcomeUnknownError("read timeout", provider="stub")
    resp = await client.post(
        "/api/v1/admin/refunds",
        json={"orderId": "ord_1", "selections": [{"itemId": "A", "quantity": 1}]},
        headers=ADMIN,
    )
    assert resp.status_code == 500
    assert resp.json()["code"] == "PARTIAL_COMMIT"

    resp = await client.get("/api/v1/admin/refunds/unreconciled", headers=ADMIN)
    assert resp.status_code == 200
    records = resp.json()["records"]
    assert len(records) == 1
    assert records[0]["orderId"] == "ord_1"
    assert records[0]["reconciled"] is False
    assert records[0]["status"] == "unknown"


@pytest.mark.asyncio
async def test_cart_requires_identity(client):
    resp = await client.get("/api/v1/carts/acme")
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "CartIdentityUnresolved"


@pytest.mark.asyncio
async def test_guest_cart_then_login_merge(client, seed_product):
    await seed_product("X")
    guest = {"Cookie": "ah_device_id=dev-1"}

    resp = await client.post("/api/v1/carts/acme/items", json={"product_id": "X", "quantity": 2}, headers=guest)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["scope"] == "acme::anon:dev-1"
    assert data["lines"] == [{"product_id": "X", "quantity": 2}]

    resp = await client.post("/api/v1/carts/acme/merge", headers=guest)
    assert resp.status_code == 401

    user = {**guest, **_bearer(sub="u1")}
    resp = await client.post("/api/v1/carts/acme/items", json={"product_id": "X"}, headers=user)
    assert resp.json()["data"]["scope"] == "acme::u1"

    resp = await client.post("/api/v1/carts/acme/merge", headers=user)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["merged"] is True
    assert data["active_scope"] == "acme::u1"
    assert data["cart"]["total_quantity"] == 3

    resp = await client.post("/api/v1/carts/acme/merge", headers=user)
    assert resp.json()["data"]["merged"] is False
    assert resp.json()["data"]["cart"]["total_quantity"] == 3


@pytest.mark.asyncio
async def test_cart_item_updates(client, seed_product):
    await seed_product("X")
    user = _bearer(sub="u2")

    await client.post("/api/v1/carts/acme/items", json={"product_id": "X"}, headers=user)
    resp = await client.put("/api/v1/carts/acme/items/X", json={"quantity": 4}, headers=user)
    assert resp.json()["data"]["total_quantity"] == 4

    resp = await client.delete("/api/v1/carts/acme/items/X", headers=user)
    assert resp.json()["data"]["lines"] == []

    resp = await client.post("/api/v1/carts/acme/items", json={"product_id": "missing"}, headers=user)
    assert resp.status_code == 404

    resp = await client.delete("/api/v1/carts/acme", headers=user)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_root_and_health(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["data"]["docs"] == "/docs"

    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_cart_cleanup_requires_secret_or_admin(client, monkeypatch):
    monkeypatch.setattr(settings.cart, "cleanup_secret", "cron-secret")

    resp = await client.post("/api/v1/admin/carts/cleanup")
    assert resp.status_code == 401

    resp = await client.post("/api/v1/admin/carts/cleanup", headers={"Authorization": "Bearer wrong"})
    assert resp.status_code == 401

    resp = await client.post("/api/v1/admin/carts/cleanup", headers=_bearer(sub="u1", role="customer"))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cart_cleanup_with_cron_secret(client, uow_factory, monkeypatch):
    monkeypatch.setattr(settings.cart, "cleanup_secret", "cron-secret")
    old = datetime.now(timezone.utc) - timedelta(days=settings.cart.guest_max_age_days + 1)
    async with uow_factory() as uow:
        await uow.cart_repository.save(Cart(scope=build("acme", device_id="stale"), lines={"X": 1}, updated_at=old))

    resp = await client.post(
        "/api/v1/admin/carts/cleanup",
        params={"dryRun": "true"},
        headers={"Authorization": "Bearer cron-secret"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["result"]["dryRun"] is True
    assert body["result"]["totalMatched"] == 1
    assert body["result"]["totalDeleted"] == 0

    resp = await client.post("/api/v1/admin/carts/cleanup", headers=ADMIN)
    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["totalDeleted"] == 1
    assert {r["rule"] for r in result["results"]} == {"guest", "empty", "archived_lines"}
