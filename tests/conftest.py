"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# 引擎在导入时创建但不连接；测试用例使用各自的临时库
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite://")

import asyncio  # noqa: E402
from typing import List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from application.dtos.payments import ProcessorRefund, ProcessorRefundRequest  # noqa: E402
from domain.order.entity import Order, OrderItem, Product  # noqa: E402
from infrastructure.database import create_engine, create_session_factory, create_tables  # noqa: E402
from infrastructure.locks import InProcessOrderLocks  # noqa: E402
from infrastructure.unit_of_work import sqlalchemy_uow_factory  # noqa: E402


class StubProcessor:
    """Records every refund request; behaviour is tuned per test."""

    provider = "stub"

    def __init__(self) -> None:
        self.requests: List[ProcessorRefundRequest] = []
        self.status = "succeeded"
        self.error: Optional[Exception] = None
        self.delay = 0.0

    async def create_refund(self, req: ProcessorRefundRequest) -> ProcessorRefund:
        self.requests.append(req)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProcessorRefund(
            refund_id=f"re_{len(self.requests)}",
            status=self.status,
            amount_cents=req.amount_cents,
            provider=self.provider,
        )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow_factory(db_engine):
    return sqlalchemy_uow_factory(create_session_factory(db_engine))


@pytest.fixture
def processor():
    return StubProcessor()


@pytest.fixture
def locks():
    return InProcessOrderLocks(blocking_timeout=0)


def sample_order(order_id: str = "ord_1", **overrides) -> Order:
    """A 2×3000 + B 1×4000 = 10000 cents, paid through Stripe."""
    values = dict(
        id=order_id,
        order_number=f"N-{order_id}",
        tenant_key="acme",
        user_id="u1",
        currency="usd",
        total_cents=10000,
        payment_ref="pi_123",
        items=[
            OrderItem(item_id="A", product_id="prod_a", unit_price_cents=3000, quantity=2),
            OrderItem(item_id="B", product_id="prod_b", unit_price_cents=4000, quantity=1),
        ],
    )
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def seed_order(uow_factory):
    async def _seed(order: Optional[Order] = None) -> Order:
        order = order or sample_order()
        async with uow_factory() as uow:
            await uow.order_repository.add(order)
        return order

    return _seed


@pytest.fixture
def seed_product(uow_factory):
    async def _seed(product_id: str, tenant_key: Optional[str] = "acme", *, archived: bool = False) -> Product:
        product = Product(
            id=product_id,
            name=product_id.upper(),
            price_cents=1000,
            tenant_key=tenant_key,
            is_archived=archived,
        )
        async with uow_factory() as uow:
            await uow.product_repository.add(product)
        return product

    return _seed


@pytest.fixture
def make_order():
    return sample_order
