"""Pytest fixtures for remediation workflow tests."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.app import app, limiter
from src.config import settings
from src.database.base import Base
from src.database.session import get_db
from src.models.enums import ActorRole, OrderStatus, ReturnStatus
from src.models.order import Order
from src.models.return_request import ReturnRequest
from src.modules.identity.auth import Actor
from src.modules.workflow.registry import build_status_registry

# Use SQLite for lightweight in-process testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock for services; tests move it forward explicitly."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def make_actor(role: ActorRole = ActorRole.CUSTOMER, name: str = "Test User") -> Actor:
    actor_id = uuid.uuid4()
    return Actor(
        id=actor_id,
        name=name,
        email=f"{actor_id.hex[:8]}@example.com",
        role=role,
    )


def auth_headers(actor: Actor) -> dict[str, str]:
    token = jwt.encode(
        {
            "sub": str(actor.id),
            "email": actor.email,
            "name": actor.name,
            "role": actor.role.value,
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_test_engine):
    return async_sessionmaker(async_test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry():
    return build_status_registry()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ---------------------------------------------------------------------------
# Actors and collaborator records
# ---------------------------------------------------------------------------


@pytest.fixture
def customer() -> Actor:
    return make_actor(ActorRole.CUSTOMER, "Dana Customer")


@pytest.fixture
def other_customer() -> Actor:
    return make_actor(ActorRole.CUSTOMER, "Other Customer")


@pytest.fixture
def admin() -> Actor:
    return make_actor(ActorRole.ADMIN, "Sam Support")


async def create_order(
    session: AsyncSession,
    customer_id: uuid.UUID,
    total_amount: Decimal = Decimal("100.00"),
    items: list[dict] | None = None,
    status: OrderStatus = OrderStatus.DELIVERED,
) -> Order:
    order = Order(
        id=uuid.uuid4(),
        order_number=f"ORD-{uuid.uuid4().hex[:8].upper()}",
        customer_id=customer_id,
        status=status,
        total_amount=total_amount,
        currency="USD",
        items=items
        if items is not None
        else [
            {"product_id": "SKU-1", "name": "Kettle", "quantity": 1, "price": "60.00"},
            {"product_id": "SKU-2", "name": "Mug", "quantity": 2, "price": "20.00"},
        ],
        delivery_address="12 Harbour Road",
        city="Porto",
        postal_code="4000-001",
        phone="+351 555 0100",
    )
    session.add(order)
    await session.commit()
    return order


async def create_return(
    session: AsyncSession,
    order: Order,
    status: ReturnStatus = ReturnStatus.INSPECTION_PASSED,
) -> ReturnRequest:
    return_request = ReturnRequest(
        id=uuid.uuid4(),
        return_number=f"RET-{uuid.uuid4().hex[:8].upper()}",
        order_id=order.id,
        customer_id=order.customer_id,
        status=status,
    )
    session.add(return_request)
    await session.commit()
    return return_request


@pytest_asyncio.fixture
async def order(async_test_session, customer) -> Order:
    return await create_order(async_test_session, customer.id)


@pytest_asyncio.fixture
async def return_request(async_test_session, order) -> ReturnRequest:
    return await create_return(async_test_session, order)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the app; each request gets its own unit of work."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
