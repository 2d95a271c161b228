"""Shared test fixtures — async SQLite in-memory DB, test client and tenant builders."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import customsdesk.models  # noqa: E402, F401
from customsdesk.core.database import get_session  # noqa: E402
from customsdesk.main import app  # noqa: E402
from customsdesk.models.company import (  # noqa: E402
    BrokerCompanyCreate,
    ClientCompanyCreate,
    Company,
)
from customsdesk.models.subscription import SubscriptionPlanCreate  # noqa: E402
from customsdesk.models.user import Role, UserCreate  # noqa: E402
from customsdesk.services import companies, subscriptions, users  # noqa: E402
from customsdesk.services.hierarchy import Principal  # noqa: E402

PASSWORD = "password123"


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Service-level builders ───────────────────────────────────

@pytest.fixture
async def super_admin(session) -> Principal:
    user = await users.bootstrap_super_admin(
        session, email="root@customsdesk.com", username="root", password=PASSWORD,
    )
    return Principal.from_user(user, None)


@pytest.fixture
def make_broker(session, super_admin):
    """Factory: a broker on a fresh plan. Returns the broker id."""

    async def _make(
        name: str,
        max_staff: int = 3,
        max_clients: int = 2,
        custom_max_staff: int | None = None,
        custom_max_clients: int | None = None,
    ) -> uuid.UUID:
        plan = await subscriptions.create_plan(session, super_admin, SubscriptionPlanCreate(
            name=f"{name} plan", max_staff=max_staff, max_clients=max_clients,
        ))
        broker = await companies.create_broker(session, super_admin, BrokerCompanyCreate(
            name=name,
            plan_id=plan.id,
            custom_max_staff=custom_max_staff,
            custom_max_clients=custom_max_clients,
        ))
        return broker.id

    return _make


@pytest.fixture
def make_client(session, super_admin):
    """Factory: a client company under a broker. Returns the client id."""

    async def _make(name: str, broker_id: uuid.UUID, actor: Principal | None = None) -> uuid.UUID:
        client = await companies.create_client(session, actor or super_admin, ClientCompanyCreate(
            name=name, parent_broker_id=broker_id,
        ))
        return client.id

    return _make


@pytest.fixture
def make_user(session, super_admin):
    """Factory: a user in a company. Returns its Principal."""

    async def _make(
        email: str, role: Role, company_id: uuid.UUID, actor: Principal | None = None,
    ) -> Principal:
        user = await users.create_user(session, actor or super_admin, UserCreate(
            email=email, username=email, password=PASSWORD, role=role, company_id=company_id,
        ))
        company = await session.get(Company, company_id)
        return Principal.from_user(user, company)

    return _make


@pytest.fixture
async def tenant(make_broker, make_client, make_user) -> SimpleNamespace:
    """One broker (3 staff / 2 clients) with an admin, a staff user, a client and its user."""
    broker_id = await make_broker("Acme Customs")
    admin = await make_user("admin@acme.com", Role.BROKER_ADMIN, broker_id)
    staff = await make_user("staff@acme.com", Role.BROKER_USER, broker_id, actor=admin)
    client_id = await make_client("Globex Imports", broker_id, actor=admin)
    client_user = await make_user("buyer@globex.com", Role.CLIENT_USER, client_id, actor=admin)
    return SimpleNamespace(
        broker_id=broker_id,
        admin=admin,
        staff=staff,
        client_id=client_id,
        client_user=client_user,
    )


@pytest.fixture
async def rival(make_broker, make_client, make_user) -> SimpleNamespace:
    """A second, unrelated broker with its own admin and client."""
    broker_id = await make_broker("Initech Brokerage")
    admin = await make_user("admin@initech.com", Role.BROKER_ADMIN, broker_id)
    client_id = await make_client("Umbrella Trading", broker_id, actor=admin)
    return SimpleNamespace(broker_id=broker_id, admin=admin, client_id=client_id)
