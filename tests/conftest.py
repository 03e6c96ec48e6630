# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Settings come from the environment; set them before any app import
# - Every test gets a fresh in-memory SQLite database (StaticPool, so all
#   sessions share the one connection)
# - Services are exercised with the `db` session; HTTP tests go through
#   `client`, whose get_db is overridden onto the same database
# ---------------------------------------------------------------------

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.roles import Role
from app.core.security import create_access_token
from app.db.base import Base
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.medicine_schemas import MedicineCreate
from app.services.inventory.medicine_service import MedicineService

from main import app as fastapi_app


PASSWORD = "Pharmacy123"


# ---------- Database ----------
@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------- Users ----------
async def _make_user(db: AsyncSession, role: Role, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        name=name,
        email=f"{role.value}.{uuid.uuid4().hex[:6]}@holyrosary.org",
        role=role.value,
        is_active=True,
    )
    user.set_password(PASSWORD)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def make_user(db):
    async def factory(role: Role, name: str) -> User:
        return await _make_user(db, role, name)

    return factory


@pytest_asyncio.fixture
async def store_officer(db):
    return await _make_user(db, Role.STORE_OFFICER, "Store Officer")


@pytest_asyncio.fixture
async def ipp_user(db):
    return await _make_user(db, Role.IPP, "IPP Pharmacist")


@pytest_asyncio.fixture
async def dispensary_user(db):
    return await _make_user(db, Role.DISPENSARY, "Dispensary Pharmacist")


@pytest_asyncio.fixture
async def other_user(db):
    return await _make_user(db, Role.OTHER, "Ward Nurse")


# ---------- Stock ----------
@pytest.fixture
def make_medicine(db, store_officer):
    async def factory(quantity: int = 100, name: str = "Paracetamol 500mg", **kwargs):
        data = MedicineCreate(
            name=name,
            generic_name=kwargs.pop("generic_name", "Paracetamol"),
            quantity=quantity,
            buy_price=kwargs.pop("buy_price", Decimal("5.00")),
            selling_price=kwargs.pop("selling_price", Decimal("10.00")),
            **kwargs,
        )
        return await MedicineService.create_medicine(db, data, store_officer)

    return factory


@pytest_asyncio.fixture
async def medicine(make_medicine):
    return await make_medicine(quantity=100)


# ---------- HTTP ----------
@pytest.fixture
def auth_headers():
    def build(user: User) -> dict:
        token = create_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.rollback()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
