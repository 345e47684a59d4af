"""
Centralized Test Configuration.
"""

import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from poscrm.app.main import app
from poscrm.app.db.session import get_db, Base
from poscrm.app.core.redis_client import get_redis
from poscrm.app.core.jwt import create_access_token
from poscrm.app.core.security import get_password_hash
import poscrm.app.core.redis_client as redis_client_module
from poscrm.app.models.user import User
from poscrm.app.models.enums import UserRole
from poscrm.app.models.product import Product
from poscrm.app.models.product_enums import ProductCategory, StockStatus

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# ----------------------------------------------------------------------
# Data fixtures
# ----------------------------------------------------------------------

async def _persist(db_session, obj):
    db_session.add(obj)
    await db_session.commit()
    await db_session.refresh(obj)
    return obj


@pytest.fixture
async def admin_user(db_session):
    return await _persist(db_session, User(
        name="Shop Admin",
        email="admin@test.com",
        hashed_password=get_password_hash("admin123"),
        role=UserRole.ADMIN,
    ))


@pytest.fixture
async def client_user(db_session):
    return await _persist(db_session, User(
        name="Marko Petrovski",
        email="marko@test.com",
        hashed_password=get_password_hash("client123"),
        role=UserRole.CLIENT,
    ))


@pytest.fixture
async def other_client(db_session):
    return await _persist(db_session, User(name="Ana Stojanovska", email="ana@test.com", role=UserRole.CLIENT))


def make_product(name, category=ProductCategory.ACCESSORIES, price="10.00", stock=10,
                 stock_status=StockStatus.ENABLED):
    return Product(
        name=name,
        category=category,
        price=Decimal(price),
        stock_quantity=stock,
        stock_status=stock_status,
    )


@pytest.fixture
async def phone(db_session):
    """Smartphone settled in EUR."""
    return await _persist(db_session, make_product("Phone X", ProductCategory.SMARTPHONES, "100.00"))


@pytest.fixture
async def accessory_a(db_session):
    return await _persist(db_session, make_product("Case A", price="10.00"))


@pytest.fixture
async def accessory_b(db_session):
    return await _persist(db_session, make_product("Glass B", price="15.00"))


@pytest.fixture
async def accessory_c(db_session):
    return await _persist(db_session, make_product("Charger C", price="30.00"))


# ----------------------------------------------------------------------
# Auth helpers
# ----------------------------------------------------------------------

def actor_for(user: User) -> dict:
    """Token payload shape produced by get_current_user."""
    return {"sub": user.email, "user_id": user.id, "role": user.role.value}


def auth_headers(user: User) -> dict:
    token = create_access_token(data=actor_for(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def client_headers(client_user):
    return auth_headers(client_user)


@pytest.fixture
def admin_actor(admin_user):
    return actor_for(admin_user)


@pytest.fixture
def client_actor(client_user):
    return actor_for(client_user)


@pytest.fixture
def headers_for():
    """Factory: bearer headers for any user."""
    return auth_headers


@pytest.fixture
def product_factory(db_session):
    """Factory: persist a product with the given fields."""
    async def _create(*args, **kwargs):
        return await _persist(db_session, make_product(*args, **kwargs))
    return _create
