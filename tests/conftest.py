"""
Shared test fixtures for the PolicySign test suite.

Sets up a file-backed async SQLite database (row locking is emulated with
BEGIN IMMEDIATE, which needs a real file shared between connections),
overrides FastAPI dependencies, and provides pre-authenticated HTTP
clients for the admin and agent roles.
"""

import os
import tempfile
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# ---- Environment overrides MUST come before any app imports ----
TEST_DB_DIR = tempfile.mkdtemp(prefix="policysign-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(TEST_DB_DIR, 'test.db')}"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests"
os.environ["FIELD_ENCRYPTION_KEY"] = "test-encryption-key-for-unit-tests"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["ENVIRONMENT"] = "test"

import policysign.models  # noqa: E402,F401
from policysign.database import Base, build_engine, get_db  # noqa: E402
from policysign.dependencies import create_access_token  # noqa: E402
from policysign.main import app  # noqa: E402

# ---------------------------------------------------------------------------
# Async engine & session factory for the test database
# ---------------------------------------------------------------------------
test_engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create all tables before each test, drop them afterward."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# DB session fixtures
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Provide a DB session for direct service-layer tests.

    SQLite takes the write lock when a transaction begins, so commit or roll
    back before touching the database through another session or the client.
    """
    async with TestSession() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker:
    return TestSession


# ---------------------------------------------------------------------------
# Dependency override
# ---------------------------------------------------------------------------
async def _override_get_db():
    async with TestSession() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = _override_get_db


# ---------------------------------------------------------------------------
# HTTP client fixtures
# ---------------------------------------------------------------------------
def _auth_header(role: str) -> dict[str, str]:
    token = create_access_token(str(uuid.uuid4()), role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client() -> AsyncClient:
    """Unauthenticated httpx async client wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client() -> AsyncClient:
    """AsyncClient pre-authenticated as an admin."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers.update(_auth_header("admin"))
        yield ac


@pytest_asyncio.fixture
async def agent_client() -> AsyncClient:
    """AsyncClient pre-authenticated as an insurance agent."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers.update(_auth_header("agent"))
        yield ac

