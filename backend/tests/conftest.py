# tests/conftest.py — Shared test fixtures
import os
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["APP_URL"] = "http://board.test"

from models import Base, User, PullRequest, DEFAULT_PREFERENCES  # noqa: E402
from auth import AuthService, token_service  # noqa: E402
from config import SESSION_COOKIE_NAME  # noqa: E402
from database import get_db_session  # noqa: E402
from main import app  # noqa: E402


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.state.context.cache.clear()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    app.state.context.cache.clear()


async def _make_user(db_session, email: str, name: str, password: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        name=name,
        password_hash=AuthService.hash_password(password),
        is_verified=True,
        preferences=dict(DEFAULT_PREFERENCES),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a test user"""
    return await _make_user(db_session, "testuser@prboard.dev", "Test User", "TestPassword123")


@pytest_asyncio.fixture
async def other_user(db_session):
    """A second, unrelated account"""
    return await _make_user(db_session, "other@prboard.dev", "Other User", "OtherPassword123")


def get_session_token(user: User) -> str:
    return token_service.issue(user.id, user.email)


def authenticate(client: AsyncClient, user: User) -> None:
    """Make every following request on ``client`` act as ``user``."""
    client.cookies.clear()
    client.cookies.set(SESSION_COOKIE_NAME, get_session_token(user))


async def create_pr_record(db_session, user: User, **overrides) -> PullRequest:
    fields = {
        "title": "Add retry to payment webhook",
        "category": "project",
        "project": "Payments",
        "author": "alice",
        "status": "initial",
        "priority": "medium",
        "links": [],
    }
    fields.update(overrides)
    pr = PullRequest(user_id=user.id, version=1, **fields)
    db_session.add(pr)
    await db_session.commit()
    await db_session.refresh(pr)
    return pr


def pr_payload(**overrides) -> dict:
    body = {
        "title": "Add retry to payment webhook",
        "category": "project",
        "project": "Payments",
        "author": "alice",
        "priority": "high",
        "links": [{"url": "https://git.example.com/pr/1", "label": "PR #1"}],
    }
    body.update(overrides)
    return body
