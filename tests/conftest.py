"""Pytest configuration and fixtures."""

import os
import uuid
from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BROKER_URL", "memory://")
os.environ["EMAIL_BACKEND"] = "console"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from stormlink.config import settings
from stormlink.database import get_session
from stormlink.main import app
from stormlink.models import User
from stormlink.tasks.queue import JobPublisher, get_publisher


class RecordingSender:
    """Mail sender double that records deliveries and can fail on demand."""

    def __init__(self, failures: int = 0, raises: bool = False):
        self.failures = failures
        self.raises = raises
        self.calls: list[tuple[str, str]] = []
        self.sent: list[tuple[str, str]] = []

    async def send_verification_email(self, to: str, token: str) -> bool:
        self.calls.append((to, token))
        if len(self.calls) <= self.failures:
            if self.raises:
                raise ConnectionError("SMTP server unavailable")
            return False
        self.sent.append((to, token))
        return True


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        settings.database_url_test,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_publisher() -> MagicMock:
    """Publisher double that accepts every job without a broker."""
    return MagicMock(spec=JobPublisher)


@pytest.fixture
def queue_name() -> str:
    """Unique queue name; in-memory broker queues are shared process-wide."""
    return f"test_email_verification_{uuid.uuid4().hex}"


@pytest.fixture
def memory_publisher(queue_name: str):
    """Real publisher on kombu's in-memory transport."""
    publisher = JobPublisher("memory://", queue_name=queue_name, max_retries=0)
    yield publisher
    publisher.close()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
async def client(session: AsyncSession, mock_publisher: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_publisher] = lambda: mock_publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def user(session: AsyncSession) -> User:
    """Create an unverified test user."""
    user = User(email="test@example.com", name="Test User")
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def verified_user(session: AsyncSession) -> User:
    """Create a verified test user."""
    user = User(email="verified@example.com", name="Verified User", is_verified=True)
    session.add(user)
    await session.commit()
    return user
