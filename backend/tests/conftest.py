"""
Pytest configuration and fixtures for backend tests.

Provides shared fixtures for database sessions, authentication, and test clients.
"""

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import src.orm.models  # noqa: F401
from src.api.dependencies import get_notification_orchestrator, get_realtime_registry
from src.api.main import app
from src.auth.token_service import TokenService
from src.config import settings
from src.database import Base, get_db
from src.models.notification import UserTier
from src.notifications.push_client import PushClient
from src.notifications.realtime import RealtimeRegistry
from src.notifications.service import NotificationOrchestrator
from src.notifications.slack_client import SlackClient
from src.orm.models import CallbackORM, User
from src.repositories.notification_repository import notification_repository_factory

# =============================
# Database Fixtures
# =============================


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    Create test database engine.

    Uses a per-test SQLite file so that several sessions (one per repository
    scope) see the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide database session for tests.

    Each test gets a fresh session that's rolled back after the test.
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository_factory(session_maker):
    """Repository factory opening its own session per use, as in production."""
    return notification_repository_factory(session_maker)


@pytest.fixture
def create_user(db_session):
    """
    Factory fixture inserting a user.

    Example:
        ```python
        user = await create_user(tier=UserTier.PRO)
        ```
    """

    async def _create(tier: UserTier = UserTier.FREE, user_id: UUID | None = None) -> User:
        user_id = user_id or uuid4()
        user = User(
            id=user_id,
            username=f"user-{user_id.hex[:8]}",
            email=f"{user_id.hex[:8]}@example.com",
            password_hash="not-a-real-hash",
            tier=tier.value,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def create_callback(db_session):
    """Factory fixture inserting a callback owned by a user."""

    async def _create(
        user: User,
        callback_url: str = "https://api.example.com/hook",
        active: bool = True,
        name: str = "Deploy hook",
    ) -> CallbackORM:
        callback = CallbackORM(
            user_id=user.id,
            name=name,
            callback_url=callback_url,
            trigger_token=uuid4().hex,
            active_status=active,
        )
        db_session.add(callback)
        await db_session.commit()
        return callback

    return _create


# =============================
# Notification Fixtures
# =============================


@pytest.fixture
def push_client() -> PushClient:
    """Push client with placeholder VAPID credentials; tests patch pywebpush."""
    return PushClient(
        vapid_private_key="test-private-key",
        vapid_claims_email="mailto:admin@example.com",
        test_mode=False,
    )


@pytest.fixture
def slack_requests() -> list[httpx.Request]:
    """Requests captured by the Slack mock transport."""
    return []


@pytest.fixture
def slack_client(slack_requests) -> SlackClient:
    """Slack client whose transport records requests and answers 200 ok."""

    def handler(request: httpx.Request) -> httpx.Response:
        slack_requests.append(request)
        return httpx.Response(200, text="ok")

    return SlackClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def realtime_registry() -> RealtimeRegistry:
    return RealtimeRegistry(max_queue_size=10)


@pytest.fixture
def orchestrator(repository_factory, push_client, slack_client, realtime_registry):
    """Orchestrator wired to the test database and mock transports."""
    return NotificationOrchestrator(
        repository_factory=repository_factory,
        push_client=push_client,
        slack_client=slack_client,
        realtime_registry=realtime_registry,
    )


@pytest_asyncio.fixture(scope="function")
async def async_client(
    session_maker, repository_factory, push_client, slack_client
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide async HTTP client for API testing.

    Overrides the database dependency and the orchestrator so both use the
    test database.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    def override_get_orchestrator(
        registry: RealtimeRegistry = Depends(get_realtime_registry),
    ) -> NotificationOrchestrator:
        return NotificationOrchestrator(
            repository_factory=repository_factory,
            push_client=push_client,
            slack_client=slack_client,
            realtime_registry=registry,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_orchestrator] = override_get_orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# =============================
# Authentication Fixtures
# =============================


@pytest.fixture
def token_service() -> TokenService:
    """
    Provide TokenService instance for tests.

    Uses settings from config for consistency with production behavior.
    """
    return TokenService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        access_token_expire_minutes=settings.jwt_access_token_expire_minutes,
    )


@pytest.fixture
def auth_headers_for(token_service):
    """
    Build Authorization headers for a user.

    Example:
        ```python
        async def test_get_settings(async_client, create_user, auth_headers_for):
            user = await create_user()
            response = await async_client.get(
                "/api/v1/notifications/settings", headers=auth_headers_for(user)
            )
        ```
    """

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_service.create_access_token(user.id)}"}

    return _headers


# =============================
# Pytest Configuration
# =============================


def pytest_configure(config):
    """
    Configure pytest with custom markers.
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
