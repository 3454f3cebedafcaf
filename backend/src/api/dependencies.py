"""
FastAPI Dependencies

Provides dependency injection for authentication, authorization and the
notification services used by the routes.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.token_service import TokenService
from src.config import settings
from src.database import get_db
from src.models.notification import UserTier
from src.notifications.exceptions import AuthenticationError
from src.notifications.realtime import RealtimeRegistry
from src.notifications.service import NotificationOrchestrator
from src.notifications.slack_client import SlackClient
from src.repositories.notification_repository import NotificationRepository
from src.repositories.user_repository import UserRepository
from src.services.callback_invoker import CallbackInvoker

# Missing headers are reported through AuthenticationError, not HTTPBearer's 403
security = HTTPBearer(auto_error=False)

# Token service instance (uses settings for configuration)
token_service = TokenService(
    secret_key=settings.jwt_secret_key,
    algorithm=settings.jwt_algorithm,
    access_token_expire_minutes=settings.jwt_access_token_expire_minutes,
)


def _user_id_from_token(token: Optional[str]) -> UUID:
    if not token:
        raise AuthenticationError("Not authenticated")

    user_id = token_service.verify_access_token(token)
    if user_id is None:
        raise AuthenticationError("Invalid authentication credentials")

    return user_id


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UUID:
    """
    Extract and validate the current user ID from the Authorization header.

    Raises:
        AuthenticationError: Missing, invalid or expired token (mapped to 401)

    Example:
        ```python
        @router.get("/settings")
        async def get_settings(user_id: UUID = Depends(get_current_user_id)):
            return {"user_id": user_id}
        ```
    """
    return _user_id_from_token(credentials.credentials if credentials else None)


async def get_stream_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token: Optional[str] = Query(default=None, description="Access token for EventSource clients"),
) -> UUID:
    """
    Authenticate a realtime stream request.

    Browsers' EventSource cannot set headers, so the access token may also be
    passed as ``?token=``. The header wins when both are present.
    """
    return _user_id_from_token(credentials.credentials if credentials else token)


async def get_current_user(
    user_id: UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Get the full user record for the authenticated user.

    Raises:
        HTTPException: 404 if user not found
    """
    user = await UserRepository(db).get_user(user_id)

    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return user


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Restrict a route to ADMIN tier users (403 otherwise)."""
    if user["tier"] != UserTier.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


async def get_notification_repository(
    db: AsyncSession = Depends(get_db),
) -> NotificationRepository:
    return NotificationRepository(db)


def get_realtime_registry(request: Request) -> RealtimeRegistry:
    """Process-wide registry created with the application."""
    return request.app.state.realtime_registry


def get_slack_client() -> SlackClient:
    return SlackClient(timeout=settings.slack_timeout_seconds)


def get_notification_orchestrator(request: Request) -> NotificationOrchestrator:
    """
    Process-wide orchestrator created with the application.

    Built once on the global session factory rather than per request:
    dispatch runs as a background task after the response, when the request
    session is already closed.
    """
    orchestrator = request.app.state.notification_orchestrator

    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not initialized",
        )

    return orchestrator


def get_callback_invoker() -> CallbackInvoker:
    return CallbackInvoker(timeout=settings.trigger_timeout_seconds)
