"""FastAPI application entry point for the WebTrigger notification service."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from src.api.routes import admin, notifications, realtime, slack, trigger
from src.config import settings
from src.database import async_session_maker
from src.notifications.exceptions import AuthenticationError
from src.notifications.realtime import RealtimeRegistry
from src.notifications.service import create_notification_orchestrator
from src.observability.logging import configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="WebTrigger Notification API",
    description="Webhook triggers with Slack, Web Push and realtime outcome notifications",
    version="0.1.0",
    debug=settings.debug,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live realtime connections of this process
app.state.realtime_registry = RealtimeRegistry(max_queue_size=settings.sse_queue_size)

# One orchestrator per process (None without a database); building it warns once
# when VAPID keys are missing
app.state.notification_orchestrator = (
    create_notification_orchestrator(
        async_session_maker, realtime_registry=app.state.realtime_registry
    )
    if async_session_maker is not None
    else None
)

app.include_router(notifications.router)
app.include_router(realtime.router)
app.include_router(slack.router)
app.include_router(admin.router)
app.include_router(trigger.router)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.on_event("startup")
async def startup_event():
    """FastAPI startup event handler."""
    if not settings.vapid_public_key:
        logger.warning("VAPID public key not configured, browsers cannot subscribe")

    logger.info(
        "Notification service started",
        environment=settings.environment,
        notification_test_mode=settings.notification_test_mode,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """
    FastAPI shutdown event handler.

    Closes every open realtime stream so clients reconnect elsewhere.
    """
    registry: RealtimeRegistry = app.state.realtime_registry
    open_connections = registry.connection_count
    await registry.close_all()
    logger.info("Realtime connections closed", count=open_connections)


@app.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint for Docker and monitoring."""
    return {
        "status": "healthy",
        "realtime_connections": app.state.realtime_registry.connection_count,
    }


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
