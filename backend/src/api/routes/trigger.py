"""
Trigger API Routes

GET|POST /api/v1/trigger/{token} executes the callback behind a public
trigger link:

1. Resolve the callback by token (404 unknown, 403 inactive)
2. Call the callback URL
3. Record a callback log row
4. Schedule notification fan-out as a background task

Fan-out runs after the response is sent, so a slow Slack or push service
never delays the caller.
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_callback_invoker, get_notification_orchestrator
from src.database import get_db
from src.models.notification import TriggerOutcomeEvent
from src.notifications.service import NotificationOrchestrator
from src.observability.metrics import callback_triggers_total
from src.repositories.callback_repository import CallbackRepository
from src.services.callback_invoker import CallbackInvoker, InvocationResult

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/trigger", tags=["trigger"])


async def get_callback_repository(session: AsyncSession = Depends(get_db)) -> CallbackRepository:
    """Get callback repository instance."""
    return CallbackRepository(session)


def _log_details(result: InvocationResult) -> str:
    if result.success:
        return f"Status: {result.status_code}, Response time: {result.response_time}ms"
    return result.error or "Unknown error"


@router.api_route("/{token}", methods=["GET", "POST"])
async def trigger_callback(
    background_tasks: BackgroundTasks,
    token: str = Path(..., min_length=1, description="Public trigger token"),
    repository: CallbackRepository = Depends(get_callback_repository),
    invoker: CallbackInvoker = Depends(get_callback_invoker),
    orchestrator: NotificationOrchestrator = Depends(get_notification_orchestrator),
):
    """
    Execute a callback by its trigger token.

    Returns 200 with the callback's status and timing, or 502 when the
    callback URL failed. Notifications go out either way.
    """
    callback = await repository.get_by_trigger_token(token)
    if callback is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Callback not found")
    if not callback.active_status:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Callback is inactive")

    result = await invoker.invoke(callback.callback_url)
    details = _log_details(result)
    event_label = "Callback triggered" if result.success else "Callback failed"

    log = await repository.create_log(
        callback,
        event=event_label,
        success=result.success,
        details=details,
        status_code=result.status_code,
        response_time=result.response_time,
    )

    callback_triggers_total.labels(outcome="success" if result.success else "failure").inc()
    logger.info(
        event_label,
        callback_id=str(callback.id),
        user_id=str(callback.user_id),
        status_code=result.status_code,
        response_time=result.response_time,
    )

    event = TriggerOutcomeEvent(
        callback_id=callback.id,
        callback_name=callback.name,
        callback_url=callback.callback_url,
        success=result.success,
        status_code=result.status_code,
        response_time=result.response_time,
        error=result.error,
        details=details,
        triggered_at=log.created_at,
        user_id=callback.user_id,
        user_email=callback.user.email,
    )
    background_tasks.add_task(orchestrator.dispatch, event)

    if result.success:
        return {
            "message": "Callback executed successfully",
            "status_code": result.status_code,
            "response_time": result.response_time,
        }

    # A returned Response bypasses the injected BackgroundTasks unless attached
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "Failed to execute callback", "details": details},
        background=background_tasks,
    )
