"""
Unit tests for the trigger route (GET|POST /api/v1/trigger/{token}).

The callback URL is served by httpx.MockTransport and the orchestrator is
replaced with a mock, so the tests check the log row and the single
scheduled dispatch.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy import select

from src.api.dependencies import get_callback_invoker, get_notification_orchestrator
from src.api.main import app
from src.orm.models import CallbackLogORM
from src.services.callback_invoker import CallbackInvoker


@pytest.fixture
def mock_orchestrator():
    """Orchestrator double recording dispatch calls."""
    orchestrator = MagicMock()
    orchestrator.dispatch = AsyncMock(return_value={})
    return orchestrator


@pytest.fixture
def callback_status():
    """Status code the mocked callback URL answers with (mutable per test)."""
    return {"code": 200}


@pytest.fixture
def trigger_client(async_client, mock_orchestrator, callback_status):
    """Async client with the invoker and orchestrator overridden."""
    invoker = CallbackInvoker(
        transport=httpx.MockTransport(lambda request: httpx.Response(callback_status["code"]))
    )
    app.dependency_overrides[get_callback_invoker] = lambda: invoker
    app.dependency_overrides[get_notification_orchestrator] = lambda: mock_orchestrator
    return async_client


async def _logs(session_maker):
    async with session_maker() as session:
        result = await session.execute(select(CallbackLogORM))
        return result.scalars().all()


class TestTriggerCallback:
    """Tests for trigger_callback."""

    @pytest.mark.asyncio
    async def test_unknown_token_is_404(self, trigger_client, mock_orchestrator):
        response = await trigger_client.get("/api/v1/trigger/does-not-exist")

        assert response.status_code == 404
        mock_orchestrator.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_inactive_callback_is_403(self, trigger_client, create_user, create_callback):
        user = await create_user()
        callback = await create_callback(user, active=False)

        response = await trigger_client.get(f"/api/v1/trigger/{callback.trigger_token}")

        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_success_logs_and_schedules_one_dispatch(
        self,
        trigger_client,
        mock_orchestrator,
        create_user,
        create_callback,
        session_maker,
        method,
    ):
        """Test the happy path: 200, one log row, one dispatch with the outcome."""
        user = await create_user()
        callback = await create_callback(user)

        response = await trigger_client.request(method, f"/api/v1/trigger/{callback.trigger_token}")

        assert response.status_code == 200
        data = response.json()
        assert data["status_code"] == 200
        assert data["response_time"] >= 0

        logs = await _logs(session_maker)
        assert len(logs) == 1
        assert logs[0].event == "Callback triggered"
        assert logs[0].success is True

        mock_orchestrator.dispatch.assert_awaited_once()
        event = mock_orchestrator.dispatch.await_args.args[0]
        assert event.callback_id == callback.id
        assert event.user_id == user.id
        assert event.user_email == user.email
        assert event.success is True

    @pytest.mark.asyncio
    async def test_failure_is_502_and_still_dispatches(
        self,
        trigger_client,
        mock_orchestrator,
        callback_status,
        create_user,
        create_callback,
        session_maker,
    ):
        """Test that a failed callback still logs and notifies."""
        callback_status["code"] = 500
        user = await create_user()
        callback = await create_callback(user)

        response = await trigger_client.post(f"/api/v1/trigger/{callback.trigger_token}")

        assert response.status_code == 502
        assert response.json() == {
            "error": "Failed to execute callback",
            "details": "HTTP 500: Internal Server Error",
        }

        logs = await _logs(session_maker)
        assert logs[0].event == "Callback failed"
        assert logs[0].success is False
        assert logs[0].status_code == 500

        mock_orchestrator.dispatch.assert_awaited_once()
        event = mock_orchestrator.dispatch.await_args.args[0]
        assert event.success is False
        assert event.error == "HTTP 500: Internal Server Error"
