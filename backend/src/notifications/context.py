"""
Channel Context Builder

Computes the daily statistics attached to an outcome notification: today's
trigger count, success rate and average response time for the event owner.
"Today" runs from local midnight to the next local midnight in the configured
statistics timezone.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Optional
from uuid import UUID

import pytz
import structlog

from src.models.notification import ChannelContext
from src.repositories.notification_repository import RepositoryFactory

logger = structlog.get_logger(__name__)


def day_window(as_of: datetime, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """
    Return the ``[start, end)`` bounds of the local day containing ``as_of``.

    Naive datetimes are treated as UTC. Bounds are returned in UTC so they
    compare directly with stored timestamps.
    """
    tz = pytz.timezone(tz_name)
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=UTC)

    local = as_of.astimezone(tz)
    start = tz.localize(datetime(local.year, local.month, local.day))
    next_day = local.date() + timedelta(days=1)
    end = tz.localize(datetime(next_day.year, next_day.month, next_day.day))

    return start.astimezone(UTC), end.astimezone(UTC)


def compute_success_rate(success_count: int, total: int) -> float:
    """Percentage of successful triggers; a day without triggers reports 100."""
    if total == 0:
        return 100.0
    return round(success_count / total * 100, 2)


class ChannelContextBuilder:
    """Builds ChannelContext from the trigger log store."""

    def __init__(self, repository_factory: RepositoryFactory, timezone: str = "UTC"):
        """
        Args:
            repository_factory: Yields a session-scoped NotificationRepository per use
            timezone: IANA timezone whose midnight bounds the day
        """
        self.repository_factory = repository_factory
        self.timezone = timezone

    async def build_context(self, user_id: UUID, as_of: Optional[datetime] = None) -> ChannelContext:
        """
        Compute today's statistics for a user.

        The three queries are independent reads and run concurrently, each on
        its own session.
        """
        start, end = day_window(as_of or datetime.now(UTC), self.timezone)

        total, successes, average = await asyncio.gather(
            self._count(user_id, start, end),
            self._count(user_id, start, end, success=True),
            self._average_response_time(user_id, start, end),
        )

        context = ChannelContext(
            total_triggers_today=total,
            success_rate=compute_success_rate(successes, total),
            avg_response_time_ms=average if average is not None else 0.0,
        )

        logger.debug(
            "Channel context built",
            user_id=str(user_id),
            total_triggers_today=context.total_triggers_today,
            success_rate=context.success_rate,
        )

        return context

    async def _count(
        self, user_id: UUID, start: datetime, end: datetime, success: Optional[bool] = None
    ) -> int:
        async with self.repository_factory() as repository:
            return await repository.count_logs_in_window(user_id, start, end, success=success)

    async def _average_response_time(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> Optional[float]:
        async with self.repository_factory() as repository:
            return await repository.avg_response_time_in_window(user_id, start, end)
