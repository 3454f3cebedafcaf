"""
Callback Repository

Looks up callbacks by trigger token and records the outcome of each trigger.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.orm.models import CallbackLogORM, CallbackORM


class CallbackRepository:
    """Repository for callbacks and their trigger logs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_trigger_token(self, token: str) -> Optional[CallbackORM]:
        """
        Get a callback (with its owner loaded) by trigger token.

        Args:
            token: Public trigger token

        Returns:
            CallbackORM or None if no callback uses the token
        """
        stmt = select(CallbackORM).where(CallbackORM.trigger_token == token)
        result = await self.session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def create_log(
        self,
        callback: CallbackORM,
        event: str,
        success: bool,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
        response_time: Optional[int] = None,
    ) -> CallbackLogORM:
        """
        Persist the outcome of a trigger execution.

        Args:
            callback: Callback that was triggered
            event: Short event label ("Callback triggered" / "Callback failed")
            success: Whether the callback URL answered with a 2xx
            details: Free-text details
            status_code: HTTP status returned by the callback URL
            response_time: Round trip in milliseconds

        Returns:
            Created CallbackLogORM
        """
        log = CallbackLogORM(
            callback_id=callback.id,
            event=event,
            details=details,
            success=success,
            status_code=status_code,
            response_time=response_time,
        )

        self.session.add(log)
        await self.session.commit()
        await self.session.refresh(log)

        return log
