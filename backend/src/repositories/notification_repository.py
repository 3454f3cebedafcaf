"""
Notification Repository

Handles database operations for notification settings, push subscriptions,
user tiers and the daily trigger statistics read by the channel context
builder.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.notification import NotificationSettings, PushSubscription, UserTier
from src.orm.models import (
    CallbackLogORM,
    CallbackORM,
    NotificationSettingsORM,
    PushSubscriptionORM,
    User,
)

RepositoryFactory = Callable[[], AbstractAsyncContextManager["NotificationRepository"]]


class NotificationRepository:
    """Repository for notification database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    # =============================
    # Settings Operations
    # =============================

    async def get_notification_settings(self, user_id: UUID) -> Optional[NotificationSettings]:
        """
        Get notification settings for a user.

        Args:
            user_id: User UUID

        Returns:
            NotificationSettings model or None if never saved
        """
        # populate_existing: upserts bypass the identity map
        stmt = (
            select(NotificationSettingsORM)
            .where(NotificationSettingsORM.user_id == user_id)
            .execution_options(populate_existing=True)
        )

        result = await self.session.execute(stmt)
        settings_orm = result.scalar_one_or_none()

        if not settings_orm:
            return None

        settings_dict = dict(settings_orm.settings)
        settings_dict["user_id"] = settings_orm.user_id
        settings_dict["updated_at"] = settings_orm.updated_at

        return NotificationSettings(**settings_dict)

    async def upsert_notification_settings(
        self, user_id: UUID, settings: NotificationSettings
    ) -> NotificationSettings:
        """
        Create or replace notification settings for a user.

        Args:
            user_id: User UUID
            settings: New settings model

        Returns:
            Stored NotificationSettings model
        """
        settings_dict = settings.model_dump(exclude={"user_id", "updated_at"}, mode="json")
        now = datetime.now(UTC)

        stmt = self._insert(NotificationSettingsORM).values(
            user_id=user_id, settings=settings_dict, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"settings": stmt.excluded.settings, "updated_at": stmt.excluded.updated_at},
        )

        await self.session.execute(stmt)
        await self.session.commit()

        return settings.model_copy(update={"user_id": user_id, "updated_at": now})

    async def get_user_tier(self, user_id: UUID) -> Optional[UserTier]:
        """
        Get the subscription tier of a user.

        Returns:
            UserTier or None if the user does not exist
        """
        result = await self.session.execute(select(User.tier).where(User.id == user_id))
        tier = result.scalar_one_or_none()
        return UserTier(tier) if tier is not None else None

    # =============================
    # Push Subscription Operations
    # =============================

    async def get_push_subscription(self, user_id: UUID) -> Optional[PushSubscription]:
        """Get the push subscription for a user, if any."""
        stmt = (
            select(PushSubscriptionORM)
            .where(PushSubscriptionORM.user_id == user_id)
            .execution_options(populate_existing=True)
        )

        result = await self.session.execute(stmt)
        subscription = result.scalar_one_or_none()

        return self._orm_to_push_subscription(subscription) if subscription else None

    async def upsert_push_subscription(
        self,
        user_id: UUID,
        endpoint: str,
        p256dh_key: str,
        auth_key: str,
    ) -> PushSubscription:
        """
        Create or replace the push subscription of a user.

        A user holds one subscription; subscribing from another browser
        replaces the endpoint and keys and clears any expiry mark. The write
        is a single insert-or-update on ``user_id``, so concurrent subscribes
        for one user leave exactly one row.

        Args:
            user_id: User UUID
            endpoint: Push subscription endpoint URL
            p256dh_key: Public key for encryption
            auth_key: Authentication secret

        Returns:
            Stored PushSubscription model
        """
        now = datetime.now(UTC)

        stmt = self._insert(PushSubscriptionORM).values(
            id=uuid4(),
            user_id=user_id,
            endpoint=endpoint,
            p256dh_key=p256dh_key,
            auth_key=auth_key,
            expired_at=None,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                "endpoint": stmt.excluded.endpoint,
                "p256dh_key": stmt.excluded.p256dh_key,
                "auth_key": stmt.excluded.auth_key,
                "expired_at": None,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        await self.session.execute(stmt)
        await self.session.commit()

        # Re-read past the identity map, the row may have been replaced
        result = await self.session.execute(
            select(PushSubscriptionORM)
            .where(PushSubscriptionORM.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return self._orm_to_push_subscription(result.scalar_one())

    async def delete_push_subscription(self, user_id: UUID, endpoint: Optional[str] = None) -> bool:
        """
        Delete the push subscription of a user.

        Args:
            user_id: User UUID
            endpoint: Only delete if the stored endpoint matches

        Returns:
            True if a subscription was deleted, False if not found
        """
        stmt = delete(PushSubscriptionORM).where(PushSubscriptionORM.user_id == user_id)
        if endpoint is not None:
            stmt = stmt.where(PushSubscriptionORM.endpoint == endpoint)

        result = await self.session.execute(stmt)
        await self.session.commit()

        return result.rowcount > 0

    async def list_push_subscriptions(self, expired_only: bool = False) -> list[PushSubscription]:
        """List stored push subscriptions, optionally only those marked expired."""
        stmt = select(PushSubscriptionORM).order_by(PushSubscriptionORM.updated_at)
        if expired_only:
            stmt = stmt.where(PushSubscriptionORM.expired_at.is_not(None))

        result = await self.session.execute(stmt)
        return [self._orm_to_push_subscription(s) for s in result.scalars().all()]

    async def mark_push_subscription_expired(self, user_id: UUID, endpoint: str) -> bool:
        """
        Mark a subscription the push service reported gone (404/410).

        Only the row still holding ``endpoint`` is marked, so a browser that
        re-subscribed in the meantime keeps its fresh subscription.

        Returns:
            True if a row was marked
        """
        stmt = (
            update(PushSubscriptionORM)
            .where(
                PushSubscriptionORM.user_id == user_id,
                PushSubscriptionORM.endpoint == endpoint,
                PushSubscriptionORM.expired_at.is_(None),
            )
            .values(expired_at=datetime.now(UTC))
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        return result.rowcount > 0

    # =============================
    # Trigger Statistics
    # =============================

    async def count_logs_in_window(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
        success: Optional[bool] = None,
    ) -> int:
        """
        Count trigger logs for a user's callbacks in ``[start, end)``.

        Args:
            user_id: Owner of the callbacks
            start: Inclusive window start
            end: Exclusive window end
            success: Only count logs with this outcome when given

        Returns:
            Number of matching logs
        """
        stmt = (
            select(func.count(CallbackLogORM.id))
            .join(CallbackORM, CallbackLogORM.callback_id == CallbackORM.id)
            .where(
                CallbackORM.user_id == user_id,
                CallbackLogORM.created_at >= start,
                CallbackLogORM.created_at < end,
            )
        )
        if success is not None:
            stmt = stmt.where(CallbackLogORM.success.is_(success))

        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def avg_response_time_in_window(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> Optional[float]:
        """
        Average of non-null response times for a user's callbacks in ``[start, end)``.

        Returns:
            Average in milliseconds, or None when there are no samples
        """
        stmt = (
            select(func.avg(CallbackLogORM.response_time))
            .join(CallbackORM, CallbackLogORM.callback_id == CallbackORM.id)
            .where(
                CallbackORM.user_id == user_id,
                CallbackLogORM.created_at >= start,
                CallbackLogORM.created_at < end,
                CallbackLogORM.response_time.is_not(None),
            )
        )

        result = await self.session.execute(stmt)
        average = result.scalar_one_or_none()
        return float(average) if average is not None else None

    # =============================
    # Helper Methods
    # =============================

    def _insert(self, table):
        """INSERT supporting ``on_conflict_do_update`` for the bound dialect (SQLite in tests)."""
        if self.session.bind.dialect.name == "sqlite":
            return sqlite_insert(table)
        return pg_insert(table)

    def _orm_to_push_subscription(self, orm: PushSubscriptionORM) -> PushSubscription:
        """Convert ORM model to Pydantic model."""
        return PushSubscription(
            user_id=orm.user_id,
            endpoint=orm.endpoint,
            p256dh_key=orm.p256dh_key,
            auth_key=orm.auth_key,
            expired_at=orm.expired_at,
            updated_at=orm.updated_at,
        )


def notification_repository_factory(session_maker: async_sessionmaker) -> RepositoryFactory:
    """
    Build a factory of session-scoped repositories.

    Each use opens and closes its own session, so concurrent callers (the
    context builder's parallel queries, background dispatch) never share one.
    """

    @asynccontextmanager
    async def repository_scope() -> AsyncIterator[NotificationRepository]:
        async with session_maker() as session:
            yield NotificationRepository(session)

    return repository_scope
