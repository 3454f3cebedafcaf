"""
SQLAlchemy ORM Models for the WebTrigger notification service.

Models:
-------
- User: User accounts with subscription tier
- CallbackORM: User-registered callback URLs reachable through a trigger token
- CallbackLogORM: One row per trigger execution (feeds the daily statistics)
- NotificationSettingsORM: Per-user notification settings (JSON document)
- PushSubscriptionORM: Browser push subscription, at most one per user
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database import Base


class User(Base):
    """
    User account model.

    Table: users
    Primary Key: id (UUID)
    """

    __tablename__ = "users"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # User credentials
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Subscription tier (FREE, PREMIUM, PRO, ADMIN)
    tier: Mapped[str] = mapped_column(String(10), nullable=False, default="FREE")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("tier IN ('FREE', 'PREMIUM', 'PRO', 'ADMIN')", name="chk_user_tier"),
    )


class CallbackORM(Base):
    """
    Callback registered by a user.

    Table: callbacks
    Primary Key: id (UUID)
    Foreign Keys: user_id -> users.id
    """

    __tablename__ = "callbacks"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    callback_url: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    active_status: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    user: Mapped[User] = relationship(User, lazy="joined")


class CallbackLogORM(Base):
    """
    Outcome of a single trigger execution.

    Table: callback_logs
    Primary Key: id (UUID)
    Foreign Keys: callback_id -> callbacks.id
    Indexes: idx_callback_logs_callback_created
    """

    __tablename__ = "callback_logs"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    callback_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("callbacks.id", ondelete="CASCADE"), nullable=False
    )

    event: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (Index("idx_callback_logs_callback_created", "callback_id", "created_at"),)


class NotificationSettingsORM(Base):
    """
    User notification settings.

    Table: notification_settings
    Primary Key: user_id (UUID) - One settings record per user
    """

    __tablename__ = "notification_settings"

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
    )

    # Channel toggles, recipient lists and Slack webhook URL
    settings: Mapped[dict] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )


class PushSubscriptionORM(Base):
    """
    Browser push notification subscription.

    Table: push_subscriptions
    Primary Key: id (UUID)
    Unique: user_id - the latest browser to subscribe replaces the previous one
    """

    __tablename__ = "push_subscriptions"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    # Web Push subscription data
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh_key: Mapped[str] = mapped_column(Text, nullable=False)
    auth_key: Mapped[str] = mapped_column(Text, nullable=False)

    # Set when the push service answers 404/410; cleanup removes marked rows
    expired_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (UniqueConstraint("user_id", name="uq_push_subscription_user"),)
