"""
User Repository

Handles database lookups for user accounts.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.notification import UserTier


class UserRepository:
    """Repository for user database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: UUID) -> Optional[dict]:
        """
        Get user by ID

        Args:
            user_id: User UUID

        Returns:
            User dict or None if not found
        """
        from src.orm.models import User

        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()

        if user:
            return {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "tier": UserTier(user.tier),
                "created_at": user.created_at,
                "updated_at": user.updated_at,
            }
        return None
