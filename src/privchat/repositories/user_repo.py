"""Read-only access to user profiles and app sessions."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.models.user import AppSession, User


class UserRepository:
    """Profile lookups for message payloads and credential checks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, user_id: int) -> User | None:
        """Return a user by identifier."""
        result = await self.session.execute(select(User).where(User.user_id == user_id))
        return result.scalars().first()

    async def get_many(self, user_ids: Iterable[int]) -> dict[int, User]:
        """Return the known users among ``user_ids`` keyed by id."""
        wanted = set(user_ids)
        if not wanted:
            return {}
        result = await self.session.execute(select(User).where(User.user_id.in_(wanted)))
        return {user.user_id: user for user in result.scalars()}

    async def user_id_for_session(self, session_id: str) -> int | None:
        """Resolve an opaque access token to its user id."""
        result = await self.session.execute(
            select(AppSession.user_id).where(AppSession.session_id == session_id)
        )
        return result.scalars().first()
