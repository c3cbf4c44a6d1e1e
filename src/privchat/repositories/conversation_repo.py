"""Data access helpers for the per-user conversation directory."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.models.conversation import Conversation

__all__ = ["ConversationDirectory", "DEFAULT_SETTINGS"]

DEFAULT_SETTINGS: dict[str, Any] = {
    "time": 0,
    "color": "",
    "notify": True,
    "call_chat": True,
    "archive": False,
    "pin": False,
}


class ConversationDirectory:
    """Upsert-only access to ``(owner, counterpart)`` conversation rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the directory with an async SQLAlchemy session."""
        self.session = session

    async def find(self, owner_id: int, counterpart_id: int) -> Conversation | None:
        """Return the stored row, or None when the pair has no entry yet."""
        result = await self.session.execute(
            select(Conversation).where(
                Conversation.owner_id == owner_id,
                Conversation.counterpart_id == counterpart_id,
            )
        )
        return result.scalars().first()

    async def get(self, owner_id: int, counterpart_id: int) -> Conversation:
        """Return the entry for a pair, synthesizing defaults when none is stored.

        A synthesized entry is transient and never added to the session.
        """
        entry = await self.find(owner_id, counterpart_id)
        if entry is not None:
            return entry
        return Conversation(owner_id=owner_id, counterpart_id=counterpart_id, **DEFAULT_SETTINGS)

    async def upsert(self, owner_id: int, counterpart_id: int, **fields: Any) -> Conversation:
        """Create or update the owner's entry for a counterpart.

        Only ``fields`` change on an existing row; a new row starts from the
        defaults. The counterpart's own entry is never touched.
        """
        entry = await self.find(owner_id, counterpart_id)
        if entry is None:
            entry = Conversation(
                owner_id=owner_id,
                counterpart_id=counterpart_id,
                **{**DEFAULT_SETTINGS, **fields},
            )
            self.session.add(entry)
        else:
            for name, value in fields.items():
                setattr(entry, name, value)
        await self.session.flush()
        return entry

    async def touch_pair(self, user_id: int, counterpart_id: int, time: int) -> None:
        """Record activity at ``time`` on both sides of a conversation."""
        await self.upsert(user_id, counterpart_id, time=time)
        if counterpart_id != user_id:
            await self.upsert(counterpart_id, user_id, time=time)

    async def set_color(self, user_id: int, counterpart_id: int, color: str) -> None:
        """Write the shared accent color to both sides of a conversation."""
        await self.upsert(user_id, counterpart_id, color=color)
        if counterpart_id != user_id:
            await self.upsert(counterpart_id, user_id, color=color)

    async def list_for_owner(
        self,
        owner_id: int,
        *,
        archived: bool = False,
        limit: int,
        offset: int = 0,
    ) -> list[Conversation]:
        """Return the owner's conversations with activity, most recent first."""
        result = await self.session.execute(
            select(Conversation)
            .where(
                Conversation.owner_id == owner_id,
                Conversation.counterpart_id > 0,
                Conversation.time > 0,
                Conversation.archive.is_(archived),
            )
            .order_by(Conversation.time.desc(), Conversation.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars())

    async def remove(self, owner_id: int, counterpart_id: int) -> None:
        """Drop the owner's entry for a counterpart."""
        await self.session.execute(
            delete(Conversation).where(
                Conversation.owner_id == owner_id,
                Conversation.counterpart_id == counterpart_id,
            )
        )
