"""Data access helpers for private messages and their side tables."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Literal

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.models.message import NO_PAGE, Message, MessageMark, MessageReaction

__all__ = ["MessageRepository", "ReactionAction"]

ReactionAction = Literal["added", "updated", "removed"]

_LIKE_ESCAPE = "\\"


def visible_between(user_id: int, counterpart_id: int) -> ColumnElement[bool]:
    """Return the filter for messages between two users that ``user_id`` can see.

    Rows the caller sent are hidden by ``deleted_one``; rows the caller
    received are hidden by ``deleted_two``.
    """
    return and_(
        Message.page_id == NO_PAGE,
        or_(
            and_(
                Message.from_id == counterpart_id,
                Message.to_id == user_id,
                Message.deleted_two.is_(False),
            ),
            and_(
                Message.from_id == user_id,
                Message.to_id == counterpart_id,
                Message.deleted_one.is_(False),
            ),
        ),
    )


def _escape_like(term: str) -> str:
    return (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


class MessageRepository:
    """Thin wrapper around database access for messages, reactions and marks."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with an async SQLAlchemy session."""
        self.session = session

    # --- messages -------------------------------------------------------------------

    async def create(self, **fields: Any) -> Message:
        """Insert a new message and return the persisted ORM instance.

        The store assigns ``id``; callers supply ``time`` and the encrypted
        text columns.
        """
        defaults: dict[str, Any] = {
            "page_id": NO_PAGE,
            "seen": 0,
            "deleted_one": False,
            "deleted_two": False,
            "forward": 0,
            "edited": 0,
        }
        message = Message(**{**defaults, **fields})
        self.session.add(message)
        await self.session.flush()
        return message

    async def get_by_id(self, message_id: int) -> Message | None:
        """Return a message by identifier."""
        result = await self.session.execute(select(Message).where(Message.id == message_id))
        return result.scalars().first()

    async def list_by_ids(self, message_ids: Sequence[int]) -> list[Message]:
        """Return the given messages, newest id first."""
        if not message_ids:
            return []
        result = await self.session.execute(
            select(Message).where(Message.id.in_(message_ids)).order_by(Message.id.desc())
        )
        return list(result.scalars())

    async def list_between(
        self,
        user_id: int,
        counterpart_id: int,
        *,
        limit: int,
        message_id: int = 0,
        after_id: int = 0,
        before_id: int = 0,
    ) -> list[Message]:
        """Return messages of a conversation visible to ``user_id``, newest first.

        At most one of ``message_id``, ``after_id`` and ``before_id`` is applied,
        in that order of precedence.
        """
        stmt = select(Message).where(visible_between(user_id, counterpart_id))
        if message_id > 0:
            stmt = stmt.where(Message.id == message_id)
        elif after_id > 0:
            stmt = stmt.where(Message.id > after_id)
        elif before_id > 0:
            stmt = stmt.where(Message.id < before_id)
        result = await self.session.execute(stmt.order_by(Message.id.desc()).limit(limit))
        return list(result.scalars())

    async def search(
        self,
        user_id: int,
        counterpart_id: int,
        query: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[Message]:
        """Return visible messages whose plaintext preview contains ``query``.

        Only ``text_preview`` is matched; ciphertext columns are never searched.
        """
        pattern = f"%{_escape_like(query)}%"
        stmt = (
            select(Message)
            .where(
                visible_between(user_id, counterpart_id),
                Message.text_preview.ilike(pattern, escape=_LIKE_ESCAPE),
            )
            .order_by(Message.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def last_visible(self, user_id: int, counterpart_id: int) -> Message | None:
        """Return the newest message of a conversation visible to ``user_id``."""
        rows = await self.list_between(user_id, counterpart_id, limit=1)
        return rows[0] if rows else None

    async def update_fields(self, message_id: int, **fields: Any) -> None:
        """Apply an in-place update to a single message row.

        Ownership checks are the caller's responsibility.
        """
        await self.session.execute(
            update(Message).where(Message.id == message_id).values(**fields)
        )

    async def mark_seen(self, from_id: int, to_id: int, seen: int) -> int:
        """Stamp every unseen message from ``from_id`` to ``to_id``; return the row count."""
        result = await self.session.execute(
            update(Message)
            .where(
                Message.from_id == from_id,
                Message.to_id == to_id,
                Message.page_id == NO_PAGE,
                Message.seen == 0,
            )
            .values(seen=seen)
        )
        return result.rowcount or 0

    async def count_unseen(self, from_id: int, to_id: int) -> int:
        """Count unseen messages from ``from_id`` that ``to_id`` has not hidden."""
        result = await self.session.execute(
            select(func.count())
            .select_from(Message)
            .where(
                Message.from_id == from_id,
                Message.to_id == to_id,
                Message.page_id == NO_PAGE,
                Message.seen == 0,
                Message.deleted_two.is_(False),
            )
        )
        return int(result.scalar_one())

    async def hide_conversation(
        self,
        user_id: int,
        counterpart_id: int,
        *,
        for_everyone: bool = False,
    ) -> None:
        """Soft-delete every message of a conversation on the caller's side.

        With ``for_everyone`` the caller's own messages are hidden from the
        counterpart too; messages the counterpart sent stay visible to them.
        """
        sent_values: dict[str, bool] = {"deleted_one": True}
        if for_everyone:
            sent_values["deleted_two"] = True
        await self.session.execute(
            update(Message)
            .where(
                Message.from_id == user_id,
                Message.to_id == counterpart_id,
                Message.page_id == NO_PAGE,
            )
            .values(**sent_values)
        )
        await self.session.execute(
            update(Message)
            .where(
                Message.from_id == counterpart_id,
                Message.to_id == user_id,
                Message.page_id == NO_PAGE,
            )
            .values(deleted_two=True)
        )

    # --- reactions ------------------------------------------------------------------

    async def get_reaction(self, user_id: int, message_id: int) -> MessageReaction | None:
        """Return the user's reaction on a message, if any."""
        result = await self.session.execute(
            select(MessageReaction).where(
                MessageReaction.user_id == user_id,
                MessageReaction.message_id == message_id,
            )
        )
        return result.scalars().first()

    async def toggle_reaction(self, user_id: int, message_id: int, reaction: str) -> ReactionAction:
        """Set, replace or clear a reaction.

        The same reaction twice removes it; a different one replaces it.
        """
        existing = await self.get_reaction(user_id, message_id)
        if existing is None:
            self.session.add(
                MessageReaction(user_id=user_id, message_id=message_id, reaction=reaction)
            )
            await self.session.flush()
            return "added"
        if existing.reaction == reaction:
            await self.session.execute(
                delete(MessageReaction).where(MessageReaction.id == existing.id)
            )
            return "removed"
        existing.reaction = reaction
        await self.session.flush()
        return "updated"

    async def reactions_for(self, message_ids: Sequence[int]) -> dict[int, list[MessageReaction]]:
        """Return reactions grouped by message id."""
        grouped: dict[int, list[MessageReaction]] = {}
        if not message_ids:
            return grouped
        result = await self.session.execute(
            select(MessageReaction)
            .where(MessageReaction.message_id.in_(message_ids))
            .order_by(MessageReaction.id)
        )
        for reaction in result.scalars():
            grouped.setdefault(reaction.message_id, []).append(reaction)
        return grouped

    # --- pins and favorites ---------------------------------------------------------

    async def get_mark(self, user_id: int, message_id: int) -> MessageMark | None:
        """Return the user's pin/favorite row for a message, if any."""
        result = await self.session.execute(
            select(MessageMark).where(
                MessageMark.user_id == user_id,
                MessageMark.message_id == message_id,
            )
        )
        return result.scalars().first()

    async def set_mark(
        self,
        user_id: int,
        message_id: int,
        chat_id: int,
        *,
        time: int,
        **flags: bool,
    ) -> MessageMark:
        """Create or update the user's pin/favorite row for a message."""
        mark = await self.get_mark(user_id, message_id)
        if mark is None:
            mark = MessageMark(
                user_id=user_id,
                message_id=message_id,
                chat_id=chat_id,
                pin=False,
                fav=False,
                time=time,
            )
            self.session.add(mark)
        for name, value in flags.items():
            setattr(mark, name, value)
        await self.session.flush()
        return mark

    async def marked_ids(
        self,
        user_id: int,
        chat_id: int,
        flag: Literal["pin", "fav"],
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[int]:
        """Return ids of messages the user flagged in a conversation, newest mark first."""
        column = MessageMark.pin if flag == "pin" else MessageMark.fav
        stmt = (
            select(MessageMark.message_id)
            .where(
                MessageMark.user_id == user_id,
                MessageMark.chat_id == chat_id,
                column.is_(True),
            )
            .order_by(MessageMark.time.desc(), MessageMark.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars())
