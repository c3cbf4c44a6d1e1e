# src/privchat/services/conversations.py
"""Conversation list and per-conversation settings."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from privchat.core.settings import Settings, settings as default_settings
from privchat.db.time import format_time_text, unix_now
from privchat.repositories.conversation_repo import ConversationDirectory
from privchat.repositories.message_repo import MessageRepository
from privchat.repositories.user_repo import UserRepository
from privchat.services.crypto import MessageCipher, get_message_cipher
from privchat.services.fanout import Publisher
from privchat.services.outcomes import Outcome, operation
from privchat.services.pipeline import clamp_limit
from privchat.services.presenter import (
    MessagePresenter,
    cipher_fields,
    conversation_settings,
    user_basic_data,
    yes_no,
)

logger = logging.getLogger(__name__)

CONVERSATION_DELETE_TYPES = ("me", "all")

_COLOR_STRIP = re.compile(r"[^a-fA-F0-9]")


def sanitize_color(raw: str) -> str:
    """Keep hex digits only, at most seven of them."""
    return _COLOR_STRIP.sub("", raw)[:7]


class ConversationService:
    """Operations on whole conversations rather than single messages."""

    def __init__(
        self,
        session: AsyncSession,
        publisher: Publisher,
        *,
        cipher: MessageCipher | None = None,
        clock: Callable[[], int] = unix_now,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.publisher = publisher
        self.clock = clock
        self.config = config or default_settings
        self.messages = MessageRepository(session)
        self.directory = ConversationDirectory(session)
        self.users = UserRepository(session)
        self.presenter = MessagePresenter(
            self.messages, self.users, cipher or get_message_cipher(), clock
        )

    @operation("Failed to fetch chats")
    async def list_chats(
        self,
        user_id: int,
        *,
        limit: int | None = None,
        offset: int = 0,
        show_archived: bool = False,
    ) -> Outcome:
        """Return the caller's conversations, most recently active first."""
        entries = await self.directory.list_for_owner(
            user_id,
            archived=show_archived,
            limit=clamp_limit(limit, self.config.chats_default_limit, self.config.chats_max_limit),
            offset=max(offset, 0),
        )
        partners = await self.users.get_many(entry.counterpart_id for entry in entries)
        now = self.clock()
        data: list[dict[str, Any]] = []
        for entry in entries:
            partner = partners.get(entry.counterpart_id)
            if partner is None:
                continue
            last = await self.messages.last_visible(user_id, entry.counterpart_id)
            last_message = None
            if last is not None:
                last_message = {
                    "id": last.id,
                    "from_id": last.from_id,
                    "to_id": last.to_id,
                    **cipher_fields(last),
                    "media": last.media or "",
                    "stickers": last.stickers or "",
                    "time": last.time,
                    "time_text": format_time_text(last.time, now),
                    "seen": last.seen,
                    "position": "right" if last.from_id == user_id else "left",
                }
            data.append(
                {
                    "chat_id": entry.id,
                    "chat_time": entry.time,
                    "chat_type": "user",
                    "user_id": entry.counterpart_id,
                    "chat_color": entry.color,
                    "mute": conversation_settings(entry),
                    "user_data": user_basic_data(partner),
                    "last_message": last_message,
                    "message_count": await self.messages.count_unseen(
                        entry.counterpart_id, user_id
                    ),
                }
            )
        return Outcome.success(data=data)

    @operation("Failed to get mute status")
    async def mute_status(self, user_id: int, chat_id: int) -> Outcome:
        """Return the caller's settings for a conversation, defaults included."""
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        entry = await self.directory.get(user_id, chat_id)
        return Outcome.success(**conversation_settings(entry))

    @operation("Failed to get unread count")
    async def unread_count(self, user_id: int, recipient_id: int) -> Outcome:
        """Count messages from ``recipient_id`` the caller has not seen yet."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        count = await self.messages.count_unseen(recipient_id, user_id)
        return Outcome.success(count=count)

    async def _update_settings(self, user_id: int, chat_id: int, **fields: bool) -> dict[str, str]:
        entry = await self.directory.upsert(user_id, chat_id, **fields)
        await self.session.commit()
        rendered = conversation_settings(entry)
        await self.publisher.publish(
            user_id, "chat_updated", {"user_id": chat_id, **rendered}
        )
        return {name: rendered[name] for name in fields}

    @operation("Failed to archive chat")
    async def archive(self, user_id: int, chat_id: int, archive: bool) -> Outcome:
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        return Outcome.success(**await self._update_settings(user_id, chat_id, archive=archive))

    @operation("Failed to mute chat")
    async def mute(
        self, user_id: int, chat_id: int, *, notify: bool = True, call_chat: bool = True
    ) -> Outcome:
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        changed = await self._update_settings(
            user_id, chat_id, notify=notify, call_chat=call_chat
        )
        return Outcome.success(**changed)

    @operation("Failed to pin chat")
    async def pin_chat(self, user_id: int, chat_id: int, pin: bool) -> Outcome:
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        return Outcome.success(**await self._update_settings(user_id, chat_id, pin=pin))

    @operation("Failed to change chat color")
    async def change_color(self, user_id: int, recipient_id: int, color: str) -> Outcome:
        """Set the accent color on both sides of a conversation."""
        if recipient_id <= 0:
            return Outcome.invalid("user_id is required")
        color = sanitize_color(color)
        if not color:
            return Outcome.invalid("color is required")
        await self.directory.set_color(user_id, recipient_id, color)
        await self.session.commit()

        await self.publisher.publish(
            recipient_id, "chat_color_changed", {"user_id": user_id, "color": color}
        )
        if recipient_id != user_id:
            await self.publisher.publish(
                user_id, "chat_color_changed", {"user_id": recipient_id, "color": color}
            )
        return Outcome.success(color=color)

    @operation("Failed to mark chat as read")
    async def read_chat(self, user_id: int, recipient_id: int) -> Outcome:
        """Mark the whole conversation as read and send a read receipt."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        seen = self.clock()
        await self.messages.mark_seen(recipient_id, user_id, seen)
        await self.session.commit()
        await self.publisher.publish(
            recipient_id, "lastseen", {"can_seen": 1, "seen": seen, "user_id": user_id}
        )
        return Outcome.success(message="Chat marked as read")

    @operation("Failed to delete conversation")
    async def delete_conversation(
        self, user_id: int, recipient_id: int, delete_type: str = "me"
    ) -> Outcome:
        """Hide the conversation for the caller and drop it from their list.

        ``all`` also hides the caller's own messages from the counterpart;
        messages the counterpart sent are never hidden from them.
        """
        if recipient_id <= 0:
            return Outcome.invalid("user_id is required")
        if delete_type not in CONVERSATION_DELETE_TYPES:
            return Outcome.invalid("delete_type must be me or all")
        await self.messages.hide_conversation(
            user_id, recipient_id, for_everyone=delete_type == "all"
        )
        await self.directory.remove(user_id, recipient_id)
        await self.session.commit()
        logger.info("User %s deleted conversation with %s (%s)", user_id, recipient_id, delete_type)
        await self.publisher.publish(
            user_id,
            "conversation_deleted",
            {"user_id": recipient_id, "delete_type": delete_type},
        )
        return Outcome.success(message="Conversation deleted")

    @operation("Failed to clear history")
    async def clear_history(self, user_id: int, recipient_id: int) -> Outcome:
        """Hide every message of the conversation for the caller, keeping the entry."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        await self.messages.hide_conversation(user_id, recipient_id)
        await self.session.commit()
        return Outcome.success(message="Chat history cleared")

    @operation("Failed to update favorite")
    async def favorite(self, user_id: int, message_id: int, chat_id: int, fav: bool) -> Outcome:
        """Set the caller's favorite flag on a message."""
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        message = await self.messages.get_by_id(message_id)
        if message is None or not message.involves(user_id):
            return Outcome.not_found()
        await self.messages.set_mark(
            user_id, message_id, message.counterpart_of(user_id), time=self.clock(), fav=fav
        )
        await self.session.commit()
        return Outcome.success(fav=yes_no(fav))

    @operation("Failed to get favorite messages")
    async def favorites(
        self,
        user_id: int,
        chat_id: int,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> Outcome:
        """Return messages the caller marked as favorite in a conversation."""
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        ids = await self.messages.marked_ids(
            user_id,
            chat_id,
            "fav",
            limit=clamp_limit(
                limit, self.config.favorites_default_limit, self.config.favorites_max_limit
            ),
            offset=max(offset, 0),
        )
        rows = [row for row in await self.messages.list_by_ids(ids) if row.visible_to(user_id)]
        return Outcome.success(messages=await self.presenter.present_many(rows, user_id))
