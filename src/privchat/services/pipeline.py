"""Private chat message operations.

Each public coroutine is one unit of work: it validates its input, reads and
writes through the repositories in a single session, commits once, and only
then hands events to the publisher. Expected failures come back as
:class:`Outcome` values; storage and decryption errors are turned into an
``INTERNAL`` outcome by :func:`operation`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from privchat.core.settings import Settings, settings as default_settings
from privchat.db.time import unix_now
from privchat.models.message import Message
from privchat.repositories.conversation_repo import ConversationDirectory
from privchat.repositories.message_repo import MessageRepository
from privchat.repositories.user_repo import UserRepository
from privchat.services.crypto import MessageCipher, get_message_cipher
from privchat.services.fanout import Publisher
from privchat.services.outcomes import Outcome, operation
from privchat.services.presenter import (
    MessagePresenter,
    has_location,
    yes_no,
)

logger = logging.getLogger(__name__)

DELETE_TYPES = ("just_me", "everyone")


def clamp_limit(requested: int | None, default: int, maximum: int) -> int:
    """Return ``requested`` bounded by ``maximum``, or ``default`` when unset."""
    if requested is None or requested <= 0:
        return min(default, maximum)
    return min(requested, maximum)


class PrivateChatPipeline:
    """Message operations between two users."""

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
        self.cipher = cipher or get_message_cipher()
        self.clock = clock
        self.config = config or default_settings
        self.messages = MessageRepository(session)
        self.directory = ConversationDirectory(session)
        self.users = UserRepository(session)
        self.presenter = MessagePresenter(self.messages, self.users, self.cipher, clock)

    async def _emit(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        await self.publisher.publish(user_id, event, payload)

    async def _find_for(self, user_id: int, message_id: int) -> Message | None:
        message = await self.messages.get_by_id(message_id)
        if message is None or not message.involves(user_id):
            return None
        return message

    # --- reading --------------------------------------------------------------------

    @operation("Failed to fetch messages")
    async def get_messages(
        self,
        user_id: int,
        recipient_id: int,
        *,
        limit: int | None = None,
        message_id: int = 0,
        after_id: int = 0,
        before_id: int = 0,
    ) -> Outcome:
        """Return a page of the conversation in chronological order."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        rows = await self.messages.list_between(
            user_id,
            recipient_id,
            limit=clamp_limit(limit, self.config.get_default_limit, self.config.get_max_limit),
            message_id=message_id,
            after_id=after_id,
            before_id=before_id,
        )
        rows.reverse()
        return Outcome.success(messages=await self.presenter.present_many(rows, user_id))

    @operation("Failed to load more messages")
    async def load_more(
        self,
        user_id: int,
        recipient_id: int,
        *,
        before_id: int = 0,
        limit: int | None = None,
    ) -> Outcome:
        """Return older messages preceding ``before_id``."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        rows = await self.messages.list_between(
            user_id,
            recipient_id,
            limit=clamp_limit(
                limit, self.config.loadmore_default_limit, self.config.loadmore_max_limit
            ),
            before_id=before_id,
        )
        rows.reverse()
        return Outcome.success(messages=await self.presenter.present_many(rows, user_id))

    @operation("Failed to search messages")
    async def search_messages(
        self,
        user_id: int,
        recipient_id: int,
        query: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> Outcome:
        """Find messages whose preview contains ``query``, newest first."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        query = query.strip()
        minimum = self.config.search_min_query_length
        if len(query) < minimum:
            return Outcome.invalid(f"Query must be at least {minimum} characters")
        rows = await self.messages.search(
            user_id,
            recipient_id,
            query,
            limit=clamp_limit(limit, self.config.search_default_limit, self.config.search_max_limit),
            offset=max(offset, 0),
        )
        messages = await self.presenter.present_many(rows, user_id)
        return Outcome.success(messages=messages, count=len(messages))

    @operation("Failed to get pinned messages")
    async def pinned_messages(self, user_id: int, chat_id: int) -> Outcome:
        """Return the messages the caller pinned in a conversation, newest first."""
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        ids = await self.messages.marked_ids(user_id, chat_id, "pin")
        rows = [row for row in await self.messages.list_by_ids(ids) if row.visible_to(user_id)]
        return Outcome.success(messages=await self.presenter.present_many(rows, user_id))

    # --- writing --------------------------------------------------------------------

    @operation("Failed to send message")
    async def send_message(
        self,
        user_id: int,
        recipient_id: int,
        *,
        text: str = "",
        media: str = "",
        media_file_name: str = "",
        stickers: str = "",
        lat: str = "0",
        lng: str = "0",
        contact: str = "",
        reply_id: int = 0,
        story_id: int = 0,
        product_id: int = 0,
    ) -> Outcome:
        """Persist a new message and deliver it to both participants."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        text = text.strip()
        contact = contact.strip()
        if not (text or media or stickers or contact or has_location(lat, lng)):
            return Outcome.invalid("Message has no content")
        if reply_id > 0:
            replied = await self._find_for(user_id, reply_id)
            if (
                replied is None
                or replied.counterpart_of(user_id) != recipient_id
                or not replied.visible_to(user_id)
            ):
                return Outcome.not_found("Reply target not found")

        now = self.clock()
        body = text or contact
        stored = self.cipher.encrypt_for_storage(body, now)
        message = await self.messages.create(
            from_id=user_id,
            to_id=recipient_id,
            **stored.as_columns(),
            media=media,
            media_file_name=media_file_name,
            stickers=stickers,
            type_two="contact" if contact else "",
            lat=lat or "0",
            lng=lng or "0",
            reply_id=max(reply_id, 0),
            story_id=max(story_id, 0),
            product_id=max(product_id, 0),
            time=now,
        )
        await self.directory.touch_pair(user_id, recipient_id, now)
        sender_view = await self.presenter.present(message, user_id)
        recipient_view = await self.presenter.present(message, recipient_id)
        await self.session.commit()

        logger.info("%s -> %s msg=%s", user_id, recipient_id, message.id)
        await self._emit(recipient_id, "new_message", recipient_view)
        await self._emit(recipient_id, "private_message", recipient_view)
        await self._emit(user_id, "new_message", {**sender_view, "self": True})
        sender = sender_view["user_data"]
        if body:
            summary = self.cipher.preview(body)
        else:
            summary = "[sticker]" if stickers else "[media]"
        await self._emit(
            recipient_id,
            "notification",
            {
                "id": str(recipient_id),
                "username": sender["name"] if sender else "User",
                "avatar": sender["avatar"] if sender else "",
                "message": summary,
                "status": 200,
            },
        )
        return Outcome.success(message_data=sender_view)

    @operation("Failed to edit message")
    async def edit_message(self, user_id: int, message_id: int, text: str) -> Outcome:
        """Replace the text of the caller's own message.

        The new text is encrypted under the message's original ``time``.
        """
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        text = text.strip()
        if not text:
            return Outcome.invalid("text is required")
        message = await self.messages.get_by_id(message_id)
        if message is None:
            return Outcome.not_found()
        if message.from_id != user_id:
            return Outcome.forbidden("Cannot edit someone else's message")
        if message.deleted_one:
            return Outcome.not_found()

        stored = self.cipher.encrypt_for_storage(text, message.time)
        await self.messages.update_fields(message_id, **stored.as_columns(), edited=1)
        await self.session.commit()

        payload = {
            "message_id": message_id,
            "text": stored.text,
            "iv": stored.iv,
            "tag": stored.tag,
            "cipher_version": stored.cipher_version,
            "time": message.time,
            "edited": 1,
        }
        if message.to_id != user_id and not message.deleted_two:
            await self._emit(message.to_id, "message_edited", payload)
        await self._emit(user_id, "message_edited", payload)
        return Outcome.success(**payload)

    @operation("Failed to mark messages as seen")
    async def mark_seen(self, user_id: int, recipient_id: int) -> Outcome:
        """Stamp every unseen message from ``recipient_id`` and send a read receipt."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        seen = self.clock()
        updated = await self.messages.mark_seen(recipient_id, user_id, seen)
        await self.session.commit()
        await self._emit(recipient_id, "lastseen", {"can_seen": 1, "seen": seen, "user_id": user_id})
        return Outcome.success(message="Messages marked as seen", count=updated)

    async def typing(self, user_id: int, recipient_id: int, is_typing: bool) -> Outcome:
        """Relay a typing indicator; nothing is stored."""
        if recipient_id <= 0:
            return Outcome.invalid("recipient_id is required")
        await self._emit(
            recipient_id,
            "typing" if is_typing else "typing_done",
            {"from_id": user_id, "to_id": recipient_id},
        )
        return Outcome.success()

    @operation("Failed to delete message")
    async def delete_message(
        self, user_id: int, message_id: int, delete_type: str = "just_me"
    ) -> Outcome:
        """Hide a message for the caller, or for both sides when the caller sent it."""
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        if delete_type not in DELETE_TYPES:
            return Outcome.invalid("delete_type must be just_me or everyone")
        message = await self.messages.get_by_id(message_id)
        if message is None:
            return Outcome.not_found()

        is_sender = message.from_id == user_id
        if delete_type == "everyone":
            if not is_sender:
                return Outcome.forbidden("Can only delete own messages for everyone")
            await self.messages.update_fields(message_id, deleted_one=True, deleted_two=True)
            targets = [message.to_id, message.from_id]
        else:
            if not message.involves(user_id):
                return Outcome.not_found()
            side = "deleted_one" if is_sender else "deleted_two"
            await self.messages.update_fields(message_id, **{side: True})
            targets = [user_id]
        await self.session.commit()

        payload = {"message_id": message_id, "delete_type": delete_type}
        for target in dict.fromkeys(targets):
            await self._emit(target, "message_deleted", payload)
        return Outcome.success(message="Message deleted")

    @operation("Failed to react to message")
    async def react(self, user_id: int, message_id: int, reaction: str) -> Outcome:
        """Toggle the caller's reaction on a message."""
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        reaction = reaction.strip()
        if not reaction:
            return Outcome.invalid("reaction is required")
        message = await self._find_for(user_id, message_id)
        if message is None:
            return Outcome.not_found()

        action = await self.messages.toggle_reaction(user_id, message_id, reaction)
        await self.session.commit()

        payload = {
            "message_id": message_id,
            "user_id": user_id,
            "reaction": reaction,
            "action": action,
        }
        counterpart = message.counterpart_of(user_id)
        await self._emit(counterpart, "message_reaction", payload)
        if counterpart != user_id:
            await self._emit(user_id, "message_reaction", payload)
        return Outcome.success(action=action, reaction=reaction)

    @operation("Failed to pin message")
    async def pin_message(self, user_id: int, message_id: int, chat_id: int, pin: bool) -> Outcome:
        """Set the caller's pin flag on a message of a conversation."""
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        if chat_id <= 0:
            return Outcome.invalid("chat_id is required")
        message = await self._find_for(user_id, message_id)
        if message is None:
            return Outcome.not_found()

        counterpart = message.counterpart_of(user_id)
        await self.messages.set_mark(user_id, message_id, counterpart, time=self.clock(), pin=pin)
        await self.session.commit()

        flag = yes_no(pin)
        await self._emit(
            user_id, "message_pinned", {"message_id": message_id, "pin": flag, "chat_id": counterpart}
        )
        if counterpart != user_id:
            await self._emit(
                counterpart,
                "message_pinned",
                {"message_id": message_id, "pin": flag, "chat_id": user_id},
            )
        return Outcome.success(pin=flag)

    @operation("Failed to forward message")
    async def forward_message(
        self, user_id: int, message_id: int, recipient_ids: Sequence[int]
    ) -> Outcome:
        """Copy a message to one or more recipients.

        The text is decrypted once and encrypted again under the new
        messages' timestamp; ciphertext is never copied between rows.
        """
        if message_id <= 0:
            return Outcome.invalid("message_id is required")
        targets = list(dict.fromkeys(rid for rid in recipient_ids if rid > 0))
        if not targets:
            return Outcome.invalid("recipient_id(s) required")
        original = await self._find_for(user_id, message_id)
        if original is None or not original.visible_to(user_id):
            return Outcome.not_found()

        plaintext = self.cipher.decrypt_message(original)
        now = self.clock()
        created: list[Message] = []
        for recipient_id in targets:
            stored = self.cipher.encrypt_for_storage(plaintext, now)
            message = await self.messages.create(
                from_id=user_id,
                to_id=recipient_id,
                **stored.as_columns(),
                media=original.media or "",
                media_file_name=original.media_file_name or "",
                stickers=original.stickers or "",
                lat=original.lat or "0",
                lng=original.lng or "0",
                type_two=original.type_two or "",
                forward=1,
                time=now,
            )
            await self.directory.touch_pair(user_id, recipient_id, now)
            created.append(message)
        await self.session.flush()

        deliveries = []
        for message in created:
            recipient_view = await self.presenter.present(message, message.to_id)
            sender_view = await self.presenter.present(message, user_id)
            deliveries.append((message.to_id, recipient_view, sender_view))
        await self.session.commit()

        for recipient_id, recipient_view, sender_view in deliveries:
            logger.info("%s -> %s forwarded msg=%s", user_id, recipient_id, recipient_view["id"])
            await self._emit(recipient_id, "new_message", recipient_view)
            await self._emit(recipient_id, "private_message", recipient_view)
            await self._emit(user_id, "new_message", {**sender_view, "self": True})
        return Outcome.success(forwarded_ids=[message.id for message in created])
