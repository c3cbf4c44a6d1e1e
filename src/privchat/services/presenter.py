"""Wire representation of messages and conversation settings."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from privchat.db.time import format_time_text, unix_now
from privchat.models.conversation import Conversation
from privchat.models.message import Message, MessageReaction
from privchat.models.user import User
from privchat.repositories.message_repo import MessageRepository
from privchat.repositories.user_repo import UserRepository
from privchat.services.crypto import MessageCipher


def yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def has_location(lat: str | None, lng: str | None) -> bool:
    """Return True when both coordinates are set to something other than ``"0"``."""
    return bool(lat) and bool(lng) and lat != "0" and lng != "0"


def resolve_type(message: Message, viewer_id: int) -> tuple[str, str]:
    """Return ``(position, type)`` for a message as seen by ``viewer_id``.

    Later checks win, so a product reference outranks a map pin, which
    outranks a contact card, a gif sticker and a plain file.
    """
    position = "right" if message.from_id == viewer_id else "left"
    kind = ""
    if message.media:
        kind = "file"
    if message.stickers and ".gif" in message.stickers:
        kind = "gif"
    if message.type_two == "contact":
        kind = "contact"
    if has_location(message.lat, message.lng):
        kind = "map"
    if message.product_id and message.product_id > 0:
        kind = "product"
    return position, f"{position}_{kind}"


def user_basic_data(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "user_id": user.user_id,
        "username": user.username,
        "name": user.name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "avatar": user.avatar,
        "lastseen": user.lastseen,
        "status": user.status,
    }


def cipher_fields(message: Message) -> dict[str, Any]:
    """Return the ciphertext columns clients need to decrypt a message."""
    return {
        "text": message.text or "",
        "iv": message.iv,
        "tag": message.tag,
        "cipher_version": message.cipher_version,
    }


def conversation_settings(entry: Conversation) -> dict[str, str]:
    """Render the per-owner flags of a directory entry."""
    return {
        "notify": yes_no(entry.notify),
        "call_chat": yes_no(entry.call_chat),
        "archive": yes_no(entry.archive),
        "pin": yes_no(entry.pin),
    }


class MessagePresenter:
    """Builds message payloads, resolving senders and reply previews in bulk.

    Ciphertext is passed through untouched; only reply previews are
    decrypted, since clients render them without fetching the source message.
    Decryption errors propagate to the caller.
    """

    def __init__(
        self,
        messages: MessageRepository,
        users: UserRepository,
        cipher: MessageCipher,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        self.messages = messages
        self.users = users
        self.cipher = cipher
        self.clock = clock

    def _reply_preview(self, reply: Message) -> dict[str, Any]:
        return {
            "id": reply.id,
            "from_id": reply.from_id,
            "text": self.cipher.decrypt_message(reply),
            "media": reply.media or "",
            "time": reply.time,
        }

    def _payload(
        self,
        message: Message,
        viewer_id: int,
        sender: User | None,
        reply: dict[str, Any] | None,
        reactions: list[MessageReaction],
        now: int,
    ) -> dict[str, Any]:
        position, kind = resolve_type(message, viewer_id)
        return {
            "id": message.id,
            "from_id": message.from_id,
            "to_id": message.to_id,
            **cipher_fields(message),
            "media": message.media or "",
            "mediaFileName": message.media_file_name or "",
            "stickers": message.stickers or "",
            "time": message.time,
            "time_text": format_time_text(message.time, now),
            "seen": message.seen,
            "position": position,
            "type": kind,
            "type_two": message.type_two or "",
            "lat": message.lat or "0",
            "lng": message.lng or "0",
            "reply_id": message.reply_id or 0,
            "reply": reply,
            "story_id": message.story_id or 0,
            "product_id": message.product_id or 0,
            "forward": message.forward or 0,
            "edited": message.edited or 0,
            "reactions": [
                {"user_id": reaction.user_id, "reaction": reaction.reaction}
                for reaction in reactions
            ],
            "user_data": user_basic_data(sender),
        }

    async def present_many(
        self, rows: Sequence[Message], viewer_id: int
    ) -> list[dict[str, Any]]:
        """Return payloads for ``rows`` in the order given.

        A reply preview is only resolved when the viewer takes part in the
        replied-to message and has not hidden it; otherwise ``reply`` is None.
        """
        if not rows:
            return []
        senders = await self.users.get_many(row.from_id for row in rows)
        reply_ids = sorted({row.reply_id for row in rows if row.reply_id and row.reply_id > 0})
        replies = {
            reply.id: self._reply_preview(reply)
            for reply in await self.messages.list_by_ids(reply_ids)
            if reply.visible_to(viewer_id)
        }
        reactions = await self.messages.reactions_for([row.id for row in rows])
        now = self.clock()
        return [
            self._payload(
                row,
                viewer_id,
                senders.get(row.from_id),
                replies.get(row.reply_id),
                reactions.get(row.id, []),
                now,
            )
            for row in rows
        ]

    async def present(self, message: Message, viewer_id: int) -> dict[str, Any]:
        """Return the payload of a single message."""
        payloads = await self.present_many([message], viewer_id)
        return payloads[0]
