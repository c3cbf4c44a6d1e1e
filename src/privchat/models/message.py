# src/privchat/models/message.py
"""Models describing private messages between users."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from privchat.db.session import Base

CIPHER_VERSION_ECB = 1
CIPHER_VERSION_GCM = 2

# Private chats never belong to a business page.
NO_PAGE = 0


class Message(Base):
    """Private message between two users.

    The message body is stored twice: AES-256-GCM ciphertext in ``text``
    (with ``iv``/``tag``) for current clients and AES-128-ECB ciphertext in
    ``text_ecb`` for legacy readers. Both are keyed by ``time``, so ``time``
    must never change after creation. ``text_preview`` holds a truncated
    plaintext copy used only for search.

    Rows are never hard-deleted; ``deleted_one`` hides the row from the sender
    and ``deleted_two`` hides it from the recipient.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_pair", "from_id", "to_id", "id"),
        Index("ix_messages_unseen", "to_id", "from_id", "seen"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    to_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    page_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=NO_PAGE)

    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    text_ecb: Mapped[str] = mapped_column(Text, nullable=False, default="")
    text_preview: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    iv: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tag: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cipher_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=CIPHER_VERSION_ECB
    )

    media: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_file_name: Mapped[str] = mapped_column(
        "mediaFileName", String(255), nullable=False, default=""
    )
    stickers: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type_two: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    lat: Mapped[str] = mapped_column(String(32), nullable=False, default="0")
    lng: Mapped[str] = mapped_column(String(32), nullable=False, default="0")
    reply_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    story_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    seen: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deleted_one: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_two: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    forward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    edited: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    time: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def involves(self, user_id: int) -> bool:
        """Return True if the user is the sender or the recipient."""
        return user_id in (self.from_id, self.to_id)

    def counterpart_of(self, user_id: int) -> int:
        """Return the other participant from the given user's point of view."""
        return self.to_id if self.from_id == user_id else self.from_id

    def visible_to(self, user_id: int) -> bool:
        """Return True if the user has not hidden the message on their side."""
        if user_id == self.from_id and self.deleted_one:
            return False
        if user_id == self.to_id and self.deleted_two:
            return False
        return self.involves(user_id)


class MessageReaction(Base):
    """Single reaction a user placed on a message."""

    __tablename__ = "message_reactions"
    __table_args__ = (Index("uq_reaction_user_message", "user_id", "message_id", unique=True),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    reaction: Mapped[str] = mapped_column(String(50), nullable=False)


class MessageMark(Base):
    """Per-user pin and favorite flags on a single message."""

    __tablename__ = "message_marks"
    __table_args__ = (
        Index("uq_mark_user_message", "user_id", "message_id", unique=True),
        Index("ix_mark_user_chat", "user_id", "chat_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message_id: Mapped[int] = mapped_column(Integer, nullable=False)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fav: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
