# src/privchat/models/conversation.py
"""Per-user conversation directory rows."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from privchat.db.session import Base


class Conversation(Base):
    """Conversation metadata owned by one user about one counterpart.

    Rows are asymmetric: ``(A, B)`` and ``(B, A)`` are independent except for
    ``time`` (touched on both sides by every exchanged message) and ``color``
    (written to both sides).
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("uq_conversation_pair", "owner_id", "counterpart_id", unique=True),
        Index("ix_conversation_owner_time", "owner_id", "time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    counterpart_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    notify: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    call_chat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    archive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
