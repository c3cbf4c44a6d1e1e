# src/privchat/models/user.py
"""SQLAlchemy models for user profiles and app sessions.

Both tables belong to the account subsystem; this service only reads them.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from privchat.db.session import Base


class User(Base):
    """Basic profile shown next to messages."""

    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    avatar: Mapped[str] = mapped_column(Text, nullable=False, default="")
    lastseen: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    @property
    def name(self) -> str:
        """Return the display name, falling back to the username."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username


class AppSession(Base):
    """Opaque access token issued by the account subsystem."""

    __tablename__ = "app_sessions"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
