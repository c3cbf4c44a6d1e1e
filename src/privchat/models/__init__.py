# src/privchat/models/__init__.py
"""SQLAlchemy models for the privchat application."""

from .conversation import Conversation
from .message import Message, MessageMark, MessageReaction
from .user import AppSession, User

__all__ = [
    "Conversation",
    "Message", "MessageMark", "MessageReaction",
    "AppSession", "User",
]
