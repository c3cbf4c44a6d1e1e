# src/privchat/services/__init__.py
"""Business logic services for the privchat application."""

from .auth import Authenticator
from .conversations import ConversationService
from .crypto import DecryptionError, MessageCipher
from .fanout import ConnectionRegistry, Publisher
from .outcomes import Outcome, OutcomeStatus
from .pipeline import PrivateChatPipeline

__all__ = [
    "Authenticator",
    "ConnectionRegistry", "Publisher",
    "ConversationService",
    "DecryptionError", "MessageCipher",
    "Outcome", "OutcomeStatus",
    "PrivateChatPipeline",
]
