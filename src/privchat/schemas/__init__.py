# src/privchat/schemas/__init__.py
"""
Pydantic schemas for API request models.

These schemas define the structure of chat requests for validation.
"""

from .chat import (
    ChatIdRequest,
    ChatSettingRequest,
    ChatsRequest,
    ColorRequest,
    DeleteConversationRequest,
    DeleteMessageRequest,
    EditMessageRequest,
    FavoriteListRequest,
    FavoriteRequest,
    ForwardRequest,
    LoadMoreRequest,
    MessagesRequest,
    PinMessageRequest,
    ReactRequest,
    RecipientRequest,
    SearchRequest,
    SendMessageRequest,
    TypingRequest,
)

__all__ = [
    "ChatIdRequest", "ChatSettingRequest", "ChatsRequest", "ColorRequest",
    "DeleteConversationRequest", "DeleteMessageRequest", "EditMessageRequest",
    "FavoriteListRequest", "FavoriteRequest", "ForwardRequest",
    "LoadMoreRequest", "MessagesRequest", "PinMessageRequest", "ReactRequest",
    "RecipientRequest", "SearchRequest", "SendMessageRequest", "TypingRequest",
]
