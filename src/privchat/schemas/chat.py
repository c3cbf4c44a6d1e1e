# src/privchat/schemas/chat.py
"""Private chat request schemas."""

from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# Row ids and user ids are 64-bit signed integers in storage
Id = Annotated[int, Field(ge=0, le=2**63 - 1)]
Limit = Annotated[int, Field(ge=0, le=2**31 - 1)]


class ChatRequest(BaseModel):
    """Base for chat requests; unknown fields such as ``access_token`` are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MessagesRequest(ChatRequest):
    """Schema for fetching conversation history."""

    recipient_id: Id = Field(0, description="The other participant")
    limit: Limit | None = Field(None, description="Page size, capped server-side")
    message_id: Id = Field(0, description="Fetch a single message by id")
    after_message_id: Id = Field(0, description="Only messages newer than this id")
    before_message_id: Id = Field(0, description="Only messages older than this id")


class LoadMoreRequest(ChatRequest):
    """Schema for paging back through older messages."""

    recipient_id: Id = 0
    before_message_id: Id = 0
    limit: Limit | None = None


class SendMessageRequest(ChatRequest):
    """Schema for sending a new private message."""

    recipient_id: Id = Field(0, description="Recipient user id")
    text: str = Field("", description="Plaintext body, encrypted before storage")
    media: str = Field("", description="Uploaded media URL")
    media_file_name: str = Field(
        "",
        validation_alias=AliasChoices("mediaFileName", "media_file_name"),
    )
    stickers: str = ""
    lat: str = "0"
    lng: str = "0"
    contact: str = Field("", description="Serialized contact card")
    reply_id: Id = 0
    story_id: Id = 0
    product_id: Id = 0


class EditMessageRequest(ChatRequest):
    message_id: Id = 0
    text: str = ""


class SearchRequest(ChatRequest):
    recipient_id: Id = Field(0, validation_alias=AliasChoices("recipient_id", "chat_id"))
    query: str = ""
    limit: Limit | None = None
    offset: Limit = 0


class RecipientRequest(ChatRequest):
    """Schema for requests that only name the other participant."""

    recipient_id: Id = Field(0, validation_alias=AliasChoices("recipient_id", "user_id"))


class TypingRequest(ChatRequest):
    recipient_id: Id = 0
    typing: bool = False


class DeleteMessageRequest(ChatRequest):
    message_id: Id = 0
    delete_type: Literal["just_me", "everyone"] = "just_me"


class ReactRequest(ChatRequest):
    message_id: Id = Field(0, validation_alias=AliasChoices("message_id", "id"))
    reaction: str = ""


class PinMessageRequest(ChatRequest):
    message_id: Id = 0
    chat_id: Id = Field(0, description="The other participant of the conversation")
    pin: bool = False


class ChatIdRequest(ChatRequest):
    chat_id: Id = Field(0, validation_alias=AliasChoices("chat_id", "recipient_id"))


class ForwardRequest(ChatRequest):
    """Schema for forwarding a message to one or more users.

    ``recipient_ids`` may be a list or a comma separated string; a single
    ``recipient_id`` is accepted as well.
    """

    message_id: Id = Field(0, validation_alias=AliasChoices("message_id", "id"))
    recipient_ids: list[Id] = Field(default_factory=list)
    recipient_id: Id = 0

    @field_validator("recipient_ids", mode="before")
    @classmethod
    def split_recipient_ids(cls, value: Any) -> Any:
        """Accept ``"1,2,3"`` as well as ``[1, 2, 3]``."""
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, int):
            return [value]
        return value

    def targets(self) -> list[int]:
        """Return the requested recipients, preferring ``recipient_ids``."""
        if self.recipient_ids:
            return self.recipient_ids
        return [self.recipient_id] if self.recipient_id else []


class ChatsRequest(ChatRequest):
    limit: Limit | None = Field(None, validation_alias=AliasChoices("limit", "user_limit"))
    offset: Limit = Field(0, validation_alias=AliasChoices("offset", "user_offset"))
    show_archived: bool = False


class DeleteConversationRequest(ChatRequest):
    recipient_id: Id = Field(0, validation_alias=AliasChoices("user_id", "recipient_id"))
    delete_type: Literal["me", "all"] = "me"


class ChatSettingRequest(ChatRequest):
    """Schema for per-conversation flag changes (archive, mute, pin)."""

    chat_id: Id = Field(0, validation_alias=AliasChoices("chat_id", "user_id"))
    archive: bool = False
    notify: bool = True
    call_chat: bool = True
    pin: bool = False


class ColorRequest(ChatRequest):
    recipient_id: Id = Field(0, validation_alias=AliasChoices("user_id", "chat_id"))
    color: str = ""


class FavoriteRequest(ChatRequest):
    message_id: Id = Field(0, validation_alias=AliasChoices("message_id", "id"))
    chat_id: Id = 0
    fav: bool = False


class FavoriteListRequest(ChatRequest):
    chat_id: Id = Field(0, validation_alias=AliasChoices("chat_id", "recipient_id"))
    limit: Limit | None = None
    offset: Limit = 0
