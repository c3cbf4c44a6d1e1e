# src/privchat/api/v1/endpoints/chat.py
"""Private chat endpoints.

Every route is a POST under ``/chat`` and answers with the
``{"api_status": ..., ...}`` envelope.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from privchat.api.v1.dependencies import (
    ConversationServiceDep,
    CurrentUserIdDep,
    PipelineDep,
)
from privchat.api.v1.responses import render_outcome
from privchat.schemas.chat import (
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

router = APIRouter(prefix="/chat", tags=["chat"])


# --- messages -----------------------------------------------------------------------


@router.post("/get")
async def get_messages(
    body: MessagesRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Fetch conversation history, oldest first."""
    outcome = await pipeline.get_messages(
        user_id,
        body.recipient_id,
        limit=body.limit,
        message_id=body.message_id,
        after_id=body.after_message_id,
        before_id=body.before_message_id,
    )
    return render_outcome(outcome)


@router.post("/send")
async def send_message(
    body: SendMessageRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Encrypt, store and deliver a new message."""
    outcome = await pipeline.send_message(
        user_id,
        body.recipient_id,
        text=body.text,
        media=body.media,
        media_file_name=body.media_file_name,
        stickers=body.stickers,
        lat=body.lat,
        lng=body.lng,
        contact=body.contact,
        reply_id=body.reply_id,
        story_id=body.story_id,
        product_id=body.product_id,
    )
    return render_outcome(outcome)


@router.post("/loadmore")
async def load_more(
    body: LoadMoreRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Page back through older messages."""
    outcome = await pipeline.load_more(
        user_id, body.recipient_id, before_id=body.before_message_id, limit=body.limit
    )
    return render_outcome(outcome)


@router.post("/edit")
async def edit_message(
    body: EditMessageRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Replace the text of one of the caller's messages."""
    return render_outcome(await pipeline.edit_message(user_id, body.message_id, body.text))


@router.post("/search")
async def search_messages(
    body: SearchRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Substring search over message previews."""
    outcome = await pipeline.search_messages(
        user_id, body.recipient_id, body.query, limit=body.limit, offset=body.offset
    )
    return render_outcome(outcome)


@router.post("/seen")
async def seen_messages(
    body: RecipientRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Mark messages from the other participant as seen."""
    return render_outcome(await pipeline.mark_seen(user_id, body.recipient_id))


@router.post("/typing")
async def typing(
    body: TypingRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    return render_outcome(await pipeline.typing(user_id, body.recipient_id, body.typing))


# --- message actions ----------------------------------------------------------------


@router.post("/delete")
async def delete_message(
    body: DeleteMessageRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Delete a message for the caller or for everyone."""
    outcome = await pipeline.delete_message(user_id, body.message_id, body.delete_type)
    return render_outcome(outcome)


@router.post("/react")
async def react_message(
    body: ReactRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Add, replace or remove the caller's reaction."""
    return render_outcome(await pipeline.react(user_id, body.message_id, body.reaction))


@router.post("/pin")
async def pin_message(
    body: PinMessageRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    outcome = await pipeline.pin_message(user_id, body.message_id, body.chat_id, body.pin)
    return render_outcome(outcome)


@router.post("/pinned")
async def pinned_messages(
    body: ChatIdRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    return render_outcome(await pipeline.pinned_messages(user_id, body.chat_id))


@router.post("/forward")
async def forward_message(
    body: ForwardRequest, user_id: CurrentUserIdDep, pipeline: PipelineDep
) -> JSONResponse:
    """Forward a message to one or more users."""
    outcome = await pipeline.forward_message(user_id, body.message_id, body.targets())
    return render_outcome(outcome)


# --- conversations ------------------------------------------------------------------


@router.post("/chats")
async def get_chats(
    body: ChatsRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    """List the caller's conversations."""
    outcome = await service.list_chats(
        user_id, limit=body.limit, offset=body.offset, show_archived=body.show_archived
    )
    return render_outcome(outcome)


@router.post("/delete-conversation")
async def delete_conversation(
    body: DeleteConversationRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    outcome = await service.delete_conversation(user_id, body.recipient_id, body.delete_type)
    return render_outcome(outcome)


@router.post("/clear-history")
async def clear_history(
    body: RecipientRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.clear_history(user_id, body.recipient_id))


@router.post("/mute-status")
async def mute_status(
    body: ChatIdRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.mute_status(user_id, body.chat_id))


@router.post("/archive")
async def archive_chat(
    body: ChatSettingRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.archive(user_id, body.chat_id, body.archive))


@router.post("/mute")
async def mute_chat(
    body: ChatSettingRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    outcome = await service.mute(
        user_id, body.chat_id, notify=body.notify, call_chat=body.call_chat
    )
    return render_outcome(outcome)


@router.post("/pin-chat")
async def pin_chat(
    body: ChatSettingRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.pin_chat(user_id, body.chat_id, body.pin))


@router.post("/color")
async def change_color(
    body: ColorRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    """Change the shared accent color of a conversation."""
    return render_outcome(await service.change_color(user_id, body.recipient_id, body.color))


@router.post("/read")
async def read_chat(
    body: RecipientRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.read_chat(user_id, body.recipient_id))


@router.post("/unread")
async def unread_count(
    body: RecipientRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    return render_outcome(await service.unread_count(user_id, body.recipient_id))


# --- favorites ----------------------------------------------------------------------


@router.post("/fav")
async def favorite_message(
    body: FavoriteRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    outcome = await service.favorite(user_id, body.message_id, body.chat_id, body.fav)
    return render_outcome(outcome)


@router.post("/fav-list")
async def favorite_messages(
    body: FavoriteListRequest, user_id: CurrentUserIdDep, service: ConversationServiceDep
) -> JSONResponse:
    outcome = await service.favorites(
        user_id, body.chat_id, limit=body.limit, offset=body.offset
    )
    return render_outcome(outcome)
