"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.db.session import get_session
from privchat.services.auth import Authenticator
from privchat.services.conversations import ConversationService
from privchat.services.fanout import Publisher
from privchat.services.pipeline import PrivateChatPipeline

# Bearer tokens are optional; opaque tokens may arrive in a header or query string instead
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_publisher(request: Request) -> Publisher:
    """Return the publisher chat events are handed to."""
    return request.app.state.publisher


PublisherDep = Annotated[Publisher, Depends(get_publisher)]


async def get_current_user_id(
    db: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    access_token_header: Annotated[str | None, Header(alias="access-token")] = None,
    access_token: Annotated[str | None, Query()] = None,
) -> int:
    """Resolve the caller's user id from whichever credential was supplied.

    Raises:
        HTTPException: If no credential was sent or it does not resolve to a user
    """
    token = access_token_header or access_token
    if token is None and credentials is not None:
        token = credentials.credentials
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="access_token is required",
        )
    user_id = await Authenticator(db).validate(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access_token",
        )
    return user_id


# Type alias for current user dependency
CurrentUserIdDep = Annotated[int, Depends(get_current_user_id)]


def get_pipeline(db: SessionDep, publisher: PublisherDep) -> PrivateChatPipeline:
    """Build the message pipeline for the current request."""
    return PrivateChatPipeline(db, publisher)


def get_conversation_service(db: SessionDep, publisher: PublisherDep) -> ConversationService:
    """Build the conversation service for the current request."""
    return ConversationService(db, publisher)


PipelineDep = Annotated[PrivateChatPipeline, Depends(get_pipeline)]
ConversationServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]
