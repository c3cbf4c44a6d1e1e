"""Credential validation for chat requests."""

from __future__ import annotations

import logging

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.core.settings import settings
from privchat.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


def create_access_token(user_id: int) -> str:
    """Issue a signed bearer token whose subject is ``user_id``."""
    return jwt.encode({"sub": str(user_id)}, settings.secret_key, algorithm=settings.jwt_algorithm)


def _user_id_from_jwt(token: str) -> int | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        return None
    user_id = int(subject)
    return user_id if user_id > 0 else None


class Authenticator:
    """Resolves an opaque credential to a user id.

    A credential is either a JWT signed with the service secret or a session
    id issued by the account subsystem.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.users = UserRepository(session)

    async def validate(self, credential: str | None) -> int | None:
        """Return the user id behind ``credential``, or None if it is not valid."""
        if not credential:
            return None
        user_id = _user_id_from_jwt(credential)
        if user_id is not None:
            return user_id
        user_id = await self.users.user_id_for_session(credential)
        if user_id is None:
            logger.debug("Rejected unknown access token")
        return user_id
