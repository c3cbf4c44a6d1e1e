"""Tagged results returned by chat operations."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Concatenate, ParamSpec, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from privchat.services.crypto import DecryptionError

logger = logging.getLogger(__name__)

P = ParamSpec("P")


class OutcomeStatus(Enum):
    """Kinds of result an operation can report."""

    OK = 200
    INVALID = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    INTERNAL = 500


@dataclass(frozen=True)
class Outcome:
    """Result of a single chat operation.

    ``value`` carries the response payload on success; ``error`` carries a
    caller-safe message otherwise.
    """

    status: OutcomeStatus
    value: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def status_code(self) -> int:
        return self.status.value

    @classmethod
    def success(cls, **value: Any) -> Outcome:
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def invalid(cls, error: str) -> Outcome:
        return cls(OutcomeStatus.INVALID, error=error)

    @classmethod
    def forbidden(cls, error: str) -> Outcome:
        return cls(OutcomeStatus.FORBIDDEN, error=error)

    @classmethod
    def not_found(cls, error: str = "Message not found") -> Outcome:
        return cls(OutcomeStatus.NOT_FOUND, error=error)

    @classmethod
    def internal(cls, error: str) -> Outcome:
        return cls(OutcomeStatus.INTERNAL, error=error)


class HasSession(Protocol):
    session: AsyncSession


def operation(
    failure_message: str,
) -> Callable[
    [Callable[Concatenate[Any, P], Awaitable[Outcome]]],
    Callable[Concatenate[Any, P], Awaitable[Outcome]],
]:
    """Convert storage and decryption failures into an ``INTERNAL`` outcome.

    The wrapped coroutine runs inside the owner's session; on failure the
    session is rolled back so no partial write survives, the original error is
    logged and the caller only sees ``failure_message``.
    """

    def decorator(
        func: Callable[Concatenate[Any, P], Awaitable[Outcome]],
    ) -> Callable[Concatenate[Any, P], Awaitable[Outcome]]:
        @functools.wraps(func)
        async def wrapper(self: HasSession, *args: P.args, **kwargs: P.kwargs) -> Outcome:
            try:
                return await func(self, *args, **kwargs)
            except (SQLAlchemyError, DecryptionError):
                logger.exception("%s failed", func.__qualname__)
                await self.session.rollback()
                return Outcome.internal(failure_message)

        return wrapper

    return decorator
