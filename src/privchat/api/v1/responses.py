"""Response envelope shared by every chat endpoint."""

from typing import Any

from fastapi.responses import JSONResponse

from privchat.services.outcomes import Outcome


def error_response(status_code: int, message: str) -> JSONResponse:
    """Return ``{"api_status", "error_message"}`` with a matching HTTP status."""
    return JSONResponse(
        status_code=status_code,
        content={"api_status": status_code, "error_message": message},
    )


def render_outcome(outcome: Outcome) -> JSONResponse:
    """Turn an operation outcome into the API envelope."""
    if not outcome.ok:
        return error_response(outcome.status_code, outcome.error or "Request failed")
    content: dict[str, Any] = {"api_status": outcome.status_code, **outcome.value}
    return JSONResponse(status_code=outcome.status_code, content=content)
