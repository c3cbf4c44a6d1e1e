# src/privchat/main.py
"""Main entry point for the privchat application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from privchat.api.v1 import chat_router, realtime_router
from privchat.api.v1.responses import error_response
from privchat.core.logging import configure_logging
from privchat.core.settings import settings
from privchat.services.fanout import ConnectionRegistry
from privchat.services.redis_fanout import RedisPublisher, RedisRelay

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings)
    relay: RedisRelay | None = None
    client: redis.Redis | None = None
    if settings.fanout_backend == "redis":
        client = redis.from_url(settings.redis_url)
        app.state.publisher = RedisPublisher(client, settings.fanout_channel_prefix)
        relay = RedisRelay(client, settings.fanout_channel_prefix, app.state.registry)
        await relay.start()
    logger.info("%s %s started (fan-out: %s)", settings.app_name, settings.app_version,
                settings.fanout_backend)
    try:
        yield
    finally:
        if relay is not None:
            await relay.stop()
        if client is not None:
            await client.aclose()


# Initialize FastAPI app
app = FastAPI(
    title="privchat API",
    description="Encrypted private messaging backend",
    version=settings.app_version,
    lifespan=lifespan,
)

# In-process delivery is the default; the lifespan swaps in Redis when configured
app.state.registry = ConnectionRegistry()
app.state.publisher = app.state.registry

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(chat_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(400, f"{location}: {message}" if location else message)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("privchat.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
