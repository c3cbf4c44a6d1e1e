# src/privchat/api/v1/endpoints/realtime.py
"""WebSocket channel delivering chat events to a signed-in user."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from privchat.api.v1.dependencies import SessionDep
from privchat.services.auth import Authenticator
from privchat.services.fanout import ConnectionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _credential(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("access_token") or websocket.headers.get("access-token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value
    return None


@router.websocket("/ws")
async def chat_events(websocket: WebSocket, db: SessionDep) -> None:
    """Subscribe the socket to the caller's events until it disconnects.

    Frames are ``{"event": name, "data": payload}``; anything the client
    sends is ignored.
    """
    user_id = await Authenticator(db).validate(_credential(websocket))
    await db.close()
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry: ConnectionRegistry = websocket.app.state.registry
    await websocket.accept()
    registry.subscribe(user_id, websocket)
    logger.info("User %s connected (%s live)", user_id, registry.connection_count(user_id))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("User %s disconnected", user_id)
    finally:
        registry.unsubscribe(user_id, websocket)
