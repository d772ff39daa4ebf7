"""WebSocket endpoint attaching clients to the realtime broadcaster."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect
from sqlalchemy import select

from app.api.deps import get_account_from_token
from app.database import get_db_session
from app.models import Inbox, ServerMember
from app.services.cache import AccountCache
from hearth.realtime import WebSocketConnection, channel_room, get_registry, server_room

router = APIRouter(tags=["ws"])

logger = logging.getLogger(__name__)

AUTHENTICATED_EVENT = "user:authenticated"


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


def _load_session(token: str) -> tuple[AccountCache, list[str]]:
    """Authenticate ``token`` and list the rooms the connection should join."""

    with get_db_session() as db:
        account = get_account_from_token(token, db)
        server_ids = db.execute(
            select(ServerMember.server_id).where(ServerMember.user_id == account.user_id)
        ).scalars()
        inbox_channel_ids = db.execute(
            select(Inbox.channel_id).where(Inbox.created_by_id == account.user_id)
        ).scalars()
        rooms = [server_room(server_id) for server_id in server_ids]
        rooms.extend(channel_room(channel_id) for channel_id in inbox_channel_ids)
    return account, rooms


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    token = _extract_token(websocket)
    if token is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return
    try:
        account, rooms = _load_session(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return

    await websocket.accept()
    registry = get_registry()
    connection = WebSocketConnection(websocket, account.user_id)
    registry.register(connection)
    registry.join(connection.id, *rooms)
    logger.debug(
        "Realtime connection opened",
        extra={"user_id": account.user_id, "connection_id": connection.id},
    )

    try:
        await connection.send(
            AUTHENTICATED_EVENT,
            {
                "socketId": connection.id,
                "user": {"id": account.user_id, "username": account.username, "tag": account.tag},
            },
        )
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("event") == "ping":
                await connection.send("pong", {})
    except (WebSocketDisconnect, RuntimeError):
        pass
    finally:
        registry.unregister(connection.id)
        logger.debug(
            "Realtime connection closed",
            extra={"user_id": account.user_id, "connection_id": connection.id},
        )
