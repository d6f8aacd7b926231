"""
Socket Routes for Roomcast.

- WS /chats/connect?room=<id>: chat domain of a room
- WS /music-rooms/stream?room=<id>: playback domain of a room

Both handshakes authenticate first (Authorization header or `token` query
parameter) and close with 1008 on failure, before anything is registered.
After accept the socket is wrapped in a `Connection` and every inbound frame
goes to the matching fan-out. Whatever ends the receive loop, the connection
is removed from every domain before it is marked closed.
"""

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import APIRouter, FastAPI, WebSocket, status

from roomcast.core import AuthenticationError
from roomcast.core.db.models import UserRow
from roomcast.realtime.connection import Connection
from roomcast.realtime.dispatch import ChatFanout, PlaybackFanout
from roomcast.realtime.registry import ConnectionRegistry, DomainKey
from roomcast.web.auth import authenticate_websocket

if TYPE_CHECKING:
    from roomcast.core.users import UserService

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Connection, "str | bytes"], Awaitable[object]]


async def _accept(websocket: WebSocket, users: "UserService") -> UserRow | None:
    try:
        user = await authenticate_websocket(websocket, users)
    except AuthenticationError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    await websocket.accept()
    return user


async def _serve(
    websocket: WebSocket,
    conn: Connection,
    registry: ConnectionRegistry,
    handle: FrameHandler,
) -> None:
    """Receive loop shared by both socket kinds."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes") or b""
            try:
                await handle(conn, payload)
            except Exception as e:
                logger.exception("Error handling frame from %s: %s", conn.connection_id, e)
    finally:
        conn.begin_close()
        await registry.leave_all(conn)
        conn.mark_closed()
        logger.debug("Connection %s closed", conn.connection_id)


def register_socket_routes(
    app: FastAPI,
    registry: ConnectionRegistry,
    users: "UserService",
    chat: ChatFanout,
    playback: PlaybackFanout,
) -> None:
    """
    Register the chat and playback socket endpoints.

    Args:
        app: FastAPI application instance
        registry: ConnectionRegistry shared with the fan-outs
        users: UserService for handshake authentication
        chat: ChatFanout handling chat frames
        playback: PlaybackFanout handling playback frames
    """
    router = APIRouter(tags=["sockets"])

    @router.websocket("/chats/connect")
    async def chat_socket(websocket: WebSocket, room: str) -> None:
        user = await _accept(websocket, users)
        if user is None:
            return

        conn = Connection(websocket, user_id=user.id)
        await registry.join(DomainKey.chat(room), conn)
        logger.info("User %s connected to chat of room %s (%s)", user.id, room, conn.connection_id)
        await _serve(websocket, conn, registry, chat.handle_frame)

    @router.websocket("/music-rooms/stream")
    async def playback_socket(websocket: WebSocket, room: str) -> None:
        user = await _accept(websocket, users)
        if user is None:
            return

        conn = Connection(websocket, user_id=user.id)
        await registry.join(DomainKey.playback(room), conn)
        logger.info(
            "User %s connected to playback of room %s (%s)", user.id, room, conn.connection_id
        )

        async def handle(c: Connection, payload: "str | bytes") -> object:
            return await playback.handle_frame(c, room, payload)

        await _serve(websocket, conn, registry, handle)

    app.include_router(router)
