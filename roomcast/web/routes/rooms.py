"""
Music Room Routes for Roomcast.

All endpoints require a bearer token. Mutations that touch several rows
(create, close, set-dj) are single transactions in RoomService; the routes
only translate bodies and results.
"""

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Depends, FastAPI

from roomcast.core.db.models import UserRow
from roomcast.web.auth import current_user_dependency
from roomcast.web.schemas import (
    CreateRoomRequest,
    JoinCodeRequest,
    JoinRoomRequest,
    KickRequest,
    RoomIdRequest,
    SetDjRequest,
    StatusMessage,
)

if TYPE_CHECKING:
    from roomcast.core.rooms import RoomService
    from roomcast.core.users import UserService

logger = logging.getLogger(__name__)


def register_room_routes(app: FastAPI, rooms: "RoomService", users: "UserService") -> None:
    """
    Register music room routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        rooms: RoomService for room lifecycle and ownership
        users: UserService for bearer token resolution
    """
    router = APIRouter(prefix="/music-rooms", tags=["music-rooms"])
    CurrentUser = Annotated[UserRow, Depends(current_user_dependency(users))]

    @router.post("/create")
    async def create_room(body: CreateRoomRequest, user: CurrentUser) -> dict[str, Any]:
        room = await rooms.create_room(
            user,
            name=body.name,
            is_private=body.is_private,
            description=body.description,
            image_data=body.image_data,
        )
        return room.to_dict()

    @router.post("/join-room")
    async def join_room(body: JoinRoomRequest, user: CurrentUser) -> dict[str, Any]:
        view = await rooms.join_room(user, body.id, body.invitation_code)
        return view.to_dict()

    @router.post("/join-room-code")
    async def join_room_by_code(body: JoinCodeRequest, user: CurrentUser) -> dict[str, Any]:
        view = await rooms.join_room_by_code(user, body.invitation_code)
        return view.to_dict()

    @router.delete("/leave-room")
    async def leave_room(body: RoomIdRequest, user: CurrentUser) -> StatusMessage:
        await rooms.leave_room(user, body.music_room_id)
        return StatusMessage(message="Left music room")

    @router.delete("/close-room")
    async def close_room(body: RoomIdRequest, user: CurrentUser) -> StatusMessage:
        await rooms.close_room(user, body.music_room_id)
        return StatusMessage(message="Music room closed")

    @router.delete("/kick-participant")
    async def kick_participant(body: KickRequest, user: CurrentUser) -> StatusMessage:
        await rooms.kick_participant(user, body.room_id, body.user_id_to_kick)
        return StatusMessage(message="Participant removed")

    @router.post("/set-dj")
    async def set_dj(body: SetDjRequest, user: CurrentUser) -> StatusMessage:
        message = await rooms.set_dj(user, body.music_room_id, body.user_id)
        return StatusMessage(message=message)

    @router.post("/playlist-id")
    async def playlist_id(body: RoomIdRequest, user: CurrentUser) -> dict[str, str]:
        return {"playlistID": await rooms.playlist_for_room(body.music_room_id)}

    app.include_router(router)
