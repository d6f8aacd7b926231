"""
Playlist Routes for Roomcast.

Provides the track store and playlist CRUD endpoints:
- /playlists/storage: store a track (deduplicated by trackID)
- /playlists/create: create an empty playlist owned by the caller
- /playlists/add-track, /playlists/remove-track: playlist membership
- /playlists/tracks: tracks of a playlist in insertion order
- /playlists/remove-playlist: delete a playlist and its track rows
"""

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Depends, FastAPI

from roomcast.core.db.models import UserRow
from roomcast.web.auth import current_user_dependency
from roomcast.web.schemas import (
    CreatePlaylistRequest,
    IdRequest,
    StatusMessage,
    TrackIn,
    TrackToPlaylistRequest,
)

if TYPE_CHECKING:
    from roomcast.core.playlists import PlaylistService
    from roomcast.core.users import UserService

logger = logging.getLogger(__name__)


def register_playlist_routes(
    app: FastAPI,
    playlists: "PlaylistService",
    users: "UserService",
) -> None:
    """
    Register playlist routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        playlists: PlaylistService for track storage and playlist CRUD
        users: UserService for bearer token resolution
    """
    router = APIRouter(prefix="/playlists", tags=["playlists"])
    CurrentUser = Annotated[UserRow, Depends(current_user_dependency(users))]

    @router.post("/storage")
    async def store_track(body: TrackIn, user: CurrentUser) -> dict[str, Any]:
        track = await playlists.store_track(body.to_new_track())
        return track.to_dict()

    @router.post("/create")
    async def create_playlist(body: CreatePlaylistRequest, user: CurrentUser) -> dict[str, Any]:
        playlist = await playlists.create_playlist(
            user,
            name=body.name,
            description=body.description,
            image_data=body.image_data,
        )
        return playlist.to_dict()

    @router.post("/add-track")
    async def add_track(body: TrackToPlaylistRequest, user: CurrentUser) -> StatusMessage:
        await playlists.add_track(body.playlist_id, body.track_id)
        return StatusMessage(message="ok")

    @router.delete("/remove-track")
    async def remove_track(body: TrackToPlaylistRequest, user: CurrentUser) -> StatusMessage:
        removed = await playlists.remove_track(body.playlist_id, body.track_id)
        logger.debug("Removed %d row(s) of track %s", removed, body.track_id)
        return StatusMessage(message="ok")

    @router.post("/tracks")
    async def playlist_tracks(body: IdRequest, user: CurrentUser) -> list[dict[str, Any]]:
        return [track.to_dict() for track in await playlists.playlist_tracks(body.id)]

    @router.delete("/remove-playlist")
    async def remove_playlist(body: IdRequest, user: CurrentUser) -> StatusMessage:
        await playlists.remove_playlist(body.id)
        return StatusMessage(message="Playlist removed")

    app.include_router(router)
