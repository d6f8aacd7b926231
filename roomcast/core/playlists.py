"""
Playlists and the shared track store.

Tracks are deduplicated by their external catalogue id: storing a track whose
`track_id` is already known returns the stored row untouched.
"""

from __future__ import annotations

import logging

from roomcast.core import NotFoundError, ValidationError
from roomcast.core.db import queries_playlists, queries_rooms
from roomcast.core.db.models import NewTrack, PlaylistRow, TrackRow, UserRow
from roomcast.core.store import RoomDb

logger = logging.getLogger(__name__)


class PlaylistService:
    """Playlist CRUD and track association."""

    def __init__(self, db: RoomDb) -> None:
        self._db = db

    async def store_track(self, track: NewTrack) -> TrackRow:
        async with self._db.transaction() as conn:
            existing = await queries_playlists.get_track_by_external_id(conn, track.track_id)
            if existing is not None:
                return existing
            row = await queries_playlists.insert_track(conn, track)
        logger.debug("Stored track %s (%s - %s)", row.track_id, row.artist, row.title)
        return row

    async def create_playlist(
        self,
        user: UserRow,
        *,
        name: str,
        description: str = "",
        image_data: str | None = None,
    ) -> PlaylistRow:
        async with self._db.transaction() as conn:
            return await queries_playlists.insert_playlist(
                conn,
                name=name,
                creator_id=user.id,
                description=description,
                image_data=image_data,
            )

    async def add_track(self, playlist_id: str, track_pk: str) -> None:
        async with self._db.transaction() as conn:
            if await queries_playlists.get_playlist(conn, playlist_id) is None:
                raise NotFoundError("Playlist not found")
            if await queries_playlists.get_track(conn, track_pk) is None:
                raise NotFoundError("Track not found")
            await queries_playlists.insert_track_playlist(
                conn, track_pk=track_pk, playlist_id=playlist_id
            )

    async def remove_track(self, playlist_id: str, track_pk: str) -> int:
        async with self._db.transaction() as conn:
            return await queries_playlists.delete_track_playlist(
                conn, track_pk=track_pk, playlist_id=playlist_id
            )

    async def playlist_tracks(self, playlist_id: str) -> list[TrackRow]:
        """Tracks of a playlist in the order they were added."""
        return await self._db.playlist_tracks(playlist_id)

    async def remove_playlist(self, playlist_id: str) -> None:
        async with self._db.transaction() as conn:
            if await queries_playlists.get_playlist(conn, playlist_id) is None:
                raise NotFoundError("Playlist not found")
            if await queries_rooms.list_playlist_room_ids(conn, playlist_id):
                raise ValidationError("Playlist belongs to a music room; close the room instead")
            await queries_playlists.delete_track_playlists_for_playlist(conn, playlist_id)
            await queries_playlists.delete_playlist(conn, playlist_id)
        logger.info("Playlist %s removed", playlist_id)
