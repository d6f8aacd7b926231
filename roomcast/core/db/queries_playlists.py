"""
Playlist and track queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized DTOs.
- Playlist order is the insertion order of `track_playlists` (its `seq` column).

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from roomcast.core.db.models import (
    NewTrack,
    PlaylistRow,
    TrackRow,
    new_id,
    playlist_from_row,
    track_from_row,
)

_TRACK_COLUMNS = "id, track_id, title, artist, img_link, music_link, duration"

# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


async def insert_playlist(
    conn: aiosqlite.Connection,
    *,
    name: str,
    creator_id: str,
    description: str = "",
    image_data: str | None = None,
) -> PlaylistRow:
    playlist = PlaylistRow(
        id=new_id(),
        name=name,
        creator_id=creator_id,
        description=description,
        image_data=image_data,
    )
    await conn.execute(
        """
        INSERT INTO playlists(id, name, image_data, creator_id, description)
        VALUES (?, ?, ?, ?, ?)
        """,
        (playlist.id, playlist.name, playlist.image_data, playlist.creator_id, playlist.description),
    )
    return playlist


async def get_playlist(conn: aiosqlite.Connection, playlist_id: str) -> PlaylistRow | None:
    cursor = await conn.execute(
        "SELECT id, name, image_data, creator_id, description FROM playlists WHERE id = ?",
        (str(playlist_id),),
    )
    row = await cursor.fetchone()
    return playlist_from_row(row) if row is not None else None


async def set_playlist_creator(
    conn: aiosqlite.Connection,
    playlist_id: str,
    user_id: str,
) -> None:
    await conn.execute(
        "UPDATE playlists SET creator_id = ? WHERE id = ?",
        (user_id, playlist_id),
    )


async def delete_playlist(conn: aiosqlite.Connection, playlist_id: str) -> None:
    await conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


async def get_track(conn: aiosqlite.Connection, track_pk: str) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM tracks WHERE id = ?",
        (str(track_pk),),
    )
    row = await cursor.fetchone()
    return track_from_row(row) if row is not None else None


async def get_track_by_external_id(
    conn: aiosqlite.Connection,
    track_id: str,
) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM tracks WHERE track_id = ?",
        (track_id,),
    )
    row = await cursor.fetchone()
    return track_from_row(row) if row is not None else None


async def insert_track(conn: aiosqlite.Connection, track: NewTrack) -> TrackRow:
    row = TrackRow(
        id=new_id(),
        track_id=track.track_id,
        title=track.title,
        artist=track.artist,
        img_link=track.img_link,
        music_link=track.music_link,
        duration=int(track.duration),
    )
    await conn.execute(
        f"INSERT INTO tracks({_TRACK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            row.id,
            row.track_id,
            row.title,
            row.artist,
            row.img_link,
            row.music_link,
            row.duration,
        ),
    )
    return row


# ---------------------------------------------------------------------------
# Track <-> playlist join rows
# ---------------------------------------------------------------------------


async def insert_track_playlist(
    conn: aiosqlite.Connection,
    *,
    track_pk: str,
    playlist_id: str,
) -> None:
    await conn.execute(
        "INSERT INTO track_playlists(id, track_id, playlist_id) VALUES (?, ?, ?)",
        (new_id(), track_pk, playlist_id),
    )


async def delete_track_playlist(
    conn: aiosqlite.Connection,
    *,
    track_pk: str,
    playlist_id: str,
) -> int:
    cursor = await conn.execute(
        "DELETE FROM track_playlists WHERE track_id = ? AND playlist_id = ?",
        (track_pk, playlist_id),
    )
    return cursor.rowcount


async def delete_track_playlists_for_playlist(
    conn: aiosqlite.Connection,
    playlist_id: str,
) -> int:
    cursor = await conn.execute(
        "DELETE FROM track_playlists WHERE playlist_id = ?",
        (playlist_id,),
    )
    return cursor.rowcount


async def list_playlist_tracks(conn: aiosqlite.Connection, playlist_id: str) -> list[TrackRow]:
    cursor = await conn.execute(
        """
        SELECT t.id, t.track_id, t.title, t.artist, t.img_link, t.music_link, t.duration
        FROM track_playlists tp
        JOIN tracks t ON t.id = tp.track_id
        WHERE tp.playlist_id = ?
        ORDER BY tp.seq
        """,
        (str(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [track_from_row(r) for r in rows]


async def count_track_playlists(conn: aiosqlite.Connection, playlist_id: str) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM track_playlists WHERE playlist_id = ?",
        (str(playlist_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
