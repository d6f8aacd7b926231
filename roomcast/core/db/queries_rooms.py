"""
Room, membership and room-playlist link queries.

This module contains queries for:
- Rooms (insert, lookup by id / invitation code, owner reassignment, delete)
- Memberships (lookup, insert, in-place user reassignment, delete)
- Room-playlist links

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized DTOs.
- Callers that mutate are expected to hold `RoomDb.transaction()`.

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from roomcast.core.db.models import (
    MembershipRow,
    RoomRow,
    membership_from_row,
    new_id,
    room_from_row,
)

_ROOM_COLUMNS = (
    "id, name, invitation_code, is_private, creator_id, description, users_in_room, image_data"
)

# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


async def insert_room(conn: aiosqlite.Connection, room: RoomRow) -> None:
    await conn.execute(
        f"INSERT INTO rooms({_ROOM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            room.id,
            room.name,
            room.invitation_code,
            1 if room.is_private else 0,
            room.creator_id,
            room.description,
            int(room.users_in_room),
            room.image_data,
        ),
    )


async def get_room(conn: aiosqlite.Connection, room_id: str) -> RoomRow | None:
    cursor = await conn.execute(
        f"SELECT {_ROOM_COLUMNS} FROM rooms WHERE id = ?",
        (str(room_id),),
    )
    row = await cursor.fetchone()
    return room_from_row(row) if row is not None else None


async def find_rooms_by_code(conn: aiosqlite.Connection, invitation_code: str) -> list[RoomRow]:
    """All rooms carrying an invitation code, oldest first (codes are not unique)."""
    cursor = await conn.execute(
        f"SELECT {_ROOM_COLUMNS} FROM rooms WHERE invitation_code = ? ORDER BY rowid",
        (invitation_code,),
    )
    rows = await cursor.fetchall()
    return [room_from_row(r) for r in rows]


async def set_room_creator(conn: aiosqlite.Connection, room_id: str, user_id: str) -> None:
    await conn.execute("UPDATE rooms SET creator_id = ? WHERE id = ?", (user_id, room_id))


async def delete_room(conn: aiosqlite.Connection, room_id: str) -> None:
    await conn.execute("DELETE FROM rooms WHERE id = ?", (room_id,))


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


async def get_membership(
    conn: aiosqlite.Connection,
    *,
    room_id: str,
    user_id: str,
) -> MembershipRow | None:
    cursor = await conn.execute(
        """
        SELECT id, user_id, room_id
        FROM room_members
        WHERE room_id = ? AND user_id = ?
        ORDER BY rowid
        LIMIT 1
        """,
        (str(room_id), str(user_id)),
    )
    row = await cursor.fetchone()
    return membership_from_row(row) if row is not None else None


async def list_memberships(conn: aiosqlite.Connection, room_id: str) -> list[MembershipRow]:
    cursor = await conn.execute(
        "SELECT id, user_id, room_id FROM room_members WHERE room_id = ? ORDER BY rowid",
        (str(room_id),),
    )
    rows = await cursor.fetchall()
    return [membership_from_row(r) for r in rows]


async def insert_membership(
    conn: aiosqlite.Connection,
    *,
    room_id: str,
    user_id: str,
) -> MembershipRow:
    membership = MembershipRow(id=new_id(), user_id=user_id, room_id=room_id)
    await conn.execute(
        "INSERT INTO room_members(id, user_id, room_id) VALUES (?, ?, ?)",
        (membership.id, membership.user_id, membership.room_id),
    )
    return membership


async def set_membership_user(
    conn: aiosqlite.Connection,
    membership_id: str,
    user_id: str,
) -> None:
    """Re-point an existing membership row at another user (the row id is kept)."""
    await conn.execute(
        "UPDATE room_members SET user_id = ? WHERE id = ?",
        (user_id, membership_id),
    )


async def delete_membership_row(conn: aiosqlite.Connection, membership_id: str) -> None:
    await conn.execute("DELETE FROM room_members WHERE id = ?", (membership_id,))


async def delete_memberships(
    conn: aiosqlite.Connection,
    *,
    room_id: str,
    user_id: str | None = None,
) -> int:
    """Delete the memberships of a room, or of one user in it."""
    if user_id is None:
        cursor = await conn.execute("DELETE FROM room_members WHERE room_id = ?", (room_id,))
    else:
        cursor = await conn.execute(
            "DELETE FROM room_members WHERE room_id = ? AND user_id = ?",
            (room_id, user_id),
        )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Room <-> playlist link
# ---------------------------------------------------------------------------


async def insert_room_playlist(
    conn: aiosqlite.Connection,
    *,
    room_id: str,
    playlist_id: str,
) -> None:
    await conn.execute(
        "INSERT INTO room_playlists(id, room_id, playlist_id) VALUES (?, ?, ?)",
        (new_id(), room_id, playlist_id),
    )


async def list_room_playlist_ids(conn: aiosqlite.Connection, room_id: str) -> list[str]:
    cursor = await conn.execute(
        "SELECT playlist_id FROM room_playlists WHERE room_id = ? ORDER BY rowid",
        (str(room_id),),
    )
    rows = await cursor.fetchall()
    return [r["playlist_id"] for r in rows]


async def delete_room_playlists(conn: aiosqlite.Connection, room_id: str) -> None:
    await conn.execute("DELETE FROM room_playlists WHERE room_id = ?", (room_id,))


async def list_playlist_room_ids(conn: aiosqlite.Connection, playlist_id: str) -> list[str]:
    cursor = await conn.execute(
        "SELECT room_id FROM room_playlists WHERE playlist_id = ? ORDER BY rowid",
        (str(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [r["room_id"] for r in rows]
