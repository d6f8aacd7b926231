"""
Roomcast table definitions, versioned through `PRAGMA user_version`.

Each step in `migrate()` upgrades by exactly one version and never goes back.
`RoomDb.ensure_schema()` is the only caller.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

SCHEMA_VERSION: Final[int] = 2


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """Bring `conn` up to SCHEMA_VERSION (expects autocommit and foreign keys on)."""
    row = await (await conn.execute("PRAGMA user_version;")).fetchone()
    version = int(row[0]) if row is not None else 0

    if version > SCHEMA_VERSION:
        raise RuntimeError(
            f"roomcast database is at schema v{version}; this build only knows v{SCHEMA_VERSION}"
        )
    if version < SCHEMA_VERSION:
        await migrate(conn, from_version=version, to_version=SCHEMA_VERSION)
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    # v0 -> v1: users, rooms, playlists, tracks and their join tables
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                plan TEXT NOT NULL,
                image_data TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_tokens (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                value TEXT NOT NULL UNIQUE
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rooms (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                invitation_code TEXT NOT NULL,
                is_private INTEGER NOT NULL DEFAULT 0,
                creator_id TEXT NOT NULL REFERENCES users(id),
                description TEXT NOT NULL DEFAULT '',
                users_in_room INTEGER NOT NULL,
                image_data TEXT
            )
            """
        )
        # No UNIQUE(user_id, room_id): the join logic keeps one row per pair.
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS room_members (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id),
                room_id TEXT NOT NULL REFERENCES rooms(id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                image_data TEXT,
                creator_id TEXT NOT NULL REFERENCES users(id),
                description TEXT NOT NULL DEFAULT ''
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS room_playlists (
                id TEXT PRIMARY KEY,
                room_id TEXT NOT NULL REFERENCES rooms(id),
                playlist_id TEXT NOT NULL REFERENCES playlists(id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tracks (
                id TEXT PRIMARY KEY,
                track_id TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                artist TEXT NOT NULL,
                img_link TEXT NOT NULL DEFAULT '',
                music_link TEXT NOT NULL DEFAULT '',
                duration INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        # `seq` gives playlists their insertion order.
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS track_playlists (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                track_id TEXT NOT NULL REFERENCES tracks(id),
                playlist_id TEXT NOT NULL REFERENCES playlists(id)
            )
            """
        )

        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_user_tokens_user ON user_tokens(user_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_room_members_room_user "
            "ON room_members(room_id, user_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_room_members_user ON room_members(user_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_room_playlists_room ON room_playlists(room_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rooms_invitation_code ON rooms(invitation_code);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_track_playlists_playlist "
            "ON track_playlists(playlist_id, seq);"
        )
        from_version = 1

    # v1 -> v2: chat
    if from_version == 1 and to_version >= 2:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_messages (
                id TEXT PRIMARY KEY,
                message TEXT NOT NULL,
                creator_id TEXT NOT NULL REFERENCES users(id),
                room_id TEXT NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
                created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_chat_messages_room ON chat_messages(room_id);"
        )
        from_version = 2
