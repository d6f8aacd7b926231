"""
Room database access layer.

Goals:
- SQLite + aiosqlite, async/await friendly.
- One connection, explicit transactions: multi-row changes (room creation,
  close cascade, DJ handoff) run inside `transaction()` and either commit
  together or roll back together.

Note:
- Models/DTOs live in `roomcast.core.db.models`
- Schema/migrations live in `roomcast.core.db.schema`
- Query functions live in `roomcast.core.db.queries_*` modules
- `RoomDb` is the facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from roomcast.core import PersistenceError
from roomcast.core.db import queries_chat, queries_playlists, queries_rooms, queries_users
from roomcast.core.db.models import (
    ChatMessageRow,
    MembershipRow,
    PlaylistRow,
    RoomRow,
    TrackRow,
    UserRow,
)
from roomcast.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)


class RoomDb:
    """
    Async access layer for the room database.

    Usage:
        db = RoomDb("roomcast.sqlite3")
        await db.open()
        await db.ensure_schema()
        async with db.transaction() as conn:
            await queries_rooms.insert_room(conn, room)
        await db.close()

    Notes:
    - The connection runs in autocommit mode; `transaction()` issues
      BEGIN IMMEDIATE / COMMIT / ROLLBACK itself.
    - Every access (reads included) holds `_lock`, so a reader never observes
      another coroutine's half-finished transaction on the shared connection.
      The lock is not reentrant: do not call facade methods from inside
      `transaction()`, use the yielded connection with the query modules.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        logger.debug("Opened room DB at %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("RoomDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        async with self._lock:
            await ensure_schema_sql(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a block as one atomic unit.

        Any exception raised inside the block rolls back every statement
        executed in it; sqlite errors are re-raised as PersistenceError,
        everything else propagates unchanged.
        """
        conn = self._require_conn()
        async with self._lock:
            try:
                await conn.execute("BEGIN IMMEDIATE;")
            except sqlite3.Error as e:
                raise PersistenceError(f"Could not begin transaction: {e}") from e

            try:
                yield conn
            except sqlite3.Error as e:
                await self._rollback(conn)
                raise PersistenceError(str(e)) from e
            except BaseException:
                await self._rollback(conn)
                raise

            try:
                await conn.execute("COMMIT;")
            except sqlite3.Error as e:
                await self._rollback(conn)
                raise PersistenceError(f"Commit failed: {e}") from e

    @staticmethod
    async def _rollback(conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("ROLLBACK;")
        except sqlite3.Error as e:
            # Already rolled back by SQLite itself (e.g. after a constraint abort).
            logger.debug("Rollback skipped: %s", e)

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        async with self._lock:
            try:
                yield conn
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e

    # ===========================================================================
    # Users / sessions
    # ===========================================================================

    async def get_user(self, user_id: str) -> UserRow | None:
        async with self._reading() as conn:
            return await queries_users.get_user(conn, user_id)

    async def get_user_by_token(self, token: str) -> UserRow | None:
        async with self._reading() as conn:
            return await queries_users.get_user_by_token(conn, token)

    # ===========================================================================
    # Rooms / memberships
    # ===========================================================================

    async def get_room(self, room_id: str) -> RoomRow | None:
        async with self._reading() as conn:
            return await queries_rooms.get_room(conn, room_id)

    async def get_membership(self, *, room_id: str, user_id: str) -> MembershipRow | None:
        async with self._reading() as conn:
            return await queries_rooms.get_membership(conn, room_id=room_id, user_id=user_id)

    async def list_memberships(self, room_id: str) -> list[MembershipRow]:
        async with self._reading() as conn:
            return await queries_rooms.list_memberships(conn, room_id)

    async def room_playlist_ids(self, room_id: str) -> list[str]:
        async with self._reading() as conn:
            return await queries_rooms.list_room_playlist_ids(conn, room_id)

    # ===========================================================================
    # Playlists / tracks
    # ===========================================================================

    async def get_playlist(self, playlist_id: str) -> PlaylistRow | None:
        async with self._reading() as conn:
            return await queries_playlists.get_playlist(conn, playlist_id)

    async def get_track_by_external_id(self, track_id: str) -> TrackRow | None:
        async with self._reading() as conn:
            return await queries_playlists.get_track_by_external_id(conn, track_id)

    async def playlist_tracks(self, playlist_id: str) -> list[TrackRow]:
        async with self._reading() as conn:
            return await queries_playlists.list_playlist_tracks(conn, playlist_id)

    async def count_track_playlists(self, playlist_id: str) -> int:
        async with self._reading() as conn:
            return await queries_playlists.count_track_playlists(conn, playlist_id)

    # ===========================================================================
    # Chat
    # ===========================================================================

    async def save_chat_message(
        self,
        *,
        message: str,
        creator_id: str,
        room_id: str,
    ) -> ChatMessageRow:
        async with self.transaction() as conn:
            return await queries_chat.insert_chat_message(
                conn, message=message, creator_id=creator_id, room_id=room_id
            )

    async def chat_messages(self, room_id: str) -> list[ChatMessageRow]:
        async with self._reading() as conn:
            return await queries_chat.list_chat_messages(conn, room_id)
