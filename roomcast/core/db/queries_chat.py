"""
Chat message queries.

Messages are append-only; there is no update query on purpose.
"""

from __future__ import annotations

import aiosqlite

from roomcast.core.db.models import ChatMessageRow, new_id


async def insert_chat_message(
    conn: aiosqlite.Connection,
    *,
    message: str,
    creator_id: str,
    room_id: str,
) -> ChatMessageRow:
    row = ChatMessageRow(id=new_id(), message=message, creator_id=creator_id, room_id=room_id)
    await conn.execute(
        "INSERT INTO chat_messages(id, message, creator_id, room_id) VALUES (?, ?, ?, ?)",
        (row.id, row.message, row.creator_id, row.room_id),
    )
    return row


async def list_chat_messages(conn: aiosqlite.Connection, room_id: str) -> list[ChatMessageRow]:
    cursor = await conn.execute(
        """
        SELECT id, message, creator_id, room_id
        FROM chat_messages
        WHERE room_id = ?
        ORDER BY rowid
        """,
        (str(room_id),),
    )
    rows = await cursor.fetchall()
    return [
        ChatMessageRow(
            id=r["id"],
            message=r["message"],
            creator_id=r["creator_id"],
            room_id=r["room_id"],
        )
        for r in rows
    ]
