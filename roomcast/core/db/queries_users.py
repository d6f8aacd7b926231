"""
User and session-token queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized DTOs.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from roomcast.core.db.models import UserRow, new_id, user_from_row


async def insert_user(
    conn: aiosqlite.Connection,
    *,
    name: str,
    email: str,
    plan: str,
    image_data: str | None = None,
) -> UserRow:
    user = UserRow(id=new_id(), name=name, email=email, plan=plan, image_data=image_data)
    await conn.execute(
        "INSERT INTO users(id, name, email, plan, image_data) VALUES (?, ?, ?, ?, ?)",
        (user.id, user.name, user.email, user.plan, user.image_data),
    )
    return user


async def get_user(conn: aiosqlite.Connection, user_id: str) -> UserRow | None:
    cursor = await conn.execute(
        "SELECT id, name, email, plan, image_data FROM users WHERE id = ?",
        (str(user_id),),
    )
    row = await cursor.fetchone()
    return user_from_row(row) if row is not None else None


async def insert_token(conn: aiosqlite.Connection, *, user_id: str, value: str) -> None:
    await conn.execute(
        "INSERT INTO user_tokens(id, user_id, value) VALUES (?, ?, ?)",
        (new_id(), user_id, value),
    )


async def get_user_by_token(conn: aiosqlite.Connection, value: str) -> UserRow | None:
    cursor = await conn.execute(
        """
        SELECT u.id, u.name, u.email, u.plan, u.image_data
        FROM user_tokens t
        JOIN users u ON u.id = t.user_id
        WHERE t.value = ?
        """,
        (value,),
    )
    row = await cursor.fetchone()
    return user_from_row(row) if row is not None else None


async def delete_tokens_for_user(conn: aiosqlite.Connection, user_id: str) -> int:
    cursor = await conn.execute("DELETE FROM user_tokens WHERE user_id = ?", (user_id,))
    return cursor.rowcount


async def get_user_by_email(conn: aiosqlite.Connection, email: str) -> UserRow | None:
    cursor = await conn.execute(
        "SELECT id, name, email, plan, image_data FROM users WHERE email = ?",
        (email,),
    )
    row = await cursor.fetchone()
    return user_from_row(row) if row is not None else None


async def update_user(conn: aiosqlite.Connection, user: UserRow) -> None:
    await conn.execute(
        "UPDATE users SET name = ?, email = ?, plan = ?, image_data = ? WHERE id = ?",
        (user.name, user.email, user.plan, user.image_data, user.id),
    )
