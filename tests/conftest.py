"""
Shared fixtures for the Roomcast test suite.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable

import pytest

from roomcast.core.store import RoomDb
from roomcast.core.users import Session, UserService
from roomcast.realtime.connection import Connection


class FakeTransport:
    """In-memory stand-in for a WebSocket that records every frame."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[str | bytes] = []
        self.closed_with: int | None = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    @property
    def texts(self) -> list[str]:
        return [f for f in self.sent if isinstance(f, str)]

    @property
    def binaries(self) -> list[bytes]:
        return [f for f in self.sent if isinstance(f, bytes)]


@pytest.fixture
def make_conn() -> Callable[..., tuple[Connection, FakeTransport]]:
    """Factory for connections backed by a FakeTransport."""

    def _make(*, fail: bool = False, user_id: str | None = None) -> tuple[Connection, FakeTransport]:
        transport = FakeTransport(fail=fail)
        return Connection(transport, user_id=user_id), transport

    return _make


@pytest.fixture
async def db() -> AsyncIterator[RoomDb]:
    """Create an in-memory database for testing."""
    db = RoomDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
def users(db: RoomDb) -> UserService:
    return UserService(db)


@pytest.fixture
def register(users: UserService) -> Callable[..., object]:
    """Register a user with sensible defaults; returns the Session."""
    counter = 0

    async def _register(name: str = "alice", plan: str = "premium") -> Session:
        nonlocal counter
        counter += 1
        return await users.register(name=name, email=f"{name}{counter}@example.com", plan=plan)

    return _register
