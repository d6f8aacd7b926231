"""
Connection Registry - live sockets per broadcast domain.

A domain is one category of real-time event for one room: its chat, or its
playback (control words and streamed audio). The registry is constructed once
by the server and handed to whatever accepts upgraded connections.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from roomcast.core.events import Event, RoomClosedEvent
from roomcast.realtime.connection import Connection

logger = logging.getLogger(__name__)


class DomainKind(str, Enum):
    """Broadcast domain categories."""

    CHAT = "chat"
    PLAYBACK = "playback"


@dataclass(frozen=True, slots=True)
class DomainKey:
    """Identifies one broadcast domain: a kind plus the room it belongs to."""

    kind: DomainKind
    room_id: str

    @classmethod
    def chat(cls, room_id: str) -> DomainKey:
        return cls(DomainKind.CHAT, str(room_id))

    @classmethod
    def playback(cls, room_id: str) -> DomainKey:
        return cls(DomainKind.PLAYBACK, str(room_id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.room_id}"


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    """Outcome of one broadcast: how many sends succeeded, which connections failed."""

    delivered: int
    failed: tuple[str, ...] = ()


class ConnectionRegistry:
    """
    Central registry of live connections per broadcast domain.

    A connection appears at most once per domain. Membership reflects
    liveness only; permission checks happen at handshake time.

    Thread-safety: This class uses an asyncio lock for safe concurrent
    access from multiple coroutines. Sends happen outside the lock.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._domains: dict[DomainKey, dict[str, Connection]] = {}
        self._lock = asyncio.Lock()

    async def join(self, key: DomainKey, conn: Connection) -> bool:
        """
        Add a connection to a domain.

        Returns:
            True if it was added, False if it was already present or closed.
        """
        if conn.is_closed:
            return False
        async with self._lock:
            members = self._domains.setdefault(key, {})
            if conn.connection_id in members:
                return False
            members[conn.connection_id] = conn
            conn.mark_registered()
        logger.debug("Connection %s joined %s", conn.connection_id, key)
        return True

    async def leave(self, key: DomainKey, conn: Connection) -> bool:
        """
        Remove a connection from a domain. Safe on absent connections.

        Returns:
            True if it was removed.
        """
        async with self._lock:
            return self._discard(key, conn.connection_id)

    async def leave_all(self, conn: Connection) -> list[DomainKey]:
        """Remove a connection from every domain it is in."""
        async with self._lock:
            keys = [k for k, members in self._domains.items() if conn.connection_id in members]
            for key in keys:
                self._discard(key, conn.connection_id)
        if keys:
            logger.debug("Connection %s left %d domain(s)", conn.connection_id, len(keys))
        return keys

    def _discard(self, key: DomainKey, connection_id: str) -> bool:
        # Caller holds the lock.
        members = self._domains.get(key)
        if members is None or connection_id not in members:
            return False
        del members[connection_id]
        if not members:
            del self._domains[key]
        return True

    async def members(self, key: DomainKey) -> list[Connection]:
        """
        Get the connections of a domain.

        Returns:
            A list copy, safe to iterate.
        """
        async with self._lock:
            return list(self._domains.get(key, {}).values())

    async def clear(self, key: DomainKey) -> list[Connection]:
        """Empty a domain, returning the connections it held."""
        async with self._lock:
            members = self._domains.pop(key, {})
        return list(members.values())

    async def drop_room(self, room_id: str) -> int:
        """Empty every domain of a room. Returns the number of entries removed."""
        removed = 0
        for key in (DomainKey.chat(room_id), DomainKey.playback(room_id)):
            removed += len(await self.clear(key))
        if removed:
            logger.info("Dropped %d connection entries of room %s", removed, room_id)
        return removed

    async def broadcast(self, key: DomainKey, payload: str | bytes) -> BroadcastResult:
        """
        Send a payload to every connection currently in a domain.

        A failing send never stops delivery to the others. Failures are
        logged, not retried, and the failed connection is removed from
        every domain.
        """
        targets = await self.members(key)
        if not targets:
            return BroadcastResult(delivered=0)

        results = await asyncio.gather(
            *(conn.send(payload) for conn in targets),
            return_exceptions=True,
        )

        failed: list[Connection] = []
        for conn, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Broadcast to %s on %s failed: %r",
                    conn.connection_id,
                    key,
                    result,
                )
                failed.append(conn)

        for conn in failed:
            await self.leave_all(conn)

        return BroadcastResult(
            delivered=len(targets) - len(failed),
            failed=tuple(c.connection_id for c in failed),
        )

    async def close_all(self) -> None:
        """
        Close every registered connection and clear the registry.

        This is typically called during server shutdown.
        """
        async with self._lock:
            connections = {
                conn.connection_id: conn
                for members in self._domains.values()
                for conn in members.values()
            }
            self._domains.clear()

        # Close outside the lock to avoid holding it during I/O
        for conn in connections.values():
            await conn.close(code=1001)

        logger.info("All connections closed (%d total)", len(connections))

    async def on_room_closed(self, event: Event) -> None:
        """Event bus handler: forget the sockets of a closed room."""
        if isinstance(event, RoomClosedEvent):
            await self.drop_room(event.room_id)

    def domain_size(self, key: DomainKey) -> int:
        return len(self._domains.get(key, {}))

    def __len__(self) -> int:
        """Return the number of non-empty domains."""
        return len(self._domains)

    def __contains__(self, key: object) -> bool:
        """Check if a domain has at least one connection."""
        return key in self._domains

    def __iter__(self) -> Iterator[DomainKey]:
        """Iterate over non-empty domain keys."""
        return iter(list(self._domains))

    def __bool__(self) -> bool:
        """A registry instance is always truthy, even when empty."""
        return True
