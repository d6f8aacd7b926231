"""
Live duplex connection handle.

A `Connection` wraps whatever transport accepted the upgrade (a FastAPI
`WebSocket` in production, an in-memory fake in tests). Identity is the
opaque `connection_id` issued at accept time, never the transport object, so
two handles compare equal only if they carry the same id.

Lifecycle:
    OPEN -> REGISTERED -> CLOSING -> CLOSED

`CLOSING` is entered once, from either side; close callbacks fire at that
moment. No sends are attempted once a connection is `CLOSING` or `CLOSED`.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from enum import Enum
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

CloseCallback = Callable[["Connection"], None]


class ConnectionState(Enum):
    """Connection lifecycle states."""

    OPEN = "open"
    REGISTERED = "registered"
    CLOSING = "closing"
    CLOSED = "closed"


class Transport(Protocol):
    """The part of a WebSocket a Connection needs."""

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionClosedError(RuntimeError):
    """Raised when sending on a connection that is closing or closed."""


class Connection:
    """
    One live socket.

    Sends are serialized through a per-connection lock so that payloads
    broadcast one after another reach this receiver in the same order.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        user_id: str | None = None,
        connection_id: str | None = None,
    ) -> None:
        self.connection_id = connection_id or secrets.token_hex(8)
        self.user_id = user_id
        self._transport = transport
        self._state = ConnectionState.OPEN
        self._send_lock = asyncio.Lock()
        self._close_callbacks: list[CloseCallback] = []

    def __repr__(self) -> str:
        return f"Connection({self.connection_id}, user={self.user_id}, {self._state.value})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connection):
            return NotImplemented
        return self.connection_id == other.connection_id

    def __hash__(self) -> int:
        return hash(self.connection_id)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        """True once the connection started closing."""
        return self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    def mark_registered(self) -> None:
        if self._state is ConnectionState.OPEN:
            self._state = ConnectionState.REGISTERED

    # ------------------------------------------------------------------
    # Close callbacks
    # ------------------------------------------------------------------

    def add_close_callback(self, callback: CloseCallback) -> None:
        """
        Run `callback(self)` when the connection starts closing.

        If it is already closing, the callback runs immediately.
        """
        if self.is_closed:
            self._run_callback(callback)
            return
        self._close_callbacks.append(callback)

    def remove_close_callback(self, callback: CloseCallback) -> None:
        try:
            self._close_callbacks.remove(callback)
        except ValueError:
            pass

    def _run_callback(self, callback: CloseCallback) -> None:
        try:
            callback(self)
        except Exception as e:
            logger.exception("Close callback failed for %s: %s", self.connection_id, e)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, payload: str | bytes) -> None:
        """Send a text (str) or binary (bytes) frame."""
        if self.is_closed:
            raise ConnectionClosedError(f"Connection {self.connection_id} is {self._state.value}")
        async with self._send_lock:
            if isinstance(payload, bytes):
                await self._transport.send_bytes(payload)
            else:
                await self._transport.send_text(payload)

    async def send_text(self, text: str) -> None:
        await self.send(text)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def begin_close(self) -> None:
        """Enter CLOSING (idempotent) and fire close callbacks once."""
        if self.is_closed:
            return
        self._state = ConnectionState.CLOSING
        callbacks = self._close_callbacks
        self._close_callbacks = []
        for callback in callbacks:
            self._run_callback(callback)

    def mark_closed(self) -> None:
        """Record that the transport is gone (peer closed or we closed it)."""
        self.begin_close()
        self._state = ConnectionState.CLOSED

    async def close(self, code: int = 1000) -> None:
        """Server-initiated teardown."""
        if self._state is ConnectionState.CLOSED:
            return
        self.begin_close()
        try:
            await self._transport.close(code=code)
        except Exception as e:
            # The peer may already be gone; nothing left to release.
            logger.debug("Transport close failed for %s: %s", self.connection_id, e)
        self._state = ConnectionState.CLOSED
