"""
Domain events published by the Roomcast services.

The HTTP layer mutates rooms through the services; anything that has to react
out of band (dropping sockets of a closed room, cancelling its stream) listens
here instead of being called directly.

Published types:
    room.closed       a room and its bound rows were deleted
    room.dj_changed   ownership moved to another user
    chat.message      a chat frame was stored and fanned out
    stream.finished   a track stream ended (exhausted, cancelled or read_error)

The server owns a single `EventBus` and hands it to whoever needs it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a JSON-ready dict; `type` carries the event type."""
        payload = asdict(self)
        payload["type"] = payload.pop("event_type")
        return payload


@dataclass
class RoomClosedEvent(Event):
    """Fired after a room and everything bound to it has been deleted."""

    event_type: str = field(default="room.closed", init=False)
    room_id: str = ""


@dataclass
class DjChangedEvent(Event):
    """Fired after a successful DJ handoff."""

    event_type: str = field(default="room.dj_changed", init=False)
    room_id: str = ""
    previous_owner_id: str = ""
    new_owner_id: str = ""


@dataclass
class ChatMessageEvent(Event):
    """Fired after a chat message has been persisted and fanned out."""

    event_type: str = field(default="chat.message", init=False)
    room_id: str = ""
    creator_id: str = ""
    delivered: int = 0


@dataclass
class StreamFinishedEvent(Event):
    """Fired when a track stream terminates.

    `reason` is "exhausted" when the resource was read to the end and
    "cancelled" when a close callback or a newer stream stopped it, and
    "read_error" when the resource failed mid-read.
    """

    event_type: str = field(default="stream.finished", init=False)
    room_id: str = ""
    track_index: int = 0
    chunks_sent: int = 0
    reason: str = ""


def _pattern_matches(pattern: str, event_type: str) -> bool:
    """True when a subscription pattern covers `event_type`.

    "*" matches everything, "room.*" matches "room.closed" but not "room".
    """
    if pattern == "*" or pattern == event_type:
        return True
    return pattern.endswith(".*") and event_type.startswith(pattern[:-1])


class EventBus:
    """
    In-process pub/sub shared by the services and the realtime layer.

    Handlers run sequentially in subscription order; a handler that raises
    is logged and skipped so the publisher never sees its error.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Register `handler` for an exact event type or a "prefix.*" pattern."""
        async with self._lock:
            self._subscriptions.setdefault(pattern, []).append(handler)
        logger.debug("Handler %s subscribed to %s", handler, pattern)

    async def unsubscribe(self, pattern: str, handler: EventHandler) -> bool:
        """Drop one registration; False if it was never there."""
        async with self._lock:
            registered = self._subscriptions.get(pattern, [])
            if handler not in registered:
                return False
            registered.remove(handler)
            if not registered:
                del self._subscriptions[pattern]
        logger.debug("Handler %s unsubscribed from %s", handler, pattern)
        return True

    async def publish(self, event: Event) -> int:
        """
        Deliver `event` to every matching handler.

        Returns:
            How many handlers finished without raising.
        """
        async with self._lock:
            targets = [
                handler
                for pattern, registered in self._subscriptions.items()
                if _pattern_matches(pattern, event.event_type)
                for handler in registered
            ]

        delivered = 0
        for handler in targets:
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler %s failed on %s", handler, event.event_type)
            else:
                delivered += 1

        if targets:
            logger.debug("%s delivered to %d/%d handlers", event.event_type, delivered, len(targets))
        return delivered

    async def clear(self) -> None:
        async with self._lock:
            self._subscriptions.clear()
        logger.debug("Event bus cleared")
