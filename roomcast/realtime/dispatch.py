"""
Inbound frame handling for the chat and playback sockets.

Chat frames are persisted first and broadcast only after the write
succeeded, so no listener ever sees a message the store does not have.

Playback frames are one of:
- a positive decimal integer: start streaming that track to the room
- a control word (play, pause, next, back): relayed verbatim to the room
- anything else: an error reply to the sender only
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from roomcast.core import PersistenceError, ValidationError
from roomcast.core.events import ChatMessageEvent, EventBus
from roomcast.realtime.connection import Connection
from roomcast.realtime.registry import BroadcastResult, ConnectionRegistry, DomainKey

if TYPE_CHECKING:
    from roomcast.core.store import RoomDb
    from roomcast.realtime.streamer import TrackStreamer

logger = logging.getLogger(__name__)

CONTROL_COMMANDS: frozenset[str] = frozenset({"play", "pause", "next", "back"})

INVALID_FRAME_REPLY = "Invalid track number"


# =============================================================================
# Chat
# =============================================================================


class ChatFrame(BaseModel):
    """A chat message as it travels over the socket."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message: str
    creator: str = Field(min_length=1, validation_alias=AliasChoices("creator", "creator_id"))
    music_room: str = Field(
        min_length=1,
        validation_alias=AliasChoices("musicRoom", "room_id"),
        serialization_alias="musicRoom",
    )

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


def parse_chat_frame(text: str | bytes) -> ChatFrame:
    """
    Parse an inbound chat frame.

    Raises:
        ValidationError: if the frame is not a JSON chat message.
    """
    if isinstance(text, bytes):
        raise ValidationError("Chat frames must be text")
    try:
        return ChatFrame.model_validate_json(text)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Malformed chat frame: {e.error_count()} error(s)") from e


class ChatFanout:
    """Persist-then-broadcast handler for chat sockets."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        db: RoomDb,
        events: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._db = db
        self._events = events

    async def handle_frame(self, conn: Connection, text: str | bytes) -> BroadcastResult | None:
        """
        Handle one inbound chat frame.

        Returns:
            The broadcast result, or None if the frame was dropped.
        """
        try:
            frame = parse_chat_frame(text)
        except ValidationError as e:
            logger.warning("Dropping chat frame from %s: %s", conn.connection_id, e.reason)
            return None

        # Routing follows the frame; mismatches are only reported.
        if conn.user_id is not None and frame.creator != conn.user_id:
            logger.warning(
                "Chat frame from %s names creator %s but the socket belongs to %s",
                conn.connection_id,
                frame.creator,
                conn.user_id,
            )
        if conn not in await self._registry.members(DomainKey.chat(frame.music_room)):
            logger.warning(
                "Chat frame from %s targets room %s, which the socket has not joined",
                conn.connection_id,
                frame.music_room,
            )

        try:
            await self._db.save_chat_message(
                message=frame.message,
                creator_id=frame.creator,
                room_id=frame.music_room,
            )
        except PersistenceError as e:
            logger.error(
                "Failed to save chat message for room %s: %s",
                frame.music_room,
                e.reason,
            )
            return None

        result = await self._registry.broadcast(DomainKey.chat(frame.music_room), frame.to_wire())
        logger.debug(
            "Chat message in room %s delivered to %d connection(s)",
            frame.music_room,
            result.delivered,
        )

        if self._events is not None:
            await self._events.publish(
                ChatMessageEvent(
                    room_id=frame.music_room,
                    creator_id=frame.creator,
                    delivered=result.delivered,
                )
            )
        return result


# =============================================================================
# Playback
# =============================================================================


class PlaybackFrameKind(Enum):
    """Classification of an inbound playback frame."""

    TRACK_INDEX = "track_index"
    CONTROL = "control"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class PlaybackFrame:
    """A classified playback frame."""

    kind: PlaybackFrameKind
    text: str
    track_index: int | None = None


def classify_playback_frame(text: str | bytes) -> PlaybackFrame:
    """Tag a playback frame as a track index, a control word, or invalid."""
    if isinstance(text, bytes):
        return PlaybackFrame(PlaybackFrameKind.INVALID, "")

    if text in CONTROL_COMMANDS:
        return PlaybackFrame(PlaybackFrameKind.CONTROL, text)

    if text.isascii() and text.isdigit():
        index = int(text)
        if index > 0:
            return PlaybackFrame(PlaybackFrameKind.TRACK_INDEX, text, track_index=index)

    return PlaybackFrame(PlaybackFrameKind.INVALID, text)


class PlaybackFanout:
    """Handler for playback sockets: stream, relay, or reject."""

    def __init__(self, registry: ConnectionRegistry, streamer: TrackStreamer) -> None:
        self._registry = registry
        self._streamer = streamer

    async def handle_frame(self, conn: Connection, room_id: str, text: str | bytes) -> PlaybackFrame:
        key = DomainKey.playback(room_id)
        # Every frame re-registers its sender: a finished stream empties the domain.
        await self._registry.join(key, conn)

        frame = classify_playback_frame(text)
        if frame.kind is PlaybackFrameKind.TRACK_INDEX and frame.track_index is not None:
            await self._streamer.start(key, frame.track_index, conn)
        elif frame.kind is PlaybackFrameKind.CONTROL:
            result = await self._registry.broadcast(key, frame.text)
            logger.debug("Relayed %r to %d listener(s) in %s", frame.text, result.delivered, key)
        else:
            logger.debug("Rejected playback frame from %s: %r", conn.connection_id, frame.text)
            await conn.send_text(INVALID_FRAME_REPLY)
        return frame
