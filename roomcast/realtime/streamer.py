"""
Track Streamer for Roomcast.

Reads a media file in fixed-size chunks and broadcasts every chunk to the
playback domain of a room.

STREAM TERMINATION:
===================
A stream ends when the file is exhausted, when the file handle fails under
it, or when its CancellationToken is cancelled. Cancellation comes from:
  1. the requesting connection closing (close callback)
  2. a newer track request for the same room (latest wins)
  3. server shutdown

Termination always does the same thing: broadcast a zero-length binary frame
so listeners know the stream ended, empty the domain, release the file.

Each stream runs as its own asyncio task and file reads go through
`asyncio.to_thread`, so one stalled room never holds up the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from roomcast.core import StreamIOError
from roomcast.core.events import EventBus, StreamFinishedEvent
from roomcast.realtime.connection import CloseCallback, Connection
from roomcast.realtime.registry import ConnectionRegistry, DomainKey

logger = logging.getLogger(__name__)

# Default read size per chunk
DEFAULT_CHUNK_SIZE = 4096

# Broadcast after the last chunk
END_OF_STREAM = b""

TRACK_NOT_FOUND_REPLY = "Track not found"
UNABLE_TO_OPEN_REPLY = "Unable to open file"


class CancellationToken:
    """
    Token to signal stream cancellation.

    The streaming loop checks this between chunks and terminates once it is
    set. Setting it is synchronous so close callbacks can do it directly.
    """

    __slots__ = ("_cancelled", "_generation")

    def __init__(self, generation: int = 0) -> None:
        self._cancelled = False
        self._generation = generation

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def generation(self) -> int:
        return self._generation

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(eq=False)
class ActiveStream:
    """Bookkeeping for one running stream."""

    key: DomainKey
    track_index: int
    token: CancellationToken
    requester: Connection
    on_requester_close: CloseCallback
    task: asyncio.Task[int] | None = None
    chunks_sent: int = field(default=0)


class TrackStreamer:
    """
    Streams track files to room listeners.

    Attributes:
        media_dir: Directory holding the track files.
        chunk_size: Bytes per broadcast frame.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        media_dir: Path,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        suffix: str = ".mp3",
        events: EventBus | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._registry = registry
        self.media_dir = Path(media_dir)
        self.chunk_size = chunk_size
        self._suffix = suffix
        self._events = events

        # Active streams, keyed by playback domain
        self._active: dict[DomainKey, ActiveStream] = {}

        # Generation counter per domain to tell streams apart in logs
        self._generation: dict[DomainKey, int] = {}

        # Per-domain locks: stop -> join -> register -> create_task is one step
        self._start_locks: dict[DomainKey, asyncio.Lock] = {}

    def resolve(self, track_index: int) -> Path:
        """Path of the file backing a track index (may not exist)."""
        return self.media_dir / f"{track_index}{self._suffix}"

    def _open(self, track_index: int) -> BinaryIO:
        path = self.resolve(track_index)
        if not path.is_file():
            raise StreamIOError(TRACK_NOT_FOUND_REPLY)
        try:
            return path.open("rb")
        except OSError as e:
            raise StreamIOError(UNABLE_TO_OPEN_REPLY) from e

    def is_streaming(self, key: DomainKey) -> bool:
        return key in self._active

    def _start_lock(self, key: DomainKey) -> asyncio.Lock:
        """Get or create the lock serializing starts on one domain."""
        if key not in self._start_locks:
            self._start_locks[key] = asyncio.Lock()
        return self._start_locks[key]

    async def start(
        self,
        key: DomainKey,
        track_index: int,
        requester: Connection,
    ) -> asyncio.Task[int] | None:
        """
        Start streaming a track to a playback domain.

        If the track cannot be opened, only the requester is told and nothing
        else changes. Otherwise any stream already running for the domain is
        stopped first. Concurrent starts on one domain run one after another,
        so the last request is the one left streaming.

        Returns:
            The streaming task, or None if the track could not be opened.
        """
        async with self._start_lock(key):
            try:
                handle = await asyncio.to_thread(self._open, track_index)
            except StreamIOError as e:
                logger.info("Track %d unavailable for %s: %s", track_index, key, e.reason)
                await requester.send_text(e.reason)
                return None

            try:
                await self.stop(key)
                # The previous stream's termination emptied the domain.
                await self._registry.join(key, requester)
            except BaseException:
                handle.close()
                raise

            generation = self._generation.get(key, 0) + 1
            self._generation[key] = generation
            token = CancellationToken(generation)

            def on_requester_close(_conn: Connection) -> None:
                token.cancel()

            stream = ActiveStream(
                key=key,
                track_index=track_index,
                token=token,
                requester=requester,
                on_requester_close=on_requester_close,
            )
            requester.add_close_callback(on_requester_close)

            self._active[key] = stream
            stream.task = asyncio.create_task(self._run(stream, handle), name=f"stream-{key}")

        logger.info(
            "Streaming track %d to %s (generation %d)", track_index, key, generation
        )
        return stream.task

    async def _run(self, stream: ActiveStream, handle: BinaryIO) -> int:
        reason = "exhausted"
        try:
            while True:
                if stream.token.cancelled:
                    reason = "cancelled"
                    break
                try:
                    chunk = await asyncio.to_thread(handle.read, self.chunk_size)
                except (OSError, ValueError) as e:
                    # ValueError: the handle was closed underneath us
                    logger.warning("Read failed while streaming %s: %s", stream.key, e)
                    reason = "read_error"
                    break
                if stream.token.cancelled:
                    reason = "cancelled"
                    break
                if not chunk:
                    break
                await self._registry.broadcast(stream.key, chunk)
                stream.chunks_sent += 1
        finally:
            await self._terminate(stream, handle, reason)
        return stream.chunks_sent

    async def _terminate(self, stream: ActiveStream, handle: BinaryIO, reason: str) -> None:
        try:
            await self._registry.broadcast(stream.key, END_OF_STREAM)
            await self._registry.clear(stream.key)
        finally:
            handle.close()
            stream.requester.remove_close_callback(stream.on_requester_close)
            if self._active.get(stream.key) is stream:
                del self._active[stream.key]

        logger.info(
            "Stream of track %d to %s ended (%s, %d chunks)",
            stream.track_index,
            stream.key,
            reason,
            stream.chunks_sent,
        )
        if self._events is not None:
            await self._events.publish(
                StreamFinishedEvent(
                    room_id=stream.key.room_id,
                    track_index=stream.track_index,
                    chunks_sent=stream.chunks_sent,
                    reason=reason,
                )
            )

    def cancel(self, key: DomainKey) -> None:
        """Signal the stream of a domain to stop without waiting for it."""
        stream = self._active.get(key)
        if stream is not None:
            stream.token.cancel()
            logger.debug(
                "Cancelled stream for %s (generation %d)", key, stream.token.generation
            )

    async def stop(self, key: DomainKey) -> None:
        """Cancel the stream of a domain and wait until it has terminated."""
        stream = self._active.get(key)
        if stream is None:
            return
        stream.token.cancel()
        if stream.task is not None:
            await asyncio.gather(stream.task, return_exceptions=True)

    async def stop_all(self) -> None:
        """Stop every active stream (server shutdown)."""
        keys = list(self._active)
        for key in keys:
            await self.stop(key)
        if keys:
            logger.info("Stopped %d active stream(s)", len(keys))

    def __len__(self) -> int:
        """Return the number of active streams."""
        return len(self._active)
