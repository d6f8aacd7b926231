"""
Process-level assembly of Roomcast.

`RoomcastServer` constructs the database facade, event bus, socket registry,
streamer, services and web server exactly once and owns their start/stop order.
"""

import asyncio
import contextlib
import logging
import signal

from roomcast.config import ServerConfig, get_config
from roomcast.core.events import Event, EventBus, RoomClosedEvent
from roomcast.core.playlists import PlaylistService
from roomcast.core.rooms import RoomService
from roomcast.core.store import RoomDb
from roomcast.core.users import UserService
from roomcast.realtime.dispatch import ChatFanout, PlaybackFanout
from roomcast.realtime.registry import ConnectionRegistry, DomainKey
from roomcast.realtime.streamer import TrackStreamer
from roomcast.web.server import WebServer

logger = logging.getLogger(__name__)


class RoomcastServer:
    """
    Owns one instance of every Roomcast component.

    Construction is side-effect free; `start()` opens the database, applies
    migrations, subscribes the realtime layer to room events and binds uvicorn.
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """
        Build all components from `config`.

        Args:
            config: Server configuration. Defaults to the packaged roomcast.toml.
        """
        self.config = config or get_config()

        self.db = RoomDb(self.config.db_path)
        self.events = EventBus()
        self.registry = ConnectionRegistry()
        self.streamer = TrackStreamer(
            self.registry,
            self.config.media_dir,
            chunk_size=self.config.chunk_size,
            suffix=self.config.media_suffix,
            events=self.events,
        )

        self.users = UserService(self.db)
        self.rooms = RoomService(self.db, self.config, events=self.events)
        self.playlists = PlaylistService(self.db)

        self.chat = ChatFanout(self.registry, self.db, events=self.events)
        self.playback = PlaybackFanout(self.registry, self.streamer)

        self.web_server = WebServer(
            registry=self.registry,
            users=self.users,
            rooms=self.rooms,
            playlists=self.playlists,
            chat=self.chat,
            playback=self.playback,
            ping_interval=self.config.ping_interval,
        )

        self._running = False
        self._shutdown_event = asyncio.Event()

    async def wire_events(self) -> None:
        """Subscribe the realtime layer to room lifecycle events."""
        await self.events.subscribe("room.closed", self._on_room_closed)

    async def _on_room_closed(self, event: Event) -> None:
        if not isinstance(event, RoomClosedEvent):
            return
        await self.streamer.stop(DomainKey.playback(event.room_id))
        await self.registry.on_room_closed(event)

    async def start(self) -> None:
        """Open the DB, wire events and start serving."""
        logger.info("Starting Roomcast server on %s:%d", self.config.host, self.config.port)

        self._running = True
        self._shutdown_event.clear()

        await self.db.open()
        await self.db.ensure_schema()

        await self.wire_events()

        await self.web_server.start(host=self.config.host, port=self.config.port)

        logger.info("Roomcast ready")
        logger.info("Media directory: %s", self.config.media_dir)

    async def stop(self) -> None:
        """Tear down in reverse dependency order; a no-op when not running."""
        if not self._running:
            return

        logger.info("Roomcast shutting down")
        self._running = False

        # Streams first so their end-of-stream frames still reach listeners
        await self.streamer.stop_all()

        await self.registry.close_all()

        await self.web_server.stop()

        await self.events.clear()

        # Close the DB last, after nothing can write any more.
        await self.db.close()

        self._shutdown_event.set()

        logger.info("Roomcast server stopped")

    async def run(self) -> None:
        """Serve until SIGINT/SIGTERM or `stop()`, then shut everything down."""
        await self.start()

        def request_stop() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            # add_signal_handler is unavailable on Windows event loops
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, request_stop)
                installed.append(sig)

        try:
            await self._shutdown_event.wait()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_streams(self) -> int:
        """Number of rooms currently streaming a track."""
        return len(self.streamer)
