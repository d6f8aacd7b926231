"""
HTTP and socket front end of Roomcast.

`WebServer` owns the FastAPI app and the uvicorn instance serving it. The app
exposes the user, music room and playlist REST routes plus two websocket
endpoints, `/chats/connect` and `/music-rooms/stream`. Core errors are turned
into `{"detail": reason}` bodies here, so route handlers just raise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomcast.core import AuthenticationError, CoreError
from roomcast.web.routes import (
    register_playlist_routes,
    register_room_routes,
    register_socket_routes,
    register_user_routes,
)

if TYPE_CHECKING:
    from roomcast.core.playlists import PlaylistService
    from roomcast.core.rooms import RoomService
    from roomcast.core.users import UserService
    from roomcast.realtime.dispatch import ChatFanout, PlaybackFanout
    from roomcast.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class WebServer:
    """
    Binds the services to HTTP routes and serves them with uvicorn.

    Every collaborator is injected; the server owns only the FastAPI app and
    the uvicorn instance serving it.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        users: UserService,
        rooms: RoomService,
        playlists: PlaylistService,
        chat: ChatFanout,
        playback: PlaybackFanout,
        ping_interval: float = 10.0,
    ) -> None:
        """
        Nothing is started until `start()`; the app itself is usable at once.

        Args:
            registry: Registry of live socket connections
            users: Registration and token resolution
            rooms: Room lifecycle and DJ handoff
            playlists: Track store and playlist CRUD
            chat: Chat frame fan-out
            playback: Playback frame fan-out
            ping_interval: Seconds between websocket keep-alive pings
        """
        self.registry = registry
        self.users = users
        self.rooms = rooms
        self.playlists = playlists
        self.chat = chat
        self.playback = playback
        self.ping_interval = ping_interval

        self.app = FastAPI(
            title="Roomcast",
            description="Shared music rooms with live chat and streamed playback",
            version="0.1.0",
        )

        # Browser clients are served from other origins.
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._host = "0.0.0.0"
        self._port = 8080

        self._register_error_handlers()
        self._register_routes()

    def _register_error_handlers(self) -> None:
        """Map core exceptions to `{"detail": reason}` responses."""

        @self.app.exception_handler(CoreError)
        async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
            if exc.status_code >= 500:
                logger.error("%s %s failed: %r", request.method, request.url.path, exc)
            headers = None
            if isinstance(exc, AuthenticationError):
                headers = {"WWW-Authenticate": "Bearer"}
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.reason or type(exc).__name__},
                headers=headers,
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(
            request: Request, exc: RequestValidationError
        ) -> JSONResponse:
            errors = exc.errors()
            first = errors[0] if errors else {}
            location = ".".join(str(part) for part in first.get("loc", ()))
            detail = f"{location}: {first.get('msg', 'invalid request')}".strip(": ")
            return JSONResponse(status_code=400, content={"detail": detail})

    def _register_routes(self) -> None:
        """Health probe first, then one router per resource."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            return {"status": "ok", "server": "roomcast"}

        register_user_routes(self.app, self.users)
        register_room_routes(self.app, self.rooms, self.users)
        register_playlist_routes(self.app, self.playlists, self.users)
        register_socket_routes(
            self.app,
            registry=self.registry,
            users=self.users,
            chat=self.chat,
            playback=self.playback,
        )

    async def start(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """
        Launch uvicorn as a background task and return immediately.

        Args:
            host: Interface to listen on
            port: TCP port shared by HTTP and websockets
        """
        self._host = host
        self._port = port

        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
            ws_ping_interval=self.ping_interval,
        )
        self._server = uvicorn.Server(config)

        # Port binding errors surface through the task, not here.
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Roomcast API listening on %s:%d", host, port)

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for its serve task."""
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None

        logger.info("Roomcast API stopped")

    @property
    def port(self) -> int:
        """Port passed to the last `start()`."""
        return self._port

    @property
    def host(self) -> str:
        """Host passed to the last `start()`."""
        return self._host
