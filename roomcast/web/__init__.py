"""
Roomcast Web Layer.

This package provides the HTTP and socket surface of Roomcast:

Components:
- WebServer: FastAPI application with all routes, served by uvicorn
- routes: REST endpoints plus the chat and playback sockets
- auth: bearer token resolution for routes and socket handshakes
"""

from roomcast.web.server import WebServer

__all__ = ["WebServer"]
