"""
Web Routes Package.

This package contains FastAPI route modules:
- users: registration, logout, profile (/users/*)
- rooms: music room lifecycle and DJ handoff (/music-rooms/*)
- playlists: track store and playlist CRUD (/playlists/*)
- sockets: chat and playback sockets
"""

from roomcast.web.routes.playlists import register_playlist_routes
from roomcast.web.routes.rooms import register_room_routes
from roomcast.web.routes.sockets import register_socket_routes
from roomcast.web.routes.users import register_user_routes

__all__ = [
    "register_playlist_routes",
    "register_room_routes",
    "register_socket_routes",
    "register_user_routes",
]
