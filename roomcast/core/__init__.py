"""
Core domain package.

This package contains the room, playlist and session logic, which should be
independent of any transport layer (HTTP, WebSocket, CLI). The web layer maps
the exceptions below to status codes; sockets turn them into text frames.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `roomcast.core.rooms`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "InconsistentStateError",
    "PersistenceError",
    "StreamIOError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""

    status_code: int = 500

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(CoreError):
    """Raised when an inbound frame or request body cannot be parsed."""

    status_code = 400


class AuthenticationError(CoreError):
    """Raised when a bearer token is missing or unknown."""

    status_code = 401


class AuthorizationError(CoreError):
    """Raised when the caller may not perform the operation (not the owner, bad code)."""

    status_code = 403


class NotFoundError(CoreError):
    """Raised when an entity (room/user/playlist/track) cannot be found."""

    status_code = 404


class InconsistentStateError(CoreError):
    """Raised when stored rows contradict each other (e.g. a room without its playlist)."""

    status_code = 500


class PersistenceError(CoreError):
    """Raised when a store round-trip fails."""

    status_code = 500


class StreamIOError(CoreError):
    """Raised when a media resource is missing or unreadable."""

    status_code = 404
