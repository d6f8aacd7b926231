"""
Bearer token authentication for HTTP routes and socket handshakes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import Header, WebSocket

from roomcast.core import AuthenticationError
from roomcast.core.db.models import UserRow

if TYPE_CHECKING:
    from roomcast.core.users import UserService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def parse_bearer(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :].strip()
    return token or None


def current_user_dependency(
    users: UserService,
) -> Callable[..., Awaitable[UserRow]]:
    """Build the FastAPI dependency resolving the caller from its bearer token."""

    async def current_user(authorization: str | None = Header(default=None)) -> UserRow:
        return await users.authenticate(parse_bearer(authorization))

    return current_user


async def authenticate_websocket(websocket: WebSocket, users: UserService) -> UserRow:
    """
    Resolve the user of a socket upgrade request.

    The token is taken from the Authorization header, or from the `token`
    query parameter for clients that cannot set headers on an upgrade.

    Raises:
        AuthenticationError: if no valid token was presented.
    """
    token = parse_bearer(websocket.headers.get("authorization"))
    if token is None:
        token = websocket.query_params.get("token")
    try:
        return await users.authenticate(token)
    except AuthenticationError:
        logger.info("Rejected socket upgrade on %s: bad token", websocket.url.path)
        raise
