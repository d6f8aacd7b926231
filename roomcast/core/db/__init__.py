"""
Internal DB subpackage for Roomcast.

This package splits persistence into focused units (models, schema/migrations,
and query groups) while keeping `RoomDb` as the single public interface that
the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `RoomDb` from `roomcast.core.store`.
"""

from __future__ import annotations

# Models / DTOs
from .models import (
    ChatMessageRow,
    MembershipRow,
    NewTrack,
    PlaylistRow,
    RoomRow,
    TrackRow,
    UserRow,
)

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "ChatMessageRow",
    "MembershipRow",
    "NewTrack",
    "PlaylistRow",
    "RoomRow",
    "TrackRow",
    "UserRow",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
