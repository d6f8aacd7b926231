"""
DB models (DTOs) and small helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping


def new_id() -> str:
    """Generate a new primary key (UUID v4 string, 36 chars with dashes)."""
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class UserRow:
    """User record as stored in SQLite."""

    id: str
    name: str
    email: str
    plan: str
    image_data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Full view, only ever returned to the user themselves."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "plan": self.plan,
            "imageData": self.image_data,
        }


@dataclass(frozen=True, slots=True)
class RoomRow:
    """
    Music room record.

    Notes:
    - `creator_id` is the current owner (DJ); it changes on handoff.
    - `users_in_room` is the capacity derived from the creator's plan at
      creation time, not a live head count.
    """

    id: str
    name: str
    invitation_code: str
    is_private: bool
    creator_id: str
    description: str
    users_in_room: int
    image_data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "invitationCode": self.invitation_code,
            "isPrivate": self.is_private,
            "creator": self.creator_id,
            "description": self.description,
            "usersInRoom": self.users_in_room,
            "imageData": self.image_data or "",
        }


@dataclass(frozen=True, slots=True)
class MembershipRow:
    """Room membership (user, room) join record."""

    id: str
    user_id: str
    room_id: str


@dataclass(frozen=True, slots=True)
class PlaylistRow:
    """Playlist record."""

    id: str
    name: str
    creator_id: str
    description: str
    image_data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "imageData": self.image_data or "",
            "creatorID": self.creator_id,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class TrackRow:
    """
    Track record.

    `track_id` is the external catalogue id used for deduplication; `id` is
    the internal primary key referenced by playlists.
    """

    id: str
    track_id: str
    title: str
    artist: str
    img_link: str
    music_link: str
    duration: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trackID": self.track_id,
            "title": self.title,
            "artist": self.artist,
            "imgLink": self.img_link,
            "musicLink": self.music_link,
            "duration": self.duration,
        }


@dataclass(frozen=True, slots=True)
class NewTrack:
    """Input record for storing a track."""

    track_id: str
    title: str
    artist: str
    img_link: str = ""
    music_link: str = ""
    duration: int = 0


@dataclass(frozen=True, slots=True)
class ChatMessageRow:
    """Persisted chat message. Immutable once created."""

    id: str
    message: str
    creator_id: str
    room_id: str


def user_from_row(row: Mapping[str, Any]) -> UserRow:
    return UserRow(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        plan=row["plan"],
        image_data=row["image_data"],
    )


def room_from_row(row: Mapping[str, Any]) -> RoomRow:
    return RoomRow(
        id=row["id"],
        name=row["name"],
        invitation_code=row["invitation_code"],
        is_private=bool(row["is_private"]),
        creator_id=row["creator_id"],
        description=row["description"],
        users_in_room=int(row["users_in_room"]),
        image_data=row["image_data"],
    )


def membership_from_row(row: Mapping[str, Any]) -> MembershipRow:
    return MembershipRow(id=row["id"], user_id=row["user_id"], room_id=row["room_id"])


def playlist_from_row(row: Mapping[str, Any]) -> PlaylistRow:
    return PlaylistRow(
        id=row["id"],
        name=row["name"],
        creator_id=row["creator_id"],
        description=row["description"],
        image_data=row["image_data"],
    )


def track_from_row(row: Mapping[str, Any]) -> TrackRow:
    return TrackRow(
        id=row["id"],
        track_id=row["track_id"],
        title=row["title"],
        artist=row["artist"],
        img_link=row["img_link"],
        music_link=row["music_link"],
        duration=int(row["duration"]),
    )
