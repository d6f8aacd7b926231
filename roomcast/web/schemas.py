"""
Request bodies of the HTTP API.

Clients send camelCase keys; the models expose snake_case attributes and
accept either spelling.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from roomcast.core.db.models import NewTrack


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusMessage(ApiModel):
    message: str


# =============================================================================
# Users
# =============================================================================


class RegisterRequest(ApiModel):
    name: str
    email: str
    plan: str = "basic"
    image_data: str | None = None


class LoginRequest(ApiModel):
    email: str


class UpdateUserRequest(ApiModel):
    id: str | None = None
    name: str | None = None
    email: str | None = None
    plan: str | None = None
    image_data: str | None = None


# =============================================================================
# Music rooms
# =============================================================================


class CreateRoomRequest(ApiModel):
    name: str = Field(min_length=1)
    is_private: bool = False
    description: str = ""
    image_data: str | None = None


class JoinRoomRequest(ApiModel):
    id: str
    invitation_code: str | None = None


class JoinCodeRequest(ApiModel):
    invitation_code: str


class RoomIdRequest(ApiModel):
    music_room_id: str


class KickRequest(ApiModel):
    room_id: str
    user_id_to_kick: str


class SetDjRequest(ApiModel):
    music_room_id: str
    user_id: str


# =============================================================================
# Playlists
# =============================================================================


class TrackIn(ApiModel):
    track_id: str = Field(alias="trackID", min_length=1)
    title: str
    artist: str
    img_link: str = ""
    music_link: str = ""
    duration: int = 0

    def to_new_track(self) -> NewTrack:
        return NewTrack(
            track_id=self.track_id,
            title=self.title,
            artist=self.artist,
            img_link=self.img_link,
            music_link=self.music_link,
            duration=self.duration,
        )


class CreatePlaylistRequest(ApiModel):
    name: str = Field(min_length=1)
    description: str = ""
    image_data: str | None = None


class TrackToPlaylistRequest(ApiModel):
    # trackID here is the internal primary key of the stored track.
    track_id: str = Field(alias="trackID")
    playlist_id: str = Field(alias="playlistID")


class IdRequest(ApiModel):
    id: str
