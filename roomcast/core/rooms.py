"""
Room lifecycle and ownership.

Every operation that touches more than one row runs inside a single
`RoomDb.transaction()`:

- create: room + creator membership + playlist + room-playlist link
- close: memberships, room-playlist link, the playlist's track rows, the
  playlist, then the room
- set_dj (handoff): room owner, playlist owner and the caller's membership
  are reassigned to the new DJ

Preconditions of the handoff are evaluated as a linear sequence of guards,
each producing a `HandoffStatus`. Anything but `OK` is turned into the
matching exception, which rolls the transaction back before any write.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiosqlite

from roomcast.config import ServerConfig
from roomcast.core import (
    AuthorizationError,
    CoreError,
    InconsistentStateError,
    NotFoundError,
)
from roomcast.core.db import queries_playlists, queries_rooms, queries_users
from roomcast.core.db.models import MembershipRow, PlaylistRow, RoomRow, UserRow, new_id
from roomcast.core.events import DjChangedEvent, EventBus, RoomClosedEvent
from roomcast.core.store import RoomDb

logger = logging.getLogger(__name__)


class HandoffStatus(Enum):
    """Outcome of the DJ handoff precondition checks."""

    OK = "ok"
    ROOM_NOT_FOUND = "room_not_found"
    NOT_OWNER = "not_owner"
    NEW_OWNER_NOT_FOUND = "new_owner_not_found"
    PLAYLIST_LINK_MISSING = "playlist_link_missing"
    PLAYLIST_LINK_AMBIGUOUS = "playlist_link_ambiguous"
    PLAYLIST_NOT_FOUND = "playlist_not_found"
    MEMBERSHIP_MISSING = "membership_missing"


_HANDOFF_ERRORS: dict[HandoffStatus, tuple[type[CoreError], str]] = {
    HandoffStatus.ROOM_NOT_FOUND: (NotFoundError, "Music room not found"),
    HandoffStatus.NOT_OWNER: (AuthorizationError, "Only the current DJ can change the DJ"),
    HandoffStatus.NEW_OWNER_NOT_FOUND: (NotFoundError, "New DJ not found"),
    HandoffStatus.PLAYLIST_LINK_MISSING: (
        InconsistentStateError,
        "Playlist for music room not found",
    ),
    HandoffStatus.PLAYLIST_LINK_AMBIGUOUS: (
        InconsistentStateError,
        "Music room is bound to more than one playlist",
    ),
    HandoffStatus.PLAYLIST_NOT_FOUND: (InconsistentStateError, "Playlist not found"),
    HandoffStatus.MEMBERSHIP_MISSING: (InconsistentStateError, "Room membership not found"),
}


@dataclass(frozen=True, slots=True)
class HandoffPlan:
    """Rows the handoff will rewrite, gathered by the precondition checks."""

    room: RoomRow
    new_owner: UserRow
    playlist: PlaylistRow
    membership: MembershipRow
    # Membership the new DJ already holds in the room, if any.
    new_owner_membership: MembershipRow | None


@dataclass(frozen=True, slots=True)
class JoinView:
    """Public view of a room returned from join requests."""

    id: str
    name: str
    creator: str
    is_private: bool
    invitation_code: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "creator": self.creator,
            "isPrivate": self.is_private,
            "invitationCode": self.invitation_code,
            "description": self.description,
        }


def generate_invitation_code(alphabet: str, length: int) -> str:
    """Random invitation code. Uniqueness across rooms is not checked."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


class RoomService:
    """Room creation, membership and ownership transfer."""

    def __init__(
        self,
        db: RoomDb,
        config: ServerConfig,
        events: EventBus | None = None,
    ) -> None:
        self._db = db
        self._config = config
        self._events = events

    # ===========================================================================
    # Creation
    # ===========================================================================

    async def create_room(
        self,
        user: UserRow,
        *,
        name: str,
        is_private: bool,
        description: str = "",
        image_data: str | None = None,
    ) -> RoomRow:
        room = RoomRow(
            id=new_id(),
            name=name,
            invitation_code=generate_invitation_code(
                self._config.invitation_alphabet,
                self._config.invitation_code_length,
            ),
            is_private=is_private,
            creator_id=user.id,
            description=description,
            users_in_room=self._config.capacity.for_plan(user.plan),
            image_data=image_data or "",
        )

        async with self._db.transaction() as conn:
            await queries_rooms.insert_room(conn, room)
            await queries_rooms.insert_membership(conn, room_id=room.id, user_id=user.id)
            playlist = await queries_playlists.insert_playlist(
                conn,
                name=f"{name}Playlist",
                creator_id=user.id,
                description=description,
                image_data="",
            )
            await queries_rooms.insert_room_playlist(
                conn, room_id=room.id, playlist_id=playlist.id
            )

        logger.info(
            "Room %s created by %s (capacity %d, private=%s)",
            room.id,
            user.id,
            room.users_in_room,
            room.is_private,
        )
        return room

    # ===========================================================================
    # Joining / leaving
    # ===========================================================================

    async def join_room(
        self,
        user: UserRow,
        room_id: str,
        invitation_code: str | None = None,
    ) -> JoinView:
        """
        Join a room by id.

        Existing members get the room view back without a new membership row.
        Private rooms require the matching invitation code.
        """
        async with self._db.transaction() as conn:
            room = await queries_rooms.get_room(conn, room_id)
            if room is None:
                raise NotFoundError("Music room not found")

            existing = await queries_rooms.get_membership(conn, room_id=room.id, user_id=user.id)
            if existing is None:
                if room.is_private and room.invitation_code != invitation_code:
                    raise AuthorizationError("Invalid invitation code for private music room")
                await queries_rooms.insert_membership(conn, room_id=room.id, user_id=user.id)
                logger.info("User %s joined room %s", user.id, room.id)

            return await self._join_view(conn, room)

    async def join_room_by_code(self, user: UserRow, invitation_code: str) -> JoinView:
        """
        Join the room carrying an invitation code.

        Holding the code is the invitation, so private rooms are joinable here.
        """
        async with self._db.transaction() as conn:
            rooms = await queries_rooms.find_rooms_by_code(conn, invitation_code)
            if not rooms:
                raise NotFoundError("Music room not found")
            if len(rooms) > 1:
                logger.warning(
                    "Invitation code %s matches %d rooms; joining the oldest (%s)",
                    invitation_code,
                    len(rooms),
                    rooms[0].id,
                )
            room = rooms[0]

            existing = await queries_rooms.get_membership(conn, room_id=room.id, user_id=user.id)
            if existing is None:
                await queries_rooms.insert_membership(conn, room_id=room.id, user_id=user.id)
                logger.info("User %s joined room %s by code", user.id, room.id)

            return await self._join_view(conn, room)

    @staticmethod
    async def _join_view(conn: aiosqlite.Connection, room: RoomRow) -> JoinView:
        creator = await queries_users.get_user(conn, room.creator_id)
        return JoinView(
            id=room.id,
            name=room.name,
            creator=creator.name if creator is not None else "",
            is_private=room.is_private,
            invitation_code=room.invitation_code,
            description=room.description,
        )

    async def leave_room(self, user: UserRow, room_id: str) -> None:
        async with self._db.transaction() as conn:
            room = await queries_rooms.get_room(conn, room_id)
            if room is None:
                raise NotFoundError("Music room not found")
            await queries_rooms.delete_memberships(conn, room_id=room.id, user_id=user.id)
        logger.info("User %s left room %s", user.id, room_id)

    async def kick_participant(self, user: UserRow, room_id: str, user_id: str) -> None:
        async with self._db.transaction() as conn:
            room = await queries_rooms.get_room(conn, room_id)
            if room is None:
                raise NotFoundError("Music room not found")
            if room.creator_id != user.id:
                raise AuthorizationError("Only the room DJ can kick participants")
            await queries_rooms.delete_memberships(conn, room_id=room.id, user_id=user_id)
        logger.info("User %s kicked from room %s by %s", user_id, room_id, user.id)

    # ===========================================================================
    # Closing
    # ===========================================================================

    async def close_room(self, user: UserRow, room_id: str) -> None:
        """Delete a room and everything bound to it. Only the DJ may close."""
        async with self._db.transaction() as conn:
            room = await queries_rooms.get_room(conn, room_id)
            if room is None:
                raise NotFoundError("Music room not found")
            if room.creator_id != user.id:
                raise AuthorizationError("Only the room DJ can close the room")

            await queries_rooms.delete_memberships(conn, room_id=room.id)

            playlist_ids = await queries_rooms.list_room_playlist_ids(conn, room.id)
            await queries_rooms.delete_room_playlists(conn, room.id)
            for playlist_id in playlist_ids:
                await queries_playlists.delete_track_playlists_for_playlist(conn, playlist_id)
                await queries_playlists.delete_playlist(conn, playlist_id)

            await queries_rooms.delete_room(conn, room.id)

        logger.info("Room %s closed by %s", room_id, user.id)
        if self._events is not None:
            await self._events.publish(RoomClosedEvent(room_id=room_id))

    # ===========================================================================
    # Playlist binding
    # ===========================================================================

    async def playlist_for_room(self, room_id: str) -> str:
        playlist_ids = await self._db.room_playlist_ids(room_id)
        if not playlist_ids:
            raise NotFoundError(f"Music room not found for musicRoomId {room_id}")
        return playlist_ids[0]

    # ===========================================================================
    # DJ handoff
    # ===========================================================================

    async def set_dj(self, user: UserRow, room_id: str, new_owner_id: str) -> str:
        """
        Hand the room over to another user.

        Room owner, playlist owner and the caller's membership row change
        together or not at all.

        Returns:
            Confirmation message.
        """
        async with self._db.transaction() as conn:
            status, plan = await self._check_handoff(conn, user, room_id, new_owner_id)
            if status is not HandoffStatus.OK or plan is None:
                error_cls, reason = _HANDOFF_ERRORS[status]
                logger.info("DJ handoff for room %s refused: %s", room_id, status.value)
                raise error_cls(reason)

            await queries_rooms.set_room_creator(conn, plan.room.id, plan.new_owner.id)
            await queries_playlists.set_playlist_creator(conn, plan.playlist.id, plan.new_owner.id)
            await self._transfer_membership(conn, plan)

        logger.info("DJ of room %s changed: %s -> %s", room_id, user.id, new_owner_id)
        if self._events is not None:
            await self._events.publish(
                DjChangedEvent(
                    room_id=room_id,
                    previous_owner_id=user.id,
                    new_owner_id=new_owner_id,
                )
            )
        return "DJ changed successfully"

    @staticmethod
    async def _check_handoff(
        conn: aiosqlite.Connection,
        user: UserRow,
        room_id: str,
        new_owner_id: str,
    ) -> tuple[HandoffStatus, HandoffPlan | None]:
        room = await queries_rooms.get_room(conn, room_id)
        if room is None:
            return HandoffStatus.ROOM_NOT_FOUND, None

        if room.creator_id != user.id:
            return HandoffStatus.NOT_OWNER, None

        new_owner = await queries_users.get_user(conn, new_owner_id)
        if new_owner is None:
            return HandoffStatus.NEW_OWNER_NOT_FOUND, None

        playlist_ids = await queries_rooms.list_room_playlist_ids(conn, room.id)
        if not playlist_ids:
            return HandoffStatus.PLAYLIST_LINK_MISSING, None
        if len(playlist_ids) > 1:
            return HandoffStatus.PLAYLIST_LINK_AMBIGUOUS, None

        playlist = await queries_playlists.get_playlist(conn, playlist_ids[0])
        if playlist is None:
            return HandoffStatus.PLAYLIST_NOT_FOUND, None

        membership = await queries_rooms.get_membership(conn, room_id=room.id, user_id=user.id)
        if membership is None:
            return HandoffStatus.MEMBERSHIP_MISSING, None

        new_owner_membership = await queries_rooms.get_membership(
            conn, room_id=room.id, user_id=new_owner.id
        )

        return HandoffStatus.OK, HandoffPlan(
            room=room,
            new_owner=new_owner,
            playlist=playlist,
            membership=membership,
            new_owner_membership=new_owner_membership,
        )

    @staticmethod
    async def _transfer_membership(conn: aiosqlite.Connection, plan: HandoffPlan) -> None:
        """
        Move the old DJ's membership row to the new DJ.

        The row is re-pointed in place. When the new DJ already holds a row of
        their own, the old DJ's row is deleted instead so the room keeps at
        most one membership per user.
        """
        existing = plan.new_owner_membership
        if existing is None:
            await queries_rooms.set_membership_user(conn, plan.membership.id, plan.new_owner.id)
        elif existing.id != plan.membership.id:
            await queries_rooms.delete_membership_row(conn, plan.membership.id)
