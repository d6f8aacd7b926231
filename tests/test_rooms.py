"""
Tests for roomcast.core.rooms (RoomService).

Tests cover:
- Room creation (capacity tiers, invitation codes, creator membership, playlist)
- Joining by id and by invitation code
- Leave / kick / close cascade
- DJ handoff preconditions and all-or-nothing behaviour
"""

from __future__ import annotations

import sqlite3

import pytest

from roomcast.config import CapacityTiers, ServerConfig
from roomcast.core import (
    AuthorizationError,
    InconsistentStateError,
    NotFoundError,
    PersistenceError,
)
from roomcast.core.db import queries_playlists, queries_rooms
from roomcast.core.db.models import NewTrack
from roomcast.core.events import DjChangedEvent, Event, EventBus, RoomClosedEvent
from roomcast.core.playlists import PlaylistService
from roomcast.core.rooms import RoomService, generate_invitation_code

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig()


@pytest.fixture
def rooms(db, config, bus) -> RoomService:
    return RoomService(db, config, events=bus)


@pytest.fixture
async def published(bus: EventBus) -> list[Event]:
    seen: list[Event] = []

    async def on_event(event: Event) -> None:
        seen.append(event)

    await bus.subscribe("room.*", on_event)
    return seen


async def _force_code(db, room_id: str, code: str) -> None:
    async with db.transaction() as conn:
        await conn.execute("UPDATE rooms SET invitation_code = ? WHERE id = ?", (code, room_id))


# =============================================================================
# Creation
# =============================================================================


class TestCreateRoom:
    @pytest.mark.parametrize(
        "plan,capacity",
        [
            ("basic", 5),
            ("standard", 15),
            ("standart", 15),
            ("premium", 100),
            ("platinum", 100),
            ("", 100),
        ],
    )
    async def test_capacity_from_plan(self, rooms, register, plan, capacity) -> None:
        session = await register("owner", plan=plan)
        room = await rooms.create_room(session.user, name="R", is_private=False)
        assert room.users_in_room == capacity

    async def test_creates_membership_playlist_and_link(self, db, rooms, register) -> None:
        session = await register("owner")
        room = await rooms.create_room(
            session.user, name="Lounge", is_private=True, description="late night"
        )

        stored = await db.get_room(room.id)
        assert stored == room
        assert stored.creator_id == session.user.id

        members = await db.list_memberships(room.id)
        assert [m.user_id for m in members] == [session.user.id]

        playlist_ids = await db.room_playlist_ids(room.id)
        assert len(playlist_ids) == 1
        playlist = await db.get_playlist(playlist_ids[0])
        assert playlist.name == "LoungePlaylist"
        assert playlist.creator_id == session.user.id

    async def test_invitation_code_shape(self, rooms, register) -> None:
        session = await register("owner")
        room = await rooms.create_room(session.user, name="R", is_private=False)
        assert len(room.invitation_code) == 5
        assert room.invitation_code.isalnum()

    async def test_custom_capacity_tiers(self, db, register) -> None:
        config = ServerConfig(capacity=CapacityTiers(basic=2))
        session = await register("owner", plan="basic")
        room = await RoomService(db, config).create_room(session.user, name="R", is_private=False)
        assert room.users_in_room == 2

    async def test_failure_leaves_no_rows(self, db, rooms, register, monkeypatch) -> None:
        session = await register("owner")

        async def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(queries_rooms, "insert_room_playlist", fail)
        with pytest.raises(PersistenceError):
            await rooms.create_room(session.user, name="R", is_private=False)

        async with db.transaction() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM rooms")
            assert (await cursor.fetchone())[0] == 0
            cursor = await conn.execute("SELECT COUNT(*) FROM playlists")
            assert (await cursor.fetchone())[0] == 0


def test_generate_invitation_code() -> None:
    code = generate_invitation_code("xyz", 8)
    assert len(code) == 8
    assert set(code) <= set("xyz")


# =============================================================================
# Joining
# =============================================================================


class TestJoinRoom:
    async def test_join_public_room(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="Open", is_private=False)

        view = await rooms.join_room(guest.user, room.id)

        assert view.to_dict() == {
            "id": room.id,
            "name": "Open",
            "creator": "owner",
            "isPrivate": False,
            "invitationCode": room.invitation_code,
            "description": "",
        }
        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is not None

    async def test_private_room_requires_matching_code(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="Secret", is_private=True)
        await _force_code(db, room.id, "AB12C")

        with pytest.raises(AuthorizationError):
            await rooms.join_room(guest.user, room.id, "XY9Z8")
        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is None

        view = await rooms.join_room(guest.user, room.id, "AB12C")
        assert view.is_private is True
        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is not None

    async def test_join_twice_keeps_one_membership(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)

        await rooms.join_room(guest.user, room.id)
        await rooms.join_room(guest.user, room.id)

        members = await db.list_memberships(room.id)
        assert sorted(m.user_id for m in members) == sorted([owner.user.id, guest.user.id])

    async def test_existing_member_needs_no_code(self, rooms, register) -> None:
        owner = await register("owner")
        room = await rooms.create_room(owner.user, name="R", is_private=True)

        view = await rooms.join_room(owner.user, room.id)
        assert view.id == room.id

    async def test_unknown_room(self, rooms, register) -> None:
        guest = await register("guest")
        with pytest.raises(NotFoundError):
            await rooms.join_room(guest.user, "no-such-room")


class TestJoinByCode:
    async def test_code_joins_private_room(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="Secret", is_private=True)

        view = await rooms.join_room_by_code(guest.user, room.invitation_code)

        assert view.id == room.id
        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is not None

    async def test_unknown_code(self, rooms, register) -> None:
        guest = await register("guest")
        with pytest.raises(NotFoundError):
            await rooms.join_room_by_code(guest.user, "ZZZZZ")

    async def test_shared_code_joins_oldest(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        first = await rooms.create_room(owner.user, name="First", is_private=False)
        second = await rooms.create_room(owner.user, name="Second", is_private=False)
        await _force_code(db, first.id, "SAME1")
        await _force_code(db, second.id, "SAME1")

        view = await rooms.join_room_by_code(guest.user, "SAME1")

        assert view.id == first.id
        assert await db.get_membership(room_id=second.id, user_id=guest.user.id) is None


# =============================================================================
# Leave / kick / close
# =============================================================================


class TestLeaveAndKick:
    async def test_leave(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)
        await rooms.join_room(guest.user, room.id)

        await rooms.leave_room(guest.user, room.id)

        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is None
        assert await db.get_room(room.id) is not None

    async def test_leave_unknown_room(self, rooms, register) -> None:
        guest = await register("guest")
        with pytest.raises(NotFoundError):
            await rooms.leave_room(guest.user, "missing")

    async def test_owner_kicks(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)
        await rooms.join_room(guest.user, room.id)

        await rooms.kick_participant(owner.user, room.id, guest.user.id)

        assert await db.get_membership(room_id=room.id, user_id=guest.user.id) is None

    async def test_non_owner_cannot_kick(self, db, rooms, register) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)
        await rooms.join_room(guest.user, room.id)

        with pytest.raises(AuthorizationError):
            await rooms.kick_participant(guest.user, room.id, owner.user.id)
        assert await db.get_membership(room_id=room.id, user_id=owner.user.id) is not None


class TestCloseRoom:
    async def test_cascade(self, db, rooms, register, published) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)
        await rooms.join_room(guest.user, room.id)
        playlist_id = await rooms.playlist_for_room(room.id)

        playlists = PlaylistService(db)
        track = await playlists.store_track(NewTrack(track_id="ext-1", title="T", artist="A"))
        await playlists.add_track(playlist_id, track.id)
        await db.save_chat_message(message="bye", creator_id=guest.user.id, room_id=room.id)

        await rooms.close_room(owner.user, room.id)

        assert await db.get_room(room.id) is None
        assert await db.list_memberships(room.id) == []
        assert await db.room_playlist_ids(room.id) == []
        assert await db.get_playlist(playlist_id) is None
        assert await db.count_track_playlists(playlist_id) == 0
        assert await db.chat_messages(room.id) == []
        # The track store itself is shared and survives.
        assert await db.get_track_by_external_id("ext-1") is not None

        assert [type(e) for e in published] == [RoomClosedEvent]
        assert published[0].room_id == room.id

    async def test_only_owner_closes(self, db, rooms, register, published) -> None:
        owner = await register("owner")
        guest = await register("guest")
        room = await rooms.create_room(owner.user, name="R", is_private=False)

        with pytest.raises(AuthorizationError):
            await rooms.close_room(guest.user, room.id)
        assert await db.get_room(room.id) is not None
        assert published == []

    async def test_close_unknown(self, rooms, register) -> None:
        owner = await register("owner")
        with pytest.raises(NotFoundError):
            await rooms.close_room(owner.user, "missing")


class TestPlaylistForRoom:
    async def test_bound_playlist(self, db, rooms, register) -> None:
        owner = await register("owner")
        room = await rooms.create_room(owner.user, name="R", is_private=False)
        assert await rooms.playlist_for_room(room.id) == (await db.room_playlist_ids(room.id))[0]

    async def test_unknown_room(self, rooms) -> None:
        with pytest.raises(NotFoundError):
            await rooms.playlist_for_room("missing")


# =============================================================================
# DJ handoff
# =============================================================================


@pytest.fixture
async def handoff(db, rooms, register):
    """A room owned by `dj` with `guest` as a second member."""
    dj = await register("dj")
    guest = await register("guest")
    room = await rooms.create_room(dj.user, name="R", is_private=False)
    await rooms.join_room(guest.user, room.id)
    playlist_id = await rooms.playlist_for_room(room.id)
    return dj.user, guest.user, room, playlist_id


async def _snapshot(db, room_id: str, playlist_id: str):
    room = await db.get_room(room_id)
    playlist = await db.get_playlist(playlist_id)
    members = sorted((m.id, m.user_id) for m in await db.list_memberships(room_id))
    return room.creator_id, playlist.creator_id, members


class TestSetDj:
    async def test_handoff_to_outsider(self, db, rooms, register, published) -> None:
        dj = await register("dj")
        newcomer = await register("newcomer")
        room = await rooms.create_room(dj.user, name="R", is_private=False)
        playlist_id = await rooms.playlist_for_room(room.id)
        old_membership = await db.get_membership(room_id=room.id, user_id=dj.user.id)

        message = await rooms.set_dj(dj.user, room.id, newcomer.user.id)

        assert message == "DJ changed successfully"
        assert (await db.get_room(room.id)).creator_id == newcomer.user.id
        assert (await db.get_playlist(playlist_id)).creator_id == newcomer.user.id
        # The membership row is re-pointed in place.
        moved = await db.get_membership(room_id=room.id, user_id=newcomer.user.id)
        assert moved is not None and moved.id == old_membership.id
        assert await db.get_membership(room_id=room.id, user_id=dj.user.id) is None

        assert len(published) == 1
        event = published[0]
        assert isinstance(event, DjChangedEvent)
        assert (event.previous_owner_id, event.new_owner_id) == (dj.user.id, newcomer.user.id)

    async def test_handoff_to_existing_member(self, db, rooms, handoff) -> None:
        dj, guest, room, playlist_id = handoff

        await rooms.set_dj(dj, room.id, guest.id)

        members = await db.list_memberships(room.id)
        assert [m.user_id for m in members] == [guest.id]
        assert (await db.get_room(room.id)).creator_id == guest.id

    async def test_handoff_to_self(self, db, rooms, handoff) -> None:
        dj, _, room, playlist_id = handoff
        before = await _snapshot(db, room.id, playlist_id)

        await rooms.set_dj(dj, room.id, dj.id)

        assert await _snapshot(db, room.id, playlist_id) == before

    async def test_new_dj_can_hand_back(self, db, rooms, handoff) -> None:
        dj, guest, room, _ = handoff
        await rooms.set_dj(dj, room.id, guest.id)

        with pytest.raises(AuthorizationError):
            await rooms.set_dj(dj, room.id, guest.id)

        await rooms.set_dj(guest, room.id, dj.id)
        assert (await db.get_room(room.id)).creator_id == dj.id

    async def test_room_not_found(self, rooms, handoff) -> None:
        dj, guest, _, _ = handoff
        with pytest.raises(NotFoundError):
            await rooms.set_dj(dj, "missing", guest.id)

    async def test_caller_not_owner(self, db, rooms, handoff, published) -> None:
        dj, guest, room, playlist_id = handoff
        before = await _snapshot(db, room.id, playlist_id)

        with pytest.raises(AuthorizationError):
            await rooms.set_dj(guest, room.id, guest.id)

        assert await _snapshot(db, room.id, playlist_id) == before
        assert published == []

    async def test_new_owner_not_found(self, rooms, handoff) -> None:
        dj, _, room, _ = handoff
        with pytest.raises(NotFoundError):
            await rooms.set_dj(dj, room.id, "ghost")

    async def test_playlist_link_missing(self, db, rooms, handoff) -> None:
        dj, guest, room, _ = handoff
        async with db.transaction() as conn:
            await queries_rooms.delete_room_playlists(conn, room.id)

        with pytest.raises(InconsistentStateError):
            await rooms.set_dj(dj, room.id, guest.id)
        assert (await db.get_room(room.id)).creator_id == dj.id

    async def test_caller_membership_missing(self, db, rooms, handoff) -> None:
        dj, guest, room, playlist_id = handoff
        await rooms.leave_room(dj, room.id)
        before = await _snapshot(db, room.id, playlist_id)

        with pytest.raises(InconsistentStateError):
            await rooms.set_dj(dj, room.id, guest.id)
        assert await _snapshot(db, room.id, playlist_id) == before

    @pytest.mark.parametrize(
        "module,name",
        [
            (queries_rooms, "set_room_creator"),
            (queries_playlists, "set_playlist_creator"),
            (queries_rooms, "set_membership_user"),
        ],
    )
    async def test_failure_at_any_step_rolls_back(
        self, db, rooms, register, published, monkeypatch, module, name
    ) -> None:
        dj = await register("dj")
        newcomer = await register("newcomer")
        room = await rooms.create_room(dj.user, name="R", is_private=False)
        playlist_id = await rooms.playlist_for_room(room.id)
        before = await _snapshot(db, room.id, playlist_id)

        async def fail(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(module, name, fail)
        with pytest.raises(PersistenceError):
            await rooms.set_dj(dj.user, room.id, newcomer.user.id)

        assert await _snapshot(db, room.id, playlist_id) == before
        assert published == []

    async def test_failure_after_writes_rolls_back(
        self, db, rooms, handoff, published, monkeypatch
    ) -> None:
        dj, guest, room, playlist_id = handoff
        before = await _snapshot(db, room.id, playlist_id)

        async def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        # Last step when the new DJ is already a member.
        monkeypatch.setattr(queries_rooms, "delete_membership_row", fail)
        with pytest.raises(PersistenceError):
            await rooms.set_dj(dj, room.id, guest.id)

        assert await _snapshot(db, room.id, playlist_id) == before
        assert published == []
