"""
Tests for roomcast.realtime (Connection + ConnectionRegistry).

Tests cover:
- Join/leave idempotence and per-domain isolation
- Broadcast delivery and failure isolation
- Eviction of failing connections
- Connection lifecycle and close callbacks
- Shutdown (close_all) and room.closed handling
"""

from __future__ import annotations

import asyncio

import pytest

from roomcast.core.events import RoomClosedEvent
from roomcast.realtime.connection import ConnectionClosedError, ConnectionState
from roomcast.realtime.registry import ConnectionRegistry, DomainKey, DomainKind


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


class TestDomainKey:
    def test_constructors(self) -> None:
        assert DomainKey.chat("r1") == DomainKey(DomainKind.CHAT, "r1")
        assert DomainKey.playback("r1").kind is DomainKind.PLAYBACK
        assert DomainKey.chat("r1") != DomainKey.playback("r1")

    def test_str(self) -> None:
        assert str(DomainKey.playback("abc")) == "playback:abc"


class TestJoinLeave:
    async def test_join_registers_connection(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        key = DomainKey.chat("r1")

        assert await registry.join(key, conn) is True
        assert key in registry
        assert registry.domain_size(key) == 1
        assert conn.state is ConnectionState.REGISTERED

    async def test_join_twice_is_noop(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        key = DomainKey.chat("r1")

        await registry.join(key, conn)
        assert await registry.join(key, conn) is False
        assert registry.domain_size(key) == 1

    async def test_join_closed_connection_refused(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        conn.mark_closed()

        assert await registry.join(DomainKey.chat("r1"), conn) is False
        assert len(registry) == 0

    async def test_leave_absent_connection_is_safe(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        assert await registry.leave(DomainKey.chat("nope"), conn) is False

    async def test_leave_removes_empty_domain(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        key = DomainKey.chat("r1")
        await registry.join(key, conn)

        assert await registry.leave(key, conn) is True
        assert key not in registry
        assert len(registry) == 0

    async def test_leave_all(self, registry, make_conn) -> None:
        conn, _ = make_conn()
        other, _ = make_conn()
        await registry.join(DomainKey.chat("r1"), conn)
        await registry.join(DomainKey.playback("r1"), conn)
        await registry.join(DomainKey.chat("r1"), other)

        keys = await registry.leave_all(conn)

        assert set(keys) == {DomainKey.chat("r1"), DomainKey.playback("r1")}
        assert await registry.members(DomainKey.chat("r1")) == [other]
        assert DomainKey.playback("r1") not in registry

    async def test_identity_is_connection_id(self, make_conn) -> None:
        a, _ = make_conn()
        b, _ = make_conn()
        assert a != b
        assert a.connection_id != b.connection_id
        assert len({a, b, a}) == 2


class TestBroadcast:
    async def test_broadcast_reaches_every_member(self, registry, make_conn) -> None:
        key = DomainKey.chat("r1")
        pairs = [make_conn() for _ in range(3)]
        for conn, _ in pairs:
            await registry.join(key, conn)

        result = await registry.broadcast(key, "hello")

        assert result.delivered == 3
        assert result.failed == ()
        for _, transport in pairs:
            assert transport.sent == ["hello"]

    async def test_broadcast_is_domain_scoped(self, registry, make_conn) -> None:
        chat_conn, chat_t = make_conn()
        play_conn, play_t = make_conn()
        other_conn, other_t = make_conn()
        await registry.join(DomainKey.chat("r1"), chat_conn)
        await registry.join(DomainKey.playback("r1"), play_conn)
        await registry.join(DomainKey.chat("r2"), other_conn)

        await registry.broadcast(DomainKey.chat("r1"), "only r1 chat")

        assert chat_t.sent == ["only r1 chat"]
        assert play_t.sent == []
        assert other_t.sent == []

    async def test_bytes_go_out_as_binary(self, registry, make_conn) -> None:
        conn, transport = make_conn()
        key = DomainKey.playback("r1")
        await registry.join(key, conn)

        await registry.broadcast(key, b"\x00\x01")

        assert transport.binaries == [b"\x00\x01"]

    async def test_empty_domain(self, registry) -> None:
        result = await registry.broadcast(DomainKey.chat("empty"), "x")
        assert result.delivered == 0

    async def test_failed_send_does_not_stop_others(self, registry, make_conn) -> None:
        key = DomainKey.chat("r1")
        good, good_t = make_conn()
        bad, _ = make_conn(fail=True)
        also_good, also_good_t = make_conn()
        for conn in (good, bad, also_good):
            await registry.join(key, conn)

        result = await registry.broadcast(key, "msg")

        assert result.delivered == 2
        assert result.failed == (bad.connection_id,)
        assert good_t.sent == ["msg"]
        assert also_good_t.sent == ["msg"]

    async def test_failed_connection_is_evicted_everywhere(self, registry, make_conn) -> None:
        bad, _ = make_conn(fail=True)
        await registry.join(DomainKey.chat("r1"), bad)
        await registry.join(DomainKey.playback("r1"), bad)

        await registry.broadcast(DomainKey.chat("r1"), "msg")

        assert len(registry) == 0

    async def test_sequential_broadcasts_keep_order(self, registry, make_conn) -> None:
        key = DomainKey.chat("r1")
        conn, transport = make_conn()
        await registry.join(key, conn)

        for i in range(5):
            await registry.broadcast(key, f"m{i}")

        assert transport.sent == [f"m{i}" for i in range(5)]

    async def test_concurrent_join_and_broadcast(self, registry, make_conn) -> None:
        key = DomainKey.chat("r1")
        pairs = [make_conn() for _ in range(20)]

        await asyncio.gather(
            *(registry.join(key, conn) for conn, _ in pairs),
            registry.broadcast(key, "early"),
        )
        result = await registry.broadcast(key, "late")

        assert result.delivered == 20
        assert all(t.sent[-1] == "late" for _, t in pairs)


class TestConnectionLifecycle:
    async def test_no_send_after_close(self, make_conn) -> None:
        conn, transport = make_conn()
        conn.begin_close()

        with pytest.raises(ConnectionClosedError):
            await conn.send("late")
        assert transport.sent == []

    async def test_close_callbacks_fire_once(self, make_conn) -> None:
        conn, _ = make_conn()
        calls: list[str] = []
        conn.add_close_callback(lambda c: calls.append(c.connection_id))

        conn.begin_close()
        conn.begin_close()
        conn.mark_closed()

        assert calls == [conn.connection_id]
        assert conn.state is ConnectionState.CLOSED

    async def test_callback_added_after_close_runs_immediately(self, make_conn) -> None:
        conn, _ = make_conn()
        conn.mark_closed()
        calls: list[int] = []

        conn.add_close_callback(lambda c: calls.append(1))

        assert calls == [1]

    async def test_failing_callback_does_not_block_others(self, make_conn) -> None:
        conn, _ = make_conn()
        calls: list[int] = []

        def boom(_c) -> None:
            raise RuntimeError("boom")

        conn.add_close_callback(boom)
        conn.add_close_callback(lambda c: calls.append(1))
        conn.begin_close()

        assert calls == [1]

    async def test_removed_callback_does_not_fire(self, make_conn) -> None:
        conn, _ = make_conn()
        calls: list[int] = []

        def cb(_c) -> None:
            calls.append(1)

        conn.add_close_callback(cb)
        conn.remove_close_callback(cb)
        conn.remove_close_callback(cb)
        conn.begin_close()

        assert calls == []


class TestShutdown:
    async def test_close_all(self, registry, make_conn) -> None:
        a, a_t = make_conn()
        b, b_t = make_conn()
        await registry.join(DomainKey.chat("r1"), a)
        await registry.join(DomainKey.playback("r1"), a)
        await registry.join(DomainKey.chat("r2"), b)

        await registry.close_all()

        assert len(registry) == 0
        assert a_t.closed_with == 1001
        assert b_t.closed_with == 1001
        assert a.state is ConnectionState.CLOSED

    async def test_room_closed_event_drops_both_domains(self, registry, make_conn) -> None:
        a, _ = make_conn()
        b, _ = make_conn()
        keep, _ = make_conn()
        await registry.join(DomainKey.chat("r1"), a)
        await registry.join(DomainKey.playback("r1"), b)
        await registry.join(DomainKey.chat("r2"), keep)

        await registry.on_room_closed(RoomClosedEvent(room_id="r1"))

        assert list(registry) == [DomainKey.chat("r2")]
