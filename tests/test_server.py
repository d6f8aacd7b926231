"""
Tests for roomcast.server (RoomcastServer lifecycle).

uvicorn is replaced by no-op start/stop so the lifecycle runs in-process.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from roomcast.config import ServerConfig
from roomcast.server import RoomcastServer


@pytest.fixture
def server(tmp_path: Path, monkeypatch) -> RoomcastServer:
    server = RoomcastServer(ServerConfig(db_path=":memory:", media_dir=tmp_path))
    calls: list[str] = []

    async def fake_start(host: str = "0.0.0.0", port: int = 8080) -> None:
        calls.append("start")

    async def fake_stop() -> None:
        calls.append("stop")

    monkeypatch.setattr(server.web_server, "start", fake_start)
    monkeypatch.setattr(server.web_server, "stop", fake_stop)
    server.web_calls = calls
    return server


class TestLifecycle:
    async def test_run_returns_after_stop(self, server: RoomcastServer) -> None:
        runner = asyncio.create_task(server.run())
        while server.web_calls.count("start") <= server.web_calls.count("stop"):
            await asyncio.sleep(0)
        assert server.db.is_open

        await server.stop()
        await asyncio.wait_for(runner, timeout=5)

        assert not server.is_running
        assert not server.db.is_open
        assert server.web_calls == ["start", "stop"]

    async def test_stop_when_not_running_is_noop(self, server: RoomcastServer) -> None:
        await server.stop()
        assert server.web_calls == []

    async def test_can_run_again_after_stop(self, server: RoomcastServer) -> None:
        for _ in range(2):
            runner = asyncio.create_task(server.run())
            while server.web_calls.count("start") <= server.web_calls.count("stop"):
                await asyncio.sleep(0)
            await server.stop()
            await asyncio.wait_for(runner, timeout=5)

        assert server.web_calls == ["start", "stop", "start", "stop"]
