"""
Realtime layer for Roomcast.

This package owns the live sockets: which connection listens to which room,
how inbound chat and playback frames are fanned out, and how tracks are
streamed to a room.
"""

from roomcast.realtime.connection import Connection, ConnectionState
from roomcast.realtime.dispatch import ChatFanout, PlaybackFanout
from roomcast.realtime.registry import BroadcastResult, ConnectionRegistry, DomainKey
from roomcast.realtime.streamer import TrackStreamer

__all__ = [
    "BroadcastResult",
    "ChatFanout",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "DomainKey",
    "PlaybackFanout",
    "TrackStreamer",
]
