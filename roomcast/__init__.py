"""
Roomcast - shared music rooms with live chat and streamed playback.

A room has one DJ who owns it and its playlist. Listeners join by id or
invitation code, chat over a socket, and receive the DJ's track as a stream
of binary chunks over a second socket.
"""

__version__ = "0.1.0"

from roomcast.server import RoomcastServer

__all__ = ["RoomcastServer", "__version__"]
