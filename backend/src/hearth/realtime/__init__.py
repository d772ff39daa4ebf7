"""Realtime helpers for distributed websocket coordination."""

from .managers import (  # noqa: F401
    AUTH_ERROR_EVENT,
    Connection,
    ConnectionRegistry,
    RealtimeBroadcaster,
    WebSocketConnection,
    channel_room,
    get_broadcaster,
    get_registry,
    server_room,
    shutdown_realtime,
    startup_realtime,
    user_room,
)

__all__ = [
    "AUTH_ERROR_EVENT",
    "Connection",
    "ConnectionRegistry",
    "RealtimeBroadcaster",
    "WebSocketConnection",
    "channel_room",
    "get_broadcaster",
    "get_registry",
    "server_room",
    "shutdown_realtime",
    "startup_realtime",
    "user_room",
]
