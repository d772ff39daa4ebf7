"""Room based connection registry and the cluster-wide realtime broadcaster."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Iterable, Protocol, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.config import get_settings
from app.monitoring.metrics import (
    realtime_connections,
    realtime_events_total,
    realtime_publish_errors_total,
)

from .transport import EVENTS_TOPIC, BrokerConfig, RedisTransport, TransportUnavailableError

logger = logging.getLogger(__name__)

AUTH_ERROR_EVENT = "user:auth_error"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def channel_room(channel_id: int) -> str:
    return f"channel:{channel_id}"


def server_room(server_id: int) -> str:
    return f"server:{server_id}"


class Connection(Protocol):
    """A live client connection the broadcaster can push events to."""

    id: str
    user_id: int

    async def send(self, event: str, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class WebSocketConnection:
    """Adapts a FastAPI websocket to :class:`Connection`."""

    def __init__(self, websocket: WebSocket, user_id: int) -> None:
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self._websocket = websocket

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self._websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self._websocket.send_json({"event": event, "data": payload})
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Failed to send websocket message: %s", exc)

    async def close(self) -> None:
        if self._websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self._websocket.close(code=4001)
            except RuntimeError:
                pass


class ConnectionRegistry:
    """Tracks live connections on this worker and the rooms they joined."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)
        self._memberships: Dict[str, Set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def register(self, connection: Connection) -> None:
        if connection.id in self._connections:
            return
        self._connections[connection.id] = connection
        realtime_connections.labels().inc()
        self.join(connection.id, user_room(connection.user_id))

    def join(self, connection_id: str, *rooms: str) -> None:
        if connection_id not in self._connections:
            return
        for room in rooms:
            self._rooms[room].add(connection_id)
            self._memberships[connection_id].add(room)

    def leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                self._rooms.pop(room, None)
        self._memberships.get(connection_id, set()).discard(room)

    def unregister(self, connection_id: str) -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        for room in self._memberships.pop(connection_id, set()):
            self.leave(connection_id, room)
        realtime_connections.labels().dec()
        return connection

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._memberships.get(connection_id, set()))

    def connections_in(
        self, rooms: Iterable[str], *, exclude: str | None = None
    ) -> list[Connection]:
        seen: set[str] = set()
        targets: list[Connection] = []
        for room in rooms:
            for connection_id in list(self._rooms.get(room, ())):
                if connection_id == exclude or connection_id in seen:
                    continue
                seen.add(connection_id)
                connection = self._connections.get(connection_id)
                if connection is not None:
                    targets.append(connection)
        return targets

    def clear(self) -> None:
        for connection_id in list(self._connections):
            self.unregister(connection_id)


class RealtimeBroadcaster:
    """Delivers events to rooms on every worker.

    Local connections are served directly; the same envelope is relayed over the
    transport so other workers can serve theirs. Envelopes carry the origin node
    id and are ignored by the worker that sent them.
    """

    def __init__(self, registry: ConnectionRegistry, transport: RedisTransport, *, node_id: str) -> None:
        self._registry = registry
        self._transport = transport
        self._node_id = node_id
        self._subscribed = False
        self._publish_warning_logged = False

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def node_id(self) -> str:
        return self._node_id

    async def start(self) -> None:
        if not self._transport.configured:
            logger.info("No realtime Redis URL configured; events are delivered on this worker only")
            return
        try:
            await self._transport.start()
            await self._transport.subscribe(EVENTS_TOPIC, self._handle_remote)
        except TransportUnavailableError:
            logger.warning(
                "Realtime backend unavailable during startup; continuing without cross-node sync",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return
        self._subscribed = True

    async def stop(self) -> None:
        await self._transport.stop()
        self._subscribed = False

    async def emit(
        self,
        rooms: str | Iterable[str],
        event: str,
        payload: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None:
        """Send ``event`` to every connection in ``rooms`` except ``exclude``."""

        targets = [rooms] if isinstance(rooms, str) else list(rooms)
        await self._deliver(targets, event, payload, exclude)
        await self._publish(
            event,
            {
                "kind": "emit",
                "origin": self._node_id,
                "rooms": targets,
                "event": event,
                "payload": payload,
                "exclude": exclude,
            },
        )

    async def disconnect_user(self, user_id: int, *, exclude: str | None = None) -> None:
        """Notify and close every connection of ``user_id`` except ``exclude``."""

        await self._disconnect_local(user_id, exclude)
        await self._publish(
            AUTH_ERROR_EVENT,
            {
                "kind": "disconnect",
                "origin": self._node_id,
                "user_id": user_id,
                "exclude": exclude,
            },
        )

    async def _deliver(
        self, rooms: list[str], event: str, payload: dict[str, Any], exclude: str | None
    ) -> None:
        for connection in self._registry.connections_in(rooms, exclude=exclude):
            try:
                await connection.send(event, payload)
            except Exception:
                logger.warning(
                    "Failed to deliver realtime event",
                    exc_info=True,
                    extra={"event": event, "connection_id": connection.id},
                )
        realtime_events_total.labels(event, "local").inc()

    async def _disconnect_local(self, user_id: int, exclude: str | None) -> None:
        for connection in self._registry.connections_in([user_room(user_id)], exclude=exclude):
            self._registry.unregister(connection.id)
            try:
                await connection.send(AUTH_ERROR_EVENT, {"message": "Invalid Token"})
                await connection.close()
            except Exception:
                logger.warning(
                    "Failed to close realtime connection",
                    exc_info=True,
                    extra={"user_id": user_id, "connection_id": connection.id},
                )

    async def _publish(self, event: str, envelope: dict[str, Any]) -> None:
        if not self._transport.configured:
            return
        try:
            await self._transport.publish(EVENTS_TOPIC, envelope)
        except TransportUnavailableError:
            if not self._publish_warning_logged:
                logger.warning(
                    "Realtime backend unavailable while relaying %s; operating in local-only mode",
                    event,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                self._publish_warning_logged = True
            realtime_publish_errors_total.labels("unavailable").inc()
        except Exception:
            realtime_publish_errors_total.labels("error").inc()
            logger.exception("Unexpected error while relaying %s", event)
        else:
            self._publish_warning_logged = False
            realtime_events_total.labels(event, "out").inc()

    async def _handle_remote(self, message: dict[str, Any]) -> None:
        if message.get("origin") == self._node_id:
            return
        kind = message.get("kind")
        if kind == "emit":
            rooms = message.get("rooms") or []
            event = message.get("event")
            if not isinstance(event, str) or not isinstance(rooms, list):
                return
            await self._deliver(
                [str(room) for room in rooms], event, message.get("payload") or {}, message.get("exclude")
            )
            realtime_events_total.labels(event, "in").inc()
        elif kind == "disconnect":
            try:
                user_id = int(message["user_id"])
            except (KeyError, TypeError, ValueError):
                return
            await self._disconnect_local(user_id, message.get("exclude"))
            realtime_events_total.labels(AUTH_ERROR_EVENT, "in").inc()


settings = get_settings()

_node_id = settings.realtime_node_id or uuid.uuid4().hex

transport = RedisTransport(
    BrokerConfig(
        redis_url=settings.realtime_redis_url,
        prefix=settings.realtime_namespace,
        node_id=_node_id,
    )
)

registry = ConnectionRegistry()
broadcaster = RealtimeBroadcaster(registry, transport, node_id=_node_id)


async def startup_realtime() -> None:
    await broadcaster.start()


async def shutdown_realtime() -> None:
    await broadcaster.stop()


def get_broadcaster() -> RealtimeBroadcaster:
    return broadcaster


def get_registry() -> ConnectionRegistry:
    return registry


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
