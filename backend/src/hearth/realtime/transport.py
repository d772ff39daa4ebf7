"""Redis pub/sub transport relaying realtime events between API workers."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_PUBLISH_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)

_RECOVERY_BASE_DELAY = 0.5
_RECOVERY_MAX_DELAY = 30.0

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]

EVENTS_TOPIC = "events"


@dataclass(slots=True)
class BrokerConfig:
    """Configuration used for wiring the realtime transport layer."""

    redis_url: str | None
    prefix: str = "hearth.realtime"
    node_id: str | None = None


class TransportUnavailableError(RuntimeError):
    """Raised when the relay cannot be reached or is not configured."""


class RedisTransport:
    """Publishes JSON payloads to ``<prefix>.<topic>`` and feeds subscribers.

    A reader task per subscribed topic pumps messages into its handler; when the
    reader dies the transport reconnects with exponential backoff.
    """

    def __init__(self, config: BrokerConfig) -> None:
        self._config = config
        self._redis: Any | None = None
        self._handlers: dict[str, MessageHandler] = {}
        self._readers: dict[str, asyncio.Task[Any]] = {}
        self._recovery_task: asyncio.Task[Any] | None = None
        self._stopping = False

    @property
    def node_id(self) -> str | None:
        return self._config.node_id

    @property
    def configured(self) -> bool:
        return bool(self._config.redis_url)

    @property
    def connected(self) -> bool:
        return self._redis is not None

    def channel_name(self, topic: str) -> str:
        prefix = self._config.prefix.rstrip(".")
        return f"{prefix}.{topic}" if prefix else topic

    async def start(self) -> None:
        if not self._config.redis_url or self._redis is not None:
            return
        self._stopping = False
        client = redis_asyncio.from_url(
            self._config.redis_url, encoding="utf-8", decode_responses=True
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            with contextlib.suppress(Exception):
                await client.close()
            raise TransportUnavailableError("Redis backend is unavailable") from exc
        self._redis = client

    async def stop(self) -> None:
        self._stopping = True
        if self._recovery_task is not None:
            self._recovery_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._recovery_task
            self._recovery_task = None
        for task in list(self._readers.values()):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._readers.clear()
        self._handlers.clear()
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
            self._redis = None

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if self._redis is None:
            raise TransportUnavailableError("Redis backend is not configured")
        channel = self.channel_name(topic)
        try:
            await self._redis.publish(channel, json.dumps(payload, default=str))
        except _PUBLISH_ERRORS as exc:
            self._trigger_recovery("publish_failed")
            raise TransportUnavailableError("Redis backend is unavailable") from exc
        logger.debug("Published realtime payload", extra={"channel": channel})

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        if self._redis is None:
            raise TransportUnavailableError("Redis backend is not configured")
        self._handlers[topic] = handler
        await self._attach_reader(topic)

    async def _attach_reader(self, topic: str) -> None:
        assert self._redis is not None
        channel = self.channel_name(topic)
        handler = self._handlers[topic]
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except _PUBLISH_ERRORS as exc:
            with contextlib.suppress(Exception):
                await pubsub.close()
            raise TransportUnavailableError("Redis backend is unavailable") from exc

        async def reader() -> None:
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    raw = message.get("data")
                    if not isinstance(raw, str):
                        continue
                    try:
                        payload = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("Discarded malformed realtime payload", extra={"channel": channel})
                        continue
                    try:
                        await handler(payload)
                    except Exception:
                        logger.exception("Realtime handler failed", extra={"channel": channel})
            finally:
                with contextlib.suppress(Exception):
                    await pubsub.unsubscribe(channel)
                with contextlib.suppress(Exception):
                    await pubsub.close()

        task = asyncio.create_task(reader(), name=f"realtime-redis-{channel}")
        self._readers[topic] = task
        task.add_done_callback(lambda finished: self._on_reader_done(topic, finished))

    def _on_reader_done(self, topic: str, task: asyncio.Task[Any]) -> None:
        if self._readers.get(topic) is task:
            self._readers.pop(topic, None)
        if self._stopping or task.cancelled():
            return
        exc = task.exception()
        logger.warning(
            "Redis subscription reader stopped; scheduling recovery",
            exc_info=exc,
            extra={"topic": topic},
        )
        self._trigger_recovery("reader_stopped")

    def _trigger_recovery(self, reason: str) -> None:
        if self._stopping or not self._config.redis_url:
            return
        if self._recovery_task is not None and not self._recovery_task.done():
            return
        logger.info("Scheduling Redis realtime recovery", extra={"reason": reason})
        self._recovery_task = asyncio.create_task(
            self._recover(reason), name="realtime-redis-recovery"
        )

    async def _recover(self, reason: str) -> None:
        attempt = 0
        while not self._stopping:
            await asyncio.sleep(min(_RECOVERY_BASE_DELAY * (2**attempt), _RECOVERY_MAX_DELAY))
            try:
                await self._restart()
            except (TransportUnavailableError, RedisError, OSError):
                attempt += 1
                logger.warning(
                    "Redis realtime recovery attempt failed",
                    extra={"attempt": attempt, "reason": reason},
                )
                continue
            logger.info("Redis realtime backend recovered", extra={"reason": reason})
            break
        self._recovery_task = None

    async def _restart(self) -> None:
        for task in list(self._readers.values()):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._readers.clear()
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
            self._redis = None
        await self.start()
        for topic in list(self._handlers):
            await self._attach_reader(topic)
