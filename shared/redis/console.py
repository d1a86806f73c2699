"""Console fan-out/fan-in over Redis pub/sub.

Each server has two topics:

    console:<server_id>:input   - text typed by viewers, consumed by the agent
    console:<server_id>:output  - container output, fanned out to every viewer

Pub/sub has no backlog: input published while nobody listens is dropped,
and a viewer only sees output produced after it subscribed.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
import os

import redis.asyncio as redis
from redis.asyncio.client import PubSub
import structlog

logger = structlog.get_logger(__name__)

TOPIC_PREFIX = "console"
INPUT_PATTERN = f"{TOPIC_PREFIX}:*:input"
# Pause between empty polls when the client returns without waiting
IDLE_SLEEP = 0.01


def input_topic(server_id: str) -> str:
    return f"{TOPIC_PREFIX}:{server_id}:input"


def output_topic(server_id: str) -> str:
    return f"{TOPIC_PREFIX}:{server_id}:output"


def _decode(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


@dataclass
class ConsoleMessage:
    """A message received on a console topic."""

    server_id: str
    data: str


class ConsoleSubscription:
    """One subscriber's view of a topic (or topic pattern)."""

    def __init__(self, pubsub: PubSub, poll_interval: float = 1.0):
        self._pubsub = pubsub
        self.poll_interval = poll_interval

    @staticmethod
    def _to_message(raw: dict) -> ConsoleMessage | None:
        if raw.get("type") not in ("message", "pmessage"):
            return None
        channel = _decode(raw["channel"])
        # console:<server_id>:<direction>
        server_id = channel.split(":", 2)[1]
        return ConsoleMessage(server_id=server_id, data=_decode(raw["data"]))

    async def get(self, timeout: float = 1.0) -> ConsoleMessage | None:
        """Wait up to `timeout` seconds for the next message."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            # None also comes back right after a swallowed subscribe confirmation
            raw = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=remaining
            )
            if raw is None:
                await asyncio.sleep(min(IDLE_SLEEP, max(deadline - loop.time(), 0)))
                continue
            message = self._to_message(raw)
            if message is not None:
                return message

    async def __aiter__(self) -> AsyncIterator[ConsoleMessage]:
        # Polling with a timeout keeps every wait cancellable
        while True:
            message = await self.get(timeout=self.poll_interval)
            if message is not None:
                yield message


class ConsolePubSub:
    """Publish and subscribe to server console topics."""

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        """Initialize the console transport.

        Args:
            redis_url: Redis connection URL. Falls back to REDIS_URL env var.
            client: Already constructed client (tests pass a FakeRedis here).
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self._redis: redis.Redis | None = client
        if client is None and not self.redis_url:
            raise RuntimeError(
                "Redis URL not provided. Pass redis_url argument or set REDIS_URL env var."
            )

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("redis_connected", redis_url=self.redis_url)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_connection_closed")

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def publish_input(self, server_id: str, text: str) -> int:
        """Publish viewer input. Returns the number of listeners that got it."""
        receivers = await self.redis.publish(input_topic(server_id), text)
        logger.debug("console_input_published", server_id=server_id, receivers=receivers)
        return receivers

    async def publish_output(self, server_id: str, text: str) -> int:
        return await self.redis.publish(output_topic(server_id), text)

    @asynccontextmanager
    async def _subscription(
        self, channels: list[str], patterns: list[str]
    ) -> AsyncIterator[ConsoleSubscription]:
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        if channels:
            await pubsub.subscribe(*channels)
        if patterns:
            await pubsub.psubscribe(*patterns)
        try:
            yield ConsoleSubscription(pubsub)
        finally:
            # Only this subscriber's connection is torn down
            if channels:
                await pubsub.unsubscribe(*channels)
            if patterns:
                await pubsub.punsubscribe(*patterns)
            await pubsub.aclose()

    def subscribe_output(self, server_id: str):
        """Subscribe to one server's output. Use as an async context manager."""
        return self._subscription([output_topic(server_id)], [])

    def subscribe_inputs(self):
        """Subscribe to input for every server on this broker."""
        return self._subscription([], [INPUT_PATTERN])
