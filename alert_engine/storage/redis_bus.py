"""
Async Redis pub/sub bus.

This module provides the event bus the alert listener runs on. Inbound
notices, dismiss requests and control messages arrive on Redis pub/sub
channels; digests leave on the digest channel. Payloads are JSON objects.

Channels (defaults, configurable):
    - ``alerts:notice`` and ``alerts:notice:*``: inbound notices
    - ``alerts:dismiss``: inbound dismiss requests
    - ``alerts:control``: runtime reconfiguration
    - ``alerts:digest``: outbound digests

Note:
    Delivery guarantees are whatever Redis pub/sub provides (at most once).
    Publishing never retries.

Example:
    >>> bus = RedisBus(RedisConnectionConfig(url="redis://localhost:6379"))
    >>> await bus.connect()
    >>> async with bus.subscribe(["alerts:dismiss"], ["alerts:notice*"]) as messages:
    ...     async for message in messages:
    ...         print(message["channel"], message["data"])
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Sequence

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import PubSub
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from alert_engine.config.models import ChannelsConfig, RedisConnectionConfig
from alert_engine.models.alerts import Digest

logger = structlog.get_logger(__name__)


class BusError(Exception):
    """Base exception for bus errors."""

    pass


class BusConnectionError(BusError):
    """Raised when the Redis connection fails."""

    pass


class BusOperationError(BusError):
    """Raised when a publish or subscribe fails."""

    pass


class RedisBus:
    """
    Redis pub/sub transport for notices, dismissals, control and digests.

    Attributes:
        config: Redis connection configuration.
        channels: Channel names.
    """

    def __init__(
        self,
        config: RedisConnectionConfig,
        channels: Optional[ChannelsConfig] = None,
    ) -> None:
        self.config = config
        self.channels = channels or ChannelsConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None  # type: ignore[type-arg]
        self._connected: bool = False

        logger.info(
            "redis_bus_initialized",
            url=config.url,
            db=config.db,
            max_connections=config.max_connections,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Raises:
            BusConnectionError: If connection fails.
        """
        if self._connected:
            logger.warning("redis_already_connected")
            return

        try:
            self._pool = ConnectionPool.from_url(
                self.config.url,
                db=self.config.db,
                max_connections=self.config.max_connections,
                socket_connect_timeout=self.config.socket_timeout,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)

            await self._client.ping()
            self._connected = True

            logger.info(
                "redis_connected",
                url=self.config.url,
                db=self.config.db,
            )

        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            self._connected = False
            logger.error(
                "redis_connection_failed",
                url=self.config.url,
                error=str(e),
            )
            raise BusConnectionError(
                f"Failed to connect to Redis at {self.config.url}: {e}"
            ) from e

    async def disconnect(self) -> None:
        """Close the connection and pool. Safe to call multiple times."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("redis_close_error", error=str(e))
            finally:
                self._client = None

        if self._pool is not None:
            try:
                await self._pool.aclose()
            except Exception as e:
                logger.warning("redis_pool_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("redis_disconnected")

    def _require_connection(self) -> Redis:  # type: ignore[type-arg]
        if not self._connected or self._client is None:
            raise BusConnectionError("Redis bus is not connected")
        return self._client

    async def publish(self, channel: str, payload: Mapping[str, Any]) -> int:
        """
        Publish a JSON payload.

        Args:
            channel: Channel name.
            payload: JSON-serializable mapping.

        Returns:
            int: Number of subscribers that received the message.

        Raises:
            BusConnectionError: If not connected.
            BusOperationError: If the publish fails.
        """
        client = self._require_connection()

        try:
            count = await client.publish(channel, json.dumps(payload))
            logger.debug(
                "bus_message_published",
                channel=channel,
                subscribers=count,
            )
            return int(count)

        except RedisError as e:
            logger.error(
                "bus_publish_failed",
                channel=channel,
                error=str(e),
            )
            raise BusOperationError(f"Failed to publish on {channel}: {e}") from e

    async def publish_digest(self, digest: Digest) -> int:
        """Publish a digest on the digest channel."""
        return await self.publish(self.channels.digest, digest.to_payload())

    @asynccontextmanager
    async def subscribe(
        self,
        channels: Sequence[str],
        patterns: Sequence[str] = (),
    ) -> AsyncIterator[AsyncIterator[Dict[str, Any]]]:
        """
        Subscribe to channels and channel patterns.

        Yields an async iterator of ``{"channel": ..., "data": ...}`` dicts.
        Messages that are not valid JSON are logged and skipped.

        Args:
            channels: Exact channel names.
            patterns: Glob-style channel patterns.

        Raises:
            BusConnectionError: If not connected.
            BusOperationError: If subscription fails.
        """
        client = self._require_connection()
        pubsub: PubSub = client.pubsub()

        try:
            try:
                if channels:
                    await pubsub.subscribe(*channels)
                if patterns:
                    await pubsub.psubscribe(*patterns)
            except RedisError as e:
                raise BusOperationError(f"Failed to subscribe: {e}") from e

            logger.info(
                "pubsub_subscribed",
                channels=list(channels),
                patterns=list(patterns),
            )

            async def message_iterator() -> AsyncIterator[Dict[str, Any]]:
                async for message in pubsub.listen():
                    if message["type"] not in ("message", "pmessage"):
                        continue
                    try:
                        data = json.loads(message["data"])
                    except (TypeError, json.JSONDecodeError) as e:
                        logger.warning(
                            "pubsub_message_parse_failed",
                            channel=message["channel"],
                            error=str(e),
                        )
                        continue
                    yield {
                        "channel": message["channel"],
                        "data": data,
                    }

            yield message_iterator()

        finally:
            if channels:
                await pubsub.unsubscribe(*channels)
            if patterns:
                await pubsub.punsubscribe(*patterns)
            await pubsub.aclose()

            logger.info(
                "pubsub_unsubscribed",
                channels=list(channels),
                patterns=list(patterns),
            )


class RedisDigestChannel:
    """
    Digest channel that publishes digests on the Redis bus.

    Example:
        >>> publisher = DigestPublisher(channels={"bus": RedisDigestChannel(bus)})
    """

    def __init__(self, bus: RedisBus) -> None:
        self.bus = bus

    async def publish(self, digest: Digest) -> None:
        await self.bus.publish_digest(digest)
