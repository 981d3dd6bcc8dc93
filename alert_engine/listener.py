"""
Alert listener service.

This service is responsible for:
- Subscribing to the notice, dismiss and control channels
- Normalizing each message into a typed command
- Deduplicating notices into alerts and dismissing alerts on request
- Publishing first-occurrence and periodic digests
- Applying runtime control messages (aggregation interval, manual digest)

Usage:
    alert-listener
    python -m alert_engine.listener

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    DATABASE_URL: PostgreSQL connection URL
    LOG_LEVEL: Logging level (default: INFO)
    CONFIG_PATH: Path to config directory (default: config)
    ALERT_AGGREGATION_INTERVAL_MINUTES: Digest interval in minutes
    ALERT_STORE_BACKEND: memory or postgres
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Dict, Optional

import structlog

from alert_engine import __version__
from alert_engine.engine import (
    AlertEngine,
    DigestPublisher,
    EventIngestor,
    LogDigestChannel,
    PeriodicAggregator,
)
from alert_engine.models.alerts import Alert
from alert_engine.services import ServiceRunner, setup_logging
from alert_engine.storage.redis_bus import RedisDigestChannel

logger = structlog.get_logger(__name__)


# Control message keys
CONTROL_INTERVAL = "aggregation_interval_minutes"
CONTROL_COMMAND = "command"
COMMAND_FIRE_DIGEST = "fire_digest"


class AlertListenerService(ServiceRunner):
    """
    Listener wiring the bus to the alert engine and the aggregator.

    Attributes:
        ingestor: Payload normalizer.
        publisher: Digest publisher (log and bus channels).
        engine: Dedup and lifecycle state machine.
        aggregator: Periodic digest timer.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.ingestor: Optional[EventIngestor] = None
        self.publisher: Optional[DigestPublisher] = None
        self.engine: Optional[AlertEngine] = None
        self.aggregator: Optional[PeriodicAggregator] = None

    @property
    def service_name(self) -> str:
        return "alert-listener"

    async def _initialize(self) -> None:
        """Build the engine components on top of the connected bus and store."""
        if self.config is None or self.bus is None or self.store is None:
            raise RuntimeError("Service not properly initialized")

        self.ingestor = EventIngestor(dismiss_channel=self.config.channels.dismiss)
        self.publisher = DigestPublisher(
            channels={
                "log": LogDigestChannel(),
                "bus": RedisDigestChannel(self.bus),
            }
        )
        self.engine = AlertEngine(store=self.store, publisher=self.publisher)
        self.aggregator = PeriodicAggregator(
            store=self.store,
            publisher=self.publisher,
            interval_minutes=self.config.aggregation.interval_minutes,
        )

        if self.config.aggregation.enabled:
            await self.aggregator.start()

        self.logger.info(
            "alert_components_initialized",
            aggregation_enabled=self.config.aggregation.enabled,
            interval_minutes=self.config.aggregation.interval_minutes,
            digest_channels=self.publisher.get_available_channels(),
        )

    async def _run(self) -> None:
        """Consume bus messages until shutdown is requested."""
        consumer = asyncio.create_task(self._consume(), name="alert-listener-consumer")
        stopper = asyncio.create_task(self.shutdown_event.wait(), name="alert-listener-stop")

        done, pending = await asyncio.wait(
            {consumer, stopper},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if consumer in done:
            # Subscription ended or failed on its own
            consumer.result()

    async def _consume(self) -> None:
        if self.config is None or self.bus is None:
            raise RuntimeError("Service not properly initialized")

        channels = self.config.channels
        async with self.bus.subscribe(
            [channels.dismiss, channels.control],
            [channels.notice_pattern],
        ) as messages:
            async for message in messages:
                try:
                    await self.handle_message(message)
                except Exception as e:
                    self.logger.error(
                        "message_handling_error",
                        channel=message.get("channel"),
                        error=str(e),
                    )

    async def handle_message(self, message: Dict[str, Any]) -> Optional[Alert]:
        """
        Route one bus message.

        Args:
            message: ``{"channel": ..., "data": ...}`` from the bus.

        Returns:
            Optional[Alert]: The alert written by the engine, if any.
        """
        if self.config is None or self.ingestor is None or self.engine is None:
            raise RuntimeError("Service not properly initialized")

        channel = message.get("channel")
        data = message.get("data")

        if channel == self.config.channels.control:
            await self.handle_control(data)
            return None

        command = self.ingestor.normalize(channel, data)
        return await self.engine.handle(command)

    async def handle_control(self, data: Any) -> None:
        """
        Apply a control message.

        Supported messages:
            ``{"aggregation_interval_minutes": N}`` reschedules the aggregator.
            ``{"command": "fire_digest"}`` publishes a digest right away.

        Invalid control messages are logged and ignored.
        """
        if self.aggregator is None:
            raise RuntimeError("Service not properly initialized")

        if not isinstance(data, dict):
            self.logger.debug("control_message_ignored", reason="not_a_mapping")
            return

        handled = False

        if CONTROL_INTERVAL in data:
            handled = True
            try:
                await self.set_aggregation_interval(data[CONTROL_INTERVAL])
            except ValueError as e:
                self.logger.warning(
                    "control_interval_rejected",
                    value=data[CONTROL_INTERVAL],
                    error=str(e),
                )

        if data.get(CONTROL_COMMAND) == COMMAND_FIRE_DIGEST:
            handled = True
            await self.aggregator.fire()

        if not handled:
            self.logger.debug("control_message_ignored", reason="unknown_command")

    async def set_aggregation_interval(self, interval_minutes: int) -> None:
        """
        Change the digest interval at runtime.

        Arms the aggregator timer even if aggregation was disabled at startup.

        Raises:
            ValueError: If the interval is not a positive integer.
        """
        if self.aggregator is None:
            raise RuntimeError("Service not properly initialized")
        await self.aggregator.set_interval(interval_minutes)

    async def _cleanup(self) -> None:
        """Stop the aggregator before the store and bus go away."""
        if self.aggregator is not None:
            await self.aggregator.close()


async def main() -> None:
    """Main entry point."""
    # Initial logging until the config is loaded
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    config_path = os.getenv("CONFIG_PATH", "config")

    logger.info(
        "alert_listener_service_starting",
        version=__version__,
        config_path=config_path,
    )

    service = AlertListenerService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e))
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
