"""
Periodic aggregator for active-alert digests.

This module provides the PeriodicAggregator, a timer-driven component that
periodically queries every active alert and publishes them as one digest.

Key Features:
    - Fixed-rate timer; the first tick fires one full interval after start
    - No empty digests: a tick with zero active alerts publishes nothing
    - Interval can be changed at runtime without restarting the process
    - At most one armed timer at any instant

Timer handling:
    The timer is a single asyncio task. ``set_interval`` cancels it and arms
    a replacement while holding the lock that guards both the handle and the
    interval value, so two timers never coexist. Each tick runs as its own
    task: cancelling the timer never aborts a tick that is already querying
    or publishing, it only prevents future ticks. ``close`` waits for
    in-flight ticks and nothing fires afterwards.

    At most one tick runs at a time. A slot that comes due while the
    previous tick is still querying or publishing is skipped. Slots missed
    while the event loop was stalled are dropped and the schedule resumes
    at the next future slot.

    The aggregator does not share the alert engine's critical section. A
    tick reads whatever state is committed when it runs.

Example:
    >>> aggregator = await create_periodic_aggregator(store, publisher, 60)
    >>> await aggregator.set_interval(15)
    >>> await aggregator.close()
"""

import asyncio
from typing import Optional, Set

import structlog

from alert_engine.engine import predicates
from alert_engine.engine.publisher import DigestPublisher
from alert_engine.interfaces.alert_store import AlertStore, StoreError
from alert_engine.models.alerts import Digest

logger = structlog.get_logger(__name__)


# 24 hours
DEFAULT_INTERVAL_MINUTES = 24 * 60


def validate_interval(interval_minutes: int) -> int:
    """
    Check that an aggregation interval is a positive whole number of minutes.

    Raises:
        ValueError: If the interval is not a positive integer.
    """
    if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
        raise ValueError(f"Aggregation interval must be an integer, got {interval_minutes!r}")
    if interval_minutes <= 0:
        raise ValueError(f"Aggregation interval must be positive, got {interval_minutes}")
    return interval_minutes


class PeriodicAggregator:
    """
    Publishes a digest of all active alerts on a fixed schedule.

    Attributes:
        store: AlertStore queried on each tick.
        publisher: DigestPublisher the digests are handed to.
    """

    SECONDS_PER_MINUTE: float = 60.0

    def __init__(
        self,
        store: AlertStore,
        publisher: DigestPublisher,
        interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
    ) -> None:
        """
        Initialize the aggregator. The timer is not armed until ``start``.

        Args:
            store: AlertStore for the active-alert query.
            publisher: DigestPublisher for the digests.
            interval_minutes: Initial delay and period, in minutes.

        Raises:
            ValueError: If the interval is not a positive integer.
        """
        self.store = store
        self.publisher = publisher
        self._interval_minutes = validate_interval(interval_minutes)
        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def interval_minutes(self) -> int:
        """Current interval in minutes."""
        return self._interval_minutes

    @property
    def is_running(self) -> bool:
        """Check if a timer is armed."""
        return self._timer is not None and not self._timer.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """
        Arm the timer. Calling start on a running aggregator is a no-op.

        Raises:
            RuntimeError: If the aggregator has been closed.
        """
        async with self._lock:
            if self._closed:
                raise RuntimeError("PeriodicAggregator is closed")
            if self._timer is not None:
                return
            self._arm()

        logger.info(
            "periodic_aggregator_started",
            interval_minutes=self._interval_minutes,
        )

    async def set_interval(self, interval_minutes: int) -> None:
        """
        Change the interval and reschedule.

        The outstanding timer is cancelled and a new one is armed with the
        new interval as both initial delay and period. A tick already in
        flight is allowed to complete.

        Args:
            interval_minutes: New interval in minutes.

        Raises:
            ValueError: If the interval is not a positive integer.
            RuntimeError: If the aggregator has been closed.
        """
        interval_minutes = validate_interval(interval_minutes)

        async with self._lock:
            if self._closed:
                raise RuntimeError("PeriodicAggregator is closed")
            previous = self._interval_minutes
            self._interval_minutes = interval_minutes
            self._disarm()
            self._arm()

        logger.info(
            "aggregation_interval_changed",
            previous_minutes=previous,
            interval_minutes=interval_minutes,
        )

    async def fire(self) -> Optional[Digest]:
        """
        Run one tick now.

        Returns:
            Optional[Digest]: The published digest, or None if there were no
                active alerts or the store query failed.
        """
        try:
            alerts = await self.store.query(predicates.all_active())
        except StoreError as e:
            logger.error(
                "periodic_digest_query_failed",
                error=str(e),
            )
            return None

        if not alerts:
            logger.debug("periodic_digest_skipped_no_active_alerts")
            return None

        digest = Digest.of(alerts)
        await self.publisher.publish(digest)

        logger.info(
            "periodic_digest_emitted",
            alert_count=len(digest.alerts),
        )
        return digest

    async def close(self) -> None:
        """
        Cancel the timer and wait for in-flight ticks. Idempotent.
        """
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            timer = self._timer
            self._disarm()

        if timer is not None:
            await asyncio.gather(timer, return_exceptions=True)
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

        logger.info("periodic_aggregator_closed")

    async def __aenter__(self) -> "PeriodicAggregator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _arm(self) -> None:
        """Create the timer task. Caller holds the lock."""
        period = self._interval_minutes * self.SECONDS_PER_MINUTE
        self._timer = asyncio.create_task(
            self._run_timer(period),
            name="periodic-aggregator-timer",
        )

    def _disarm(self) -> None:
        """Cancel the timer task. Caller holds the lock."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _run_timer(self, period: float) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + period
        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            if self._ticks:
                logger.debug(
                    "periodic_tick_skipped_in_flight",
                    in_flight=len(self._ticks),
                )
            else:
                self._spawn_tick()

            # Missed slots after a stall are dropped, not replayed
            next_fire += period
            now = loop.time()
            if next_fire <= now:
                next_fire += ((now - next_fire) // period + 1) * period

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self.fire(), name="periodic-aggregator-tick")
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)


async def create_periodic_aggregator(
    store: AlertStore,
    publisher: DigestPublisher,
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
) -> PeriodicAggregator:
    """
    Factory function to create and start a PeriodicAggregator.

    Args:
        store: AlertStore for the active-alert query.
        publisher: DigestPublisher for the digests.
        interval_minutes: Initial delay and period, in minutes.

    Returns:
        PeriodicAggregator: A started aggregator.
    """
    aggregator = PeriodicAggregator(
        store=store,
        publisher=publisher,
        interval_minutes=interval_minutes,
    )
    await aggregator.start()
    return aggregator
