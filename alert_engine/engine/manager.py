"""
Alert engine for deduplication and lifecycle management.

This module provides the AlertEngine class, the state machine that squashes
repeated notices into live alerts and dismisses them on request.

Key Features:
    - Deduplicates notices by (source, host name) into one active alert
    - First-occurrence policy: only a brand-new alert triggers a digest
    - Explicit, one-way dismissal (active -> dismissed)
    - One critical section shared by ingest and dismiss

Concurrency:
    Every ingest and dismiss runs its read-check-write cycle under a single
    asyncio.Lock, regardless of dedup key. Cross-key parallelism is traded
    away for a lookup-then-write that cannot race. A slow store call
    therefore holds up all alert traffic behind it.

    The lock is FIFO, so when a dismissal and a duplicate notice for the
    same alert race, they commit in the order they reached the lock. A
    notice that gets there first is squashed into the alert that is then
    dismissed; a notice that gets there second opens a fresh alert.

Error handling:
    A StoreError aborts the current operation. It is logged and the
    operation returns None; nothing is retried because alerting is itself a
    best-effort notification path.

Example:
    >>> engine = AlertEngine(store=store, publisher=publisher)
    >>> alert = await engine.ingest(Notice(source="worker", hostName="node-1"))
    >>> alert.count
    1
    >>> await engine.dismiss(alert.id, "bob")
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from alert_engine.engine import predicates
from alert_engine.engine.publisher import DigestPublisher
from alert_engine.interfaces.alert_store import AlertStore, StoreError
from alert_engine.models.alerts import Alert, Digest
from alert_engine.models.commands import Command, Dismiss, RaiseNotice, Rejected
from alert_engine.models.notices import Notice

logger = structlog.get_logger(__name__)


class AlertEngine:
    """
    Deduplicating alert state machine.

    Responsibilities:
    - Look up the active alert for a notice's dedup key
    - Squash repeats (count + 1, details replaced) or promote new alerts
    - Announce new alerts with a single-alert digest
    - Dismiss alerts by id

    Attributes:
        store: AlertStore the alerts are read from and written to.
        publisher: DigestPublisher used for first-occurrence digests.
    """

    def __init__(
        self,
        store: AlertStore,
        publisher: DigestPublisher,
    ) -> None:
        """
        Initialize the AlertEngine.

        Args:
            store: AlertStore for persistence.
            publisher: DigestPublisher for first-occurrence announcements.
        """
        self.store = store
        self.publisher = publisher
        self._lock = asyncio.Lock()

        logger.info("alert_engine_initialized")

    async def handle(self, command: Command) -> Optional[Alert]:
        """
        Execute a typed command from the ingestor.

        Args:
            command: RaiseNotice, Dismiss or Rejected.

        Returns:
            Optional[Alert]: The written alert, or None if nothing was written.
        """
        if isinstance(command, RaiseNotice):
            return await self.ingest(command.notice)
        if isinstance(command, Dismiss):
            return await self.dismiss(command.alert_id, command.dismissed_by)
        if isinstance(command, Rejected):
            logger.debug(
                "command_rejected",
                reason=command.reason,
                channel=command.channel,
            )
        return None

    async def ingest(self, notice: Notice) -> Optional[Alert]:
        """
        Squash a notice into its active alert or promote it to a new one.

        Args:
            notice: The normalized notice.

        Returns:
            Optional[Alert]: The written alert, or None if the store failed.
        """
        async with self._lock:
            try:
                existing = await self._find_one(
                    predicates.active_by_dedup_key(notice.source, notice.host_name)
                )

                if existing is not None:
                    alert = existing.merge(notice)
                    await self.store.upsert(alert)
                    logger.info(
                        "alert_squashed",
                        alert_id=alert.id,
                        source=alert.source,
                        host_name=alert.host_name,
                        count=alert.count,
                    )
                    return alert

                alert = Alert.from_notice(notice)
                await self.store.upsert(alert)

            except StoreError as e:
                logger.error(
                    "alert_ingest_failed",
                    notice_id=notice.id,
                    source=notice.source,
                    host_name=notice.host_name,
                    error=str(e),
                )
                return None

        logger.info(
            "alert_created",
            alert_id=alert.id,
            source=alert.source,
            host_name=alert.host_name,
            priority=int(alert.priority),
            title=alert.title,
        )

        # First occurrence: announce right away
        await self.publisher.publish(Digest.of([alert]))

        return alert

    async def dismiss(
        self,
        alert_id: str,
        dismissed_by: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """
        Dismiss an alert.

        Requests without a dismisser are ignored without touching the store.
        Unknown ids and alerts that are already dismissed are ignored too.

        Args:
            alert_id: Id of the alert to dismiss.
            dismissed_by: Who is dismissing it.
            timestamp: Dismissal time (defaults to now).

        Returns:
            Optional[Alert]: The dismissed alert, or None if nothing was written.
        """
        if not dismissed_by:
            logger.debug(
                "dismiss_missing_dismissed_by",
                alert_id=alert_id,
            )
            return None

        async with self._lock:
            try:
                alert = await self._find_one(predicates.by_id(alert_id))
                if alert is None:
                    logger.debug("dismiss_alert_not_found", alert_id=alert_id)
                    return None

                if not alert.is_active:
                    logger.debug(
                        "dismiss_alert_already_dismissed",
                        alert_id=alert_id,
                        dismissed_by=alert.dismissed_by,
                    )
                    return None

                dismissed = alert.dismiss(
                    dismissed_by,
                    timestamp or datetime.now(timezone.utc),
                )
                await self.store.upsert(dismissed)

            except StoreError as e:
                logger.error(
                    "alert_dismiss_failed",
                    alert_id=alert_id,
                    error=str(e),
                )
                return None

        logger.info(
            "alert_dismissed",
            alert_id=alert_id,
            dismissed_by=dismissed_by,
            count=dismissed.count,
        )
        return dismissed

    async def get_active_alerts(self) -> List[Alert]:
        """
        Return every active alert.

        Raises:
            StoreError: If the query fails.
        """
        return await self.store.query(predicates.all_active())

    async def _find_one(self, predicate: str) -> Optional[Alert]:
        """Return the first alert matching a predicate, or None."""
        alerts = await self.store.query(predicate)
        if alerts:
            return alerts[0]
        return None
