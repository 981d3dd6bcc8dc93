"""
Alert deduplication and lifecycle engine.

This module contains inbound normalization, the dedup/lifecycle state
machine, the periodic digest timer and digest publication.

Components:
    predicates: Fixed store predicate templates and their parser
    ingestor: EventIngestor turning raw payloads into typed commands
    manager: AlertEngine, the serialized dedup/lifecycle state machine
    aggregator: PeriodicAggregator for scheduled active-alert digests
    publisher: DigestPublisher and digest channels

Example:
    >>> from alert_engine.engine import (
    ...     AlertEngine,
    ...     DigestPublisher,
    ...     EventIngestor,
    ...     create_periodic_aggregator,
    ... )
    >>>
    >>> publisher = DigestPublisher()
    >>> engine = AlertEngine(store=store, publisher=publisher)
    >>> aggregator = await create_periodic_aggregator(store, publisher)
    >>> command = EventIngestor().normalize("alerts:notice", {"source": "worker"})
    >>> await engine.handle(command)
"""

from alert_engine.engine.ingestor import (
    DEFAULT_DISMISS_CHANNEL,
    DEFAULT_NOTICE_CHANNEL,
    EventIngestor,
)
from alert_engine.engine.publisher import (
    DigestChannel,
    DigestPublisher,
    LogDigestChannel,
)
from alert_engine.engine.manager import AlertEngine
from alert_engine.engine.aggregator import (
    DEFAULT_INTERVAL_MINUTES,
    PeriodicAggregator,
    create_periodic_aggregator,
    validate_interval,
)

__all__ = [
    # Ingestor
    "EventIngestor",
    "DEFAULT_NOTICE_CHANNEL",
    "DEFAULT_DISMISS_CHANNEL",
    # Publisher
    "DigestChannel",
    "DigestPublisher",
    "LogDigestChannel",
    # Engine
    "AlertEngine",
    # Aggregator
    "PeriodicAggregator",
    "create_periodic_aggregator",
    "validate_interval",
    "DEFAULT_INTERVAL_MINUTES",
]
