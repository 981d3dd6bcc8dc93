"""
Abstract base class for alert stores.

This module defines the AlertStore interface the alert engine and the
periodic aggregator consume. The store is an external, queryable
persistence collaborator: the engine builds a predicate string from fixed
templates (see ``alert_engine.engine.predicates``) and the store returns the
matching alerts.

Contract:
    - ``query`` returns alerts most-recently-updated first, ties broken by
      alert id (ascending).
    - ``upsert`` is an idempotent write keyed by the alert's id.
    - Every failure surfaces as a StoreError. Stores never retry on their
      own; the engine abandons the operation instead.

Example:
    >>> class MyStore(AlertStore):
    ...     async def query(self, predicate: str) -> List[Alert]:
    ...         ...
    ...     async def upsert(self, alert: Alert) -> None:
    ...         ...
"""

from abc import ABC, abstractmethod
from typing import Iterable, List

from alert_engine.models.alerts import Alert


class StoreError(Exception):
    """Base exception for alert store failures."""

    pass


class StoreConnectionError(StoreError):
    """Raised when the store is unreachable or not connected."""

    pass


class StoreOperationError(StoreError):
    """Raised when a query or write fails."""

    pass


class PredicateError(StoreError):
    """Raised when a predicate string cannot be understood by the store."""

    pass


def sort_alerts(alerts: Iterable[Alert]) -> List[Alert]:
    """
    Order alerts the way every store must return them.

    Args:
        alerts: Alerts in any order.

    Returns:
        List[Alert]: Most recently updated first, ties broken by id.
    """
    by_id = sorted(alerts, key=lambda a: a.id)
    return sorted(by_id, key=lambda a: a.last_updated, reverse=True)


class AlertStore(ABC):
    """
    Abstract queryable persistence for alerts.

    Implementations must be safe to call from the event loop; the engine
    serializes its own read-modify-write cycles, but the periodic
    aggregator queries concurrently with them.
    """

    async def connect(self) -> None:
        """Open connections. No-op by default."""

    async def disconnect(self) -> None:
        """Release connections. No-op by default."""

    @abstractmethod
    async def query(self, predicate: str) -> List[Alert]:
        """
        Return the alerts matching a conjunctive equality predicate.

        Args:
            predicate: Clauses such as ``source = 'x' AND status = 'active'``.

        Returns:
            List[Alert]: Matching alerts, most recently updated first.

        Raises:
            StoreError: If the query fails or the predicate is unsupported.
        """
        pass

    @abstractmethod
    async def upsert(self, alert: Alert) -> None:
        """
        Insert or replace an alert keyed by its id.

        Args:
            alert: The alert to write.

        Raises:
            StoreError: If the write fails.
        """
        pass
