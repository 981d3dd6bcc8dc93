"""
In-memory alert store.

Reference implementation of the AlertStore contract, used for local
development and tests. Alerts are kept in a dict keyed by id; since alerts
are immutable, the store hands out the same snapshots it holds without any
risk of callers mutating stored state.

Example:
    >>> store = InMemoryAlertStore()
    >>> await store.upsert(alert)
    >>> await store.query("status = 'active'")
    [Alert(...)]
"""

import asyncio
from typing import Dict, List

import structlog

from alert_engine.engine.predicates import matches, parse_predicate
from alert_engine.interfaces.alert_store import AlertStore, sort_alerts
from alert_engine.models.alerts import Alert

logger = structlog.get_logger(__name__)


class InMemoryAlertStore(AlertStore):
    """
    Dict-backed AlertStore.

    Attributes:
        latency: Seconds each query and upsert sleeps before running.
            Zero by default; tests raise it to model a slow backend.
        query_count: Number of queries served.
        upsert_count: Number of writes served.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.query_count = 0
        self.upsert_count = 0
        self._alerts: Dict[str, Alert] = {}

    async def query(self, predicate: str) -> List[Alert]:
        clauses = parse_predicate(predicate)
        if self.latency:
            await asyncio.sleep(self.latency)
        self.query_count += 1

        results = sort_alerts(a for a in self._alerts.values() if matches(a, clauses))

        logger.debug(
            "memory_store_query",
            predicate=predicate,
            count=len(results),
        )
        return results

    async def upsert(self, alert: Alert) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        self.upsert_count += 1
        self._alerts[alert.id] = alert

        logger.debug(
            "memory_store_upsert",
            alert_id=alert.id,
            status=alert.status.value,
            count=alert.count,
        )

    def all(self) -> List[Alert]:
        """Return every stored alert, in store order."""
        return sort_alerts(self._alerts.values())

    def __len__(self) -> int:
        return len(self._alerts)
