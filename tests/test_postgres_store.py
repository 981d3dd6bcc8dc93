"""Tests for the PostgreSQL store's predicate translation and row mapping."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from alert_engine.config.models import PostgresConnectionConfig
from alert_engine.engine import predicates
from alert_engine.interfaces import PredicateError, StoreConnectionError
from alert_engine.models import Alert, AlertStatus
from alert_engine.storage.postgres_store import (
    PostgresAlertStore,
    _record_to_alert,
    _sanitize_url,
    build_where,
)


def test_dedup_predicate_becomes_parameterized_sql() -> None:
    sql, args = build_where(predicates.active_by_dedup_key("S1", "H'1"))

    assert sql == "source = $1 AND status = $2 AND host_name = $3"
    assert args == ["S1", "active", "H'1"]


def test_priority_is_cast_to_integer() -> None:
    assert build_where("priority = '3'") == ("priority = $1", [3])

    with pytest.raises(PredicateError):
        build_where("priority = 'high'")


def test_unsupported_predicate_is_rejected() -> None:
    with pytest.raises(PredicateError):
        build_where("source = 'a'; DROP TABLE system_alerts")


def test_record_to_alert() -> None:
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = {
        "id": "a1",
        "source": "S1",
        "host_name": "H1",
        "host_address": "10.0.0.1",
        "priority": 3,
        "title": "disk",
        "details": ["d2", "d1"],
        "notice_time": when,
        "status": "dismissed",
        "count": 4,
        "last_updated": when,
        "dismissed_time": when,
        "dismissed_by": "bob",
    }

    alert = _record_to_alert(record)  # type: ignore[arg-type]

    assert isinstance(alert, Alert)
    assert alert.host_name == "H1"
    assert alert.details == frozenset({"d1", "d2"})
    assert alert.status is AlertStatus.DISMISSED
    assert alert.count == 4
    assert alert.dismissed_by == "bob"


def test_sanitize_url_hides_password() -> None:
    assert _sanitize_url("postgresql://user:secret@db:5432/alerts") == "postgresql://user:***@db:5432/alerts"
    assert _sanitize_url("postgresql://db:5432/alerts") == "postgresql://db:5432/alerts"


async def test_operations_require_connection() -> None:
    store = PostgresAlertStore(PostgresConnectionConfig())

    assert not store.is_connected
    with pytest.raises(StoreConnectionError):
        await store.query(predicates.all_active())
    with pytest.raises(StoreConnectionError):
        await store.upsert(Alert(source="S1"))

    # Disconnect without a pool is a no-op
    await store.disconnect()
