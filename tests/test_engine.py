"""Tests for the dedup and lifecycle engine."""

from __future__ import annotations

import asyncio

from alert_engine.engine.manager import AlertEngine
from alert_engine.engine.publisher import DigestPublisher
from alert_engine.models import AlertStatus, Dismiss, RaiseNotice, Rejected
from alert_engine.storage.memory_store import InMemoryAlertStore

from conftest import FailingStore, OverlapTrackingStore, RecordingChannel, make_notice


def _engine(store) -> tuple[AlertEngine, RecordingChannel]:
    channel = RecordingChannel()
    return AlertEngine(store=store, publisher=DigestPublisher({"recording": channel})), channel


async def test_first_notice_creates_alert_and_digest(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    notice = make_notice(details=["d1"])

    alert = await engine.ingest(notice)

    assert alert is not None
    assert alert.id != notice.id
    assert alert.count == 1
    assert alert.status is AlertStatus.ACTIVE
    assert store.all() == [alert]
    assert len(channel.digests) == 1
    assert channel.digests[0].alerts == (alert,)


async def test_repeated_notices_are_squashed(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    for i in range(5):
        await engine.ingest(make_notice(details=[f"d{i}"]))

    alerts = store.all()
    assert len(alerts) == 1
    assert alerts[0].count == 5
    assert alerts[0].details == frozenset({"d4"})
    # Only the first occurrence is announced
    assert len(channel.digests) == 1


async def test_different_hosts_are_separate_alerts(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    await engine.ingest(make_notice(host="H1"))
    await engine.ingest(make_notice(host="H2"))
    await engine.ingest(make_notice(source="S2", host="H1"))

    assert len(store) == 3
    assert {a.count for a in store.all()} == {1}
    assert len(channel.digests) == 3


async def test_dismiss_unknown_id_writes_nothing(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    assert await engine.dismiss("no-such-alert", "bob") is None

    assert store.upsert_count == 0
    assert channel.digests == []


async def test_dismiss_without_dismisser_is_ignored(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    alert = await engine.ingest(make_notice())
    assert alert is not None
    queries, upserts = store.query_count, store.upsert_count

    assert await engine.dismiss(alert.id, "") is None
    assert await engine.dismiss(alert.id, None) is None

    assert store.query_count == queries
    assert store.upsert_count == upserts
    assert store.all()[0].is_active
    assert len(channel.digests) == 1


async def test_dismiss_is_one_way(engine: AlertEngine, store: InMemoryAlertStore) -> None:
    alert = await engine.ingest(make_notice())
    assert alert is not None

    dismissed = await engine.dismiss(alert.id, "bob")
    assert dismissed is not None
    assert dismissed.status is AlertStatus.DISMISSED
    assert dismissed.dismissed_by == "bob"
    assert dismissed.dismissed_time is not None
    upserts = store.upsert_count

    # Already dismissed: no-op, original dismisser kept
    assert await engine.dismiss(alert.id, "carol") is None
    assert store.upsert_count == upserts
    assert store.all()[0].dismissed_by == "bob"


async def test_notice_after_dismissal_opens_new_alert(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    first = await engine.ingest(make_notice())
    assert first is not None
    await engine.dismiss(first.id, "bob")

    second = await engine.ingest(make_notice())

    assert second is not None
    assert second.id != first.id
    assert second.count == 1
    assert second.is_active
    assert len(store) == 2
    assert len(channel.digests) == 2
    assert channel.digests[1].alerts == (second,)


async def test_resent_notice_after_dismissal_keeps_history(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    notice = make_notice(id="n-1")
    first = await engine.ingest(notice)
    assert first is not None
    await engine.dismiss(first.id, "bob")

    second = await engine.ingest(notice)

    assert second is not None
    assert second.id != first.id
    assert len(store) == 2
    history = {alert.id: alert for alert in store.all()}
    assert history[first.id].status is AlertStatus.DISMISSED
    assert history[first.id].dismissed_by == "bob"
    assert history[second.id].is_active
    assert len(channel.digests) == 2


async def test_reused_notice_id_does_not_overwrite_other_keys(
    engine: AlertEngine,
    store: InMemoryAlertStore,
) -> None:
    a = await engine.ingest(make_notice(source="A", id="fixed"))
    b = await engine.ingest(make_notice(source="B", id="fixed"))

    assert a is not None and b is not None
    assert a.id != b.id
    assert len(store) == 2
    assert {alert.source for alert in await engine.get_active_alerts()} == {"A", "B"}


async def test_end_to_end_lifecycle(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    a = await engine.ingest(make_notice("S1", "H1", details=["d1"]))
    assert a is not None
    assert a.count == 1
    assert a.details == frozenset({"d1"})
    assert len(channel.digests) == 1

    squashed = await engine.ingest(make_notice("S1", "H1", details=["d2"]))
    assert squashed is not None
    assert squashed.id == a.id
    assert squashed.count == 2
    assert squashed.details == frozenset({"d2"})
    assert len(channel.digests) == 1

    dismissed = await engine.dismiss(a.id, "bob")
    assert dismissed is not None
    assert dismissed.status is AlertStatus.DISMISSED
    assert dismissed.count == 2

    b = await engine.ingest(make_notice("S1", "H1"))
    assert b is not None
    assert b.id != a.id
    assert b.count == 1
    assert len(channel.digests) == 2
    assert channel.digests[1].alerts[0].id == b.id

    history = {alert.id: alert for alert in store.all()}
    assert history[a.id].status is AlertStatus.DISMISSED
    assert history[b.id].status is AlertStatus.ACTIVE


async def test_handle_dispatches_commands(
    engine: AlertEngine,
    store: InMemoryAlertStore,
    channel: RecordingChannel,
) -> None:
    assert await engine.handle(Rejected(reason="missing_source")) is None
    assert store.query_count == 0

    alert = await engine.handle(RaiseNotice(notice=make_notice()))
    assert alert is not None

    dismissed = await engine.handle(Dismiss(alert_id=alert.id, dismissed_by="bob"))
    assert dismissed is not None
    assert dismissed.status is AlertStatus.DISMISSED

    assert await engine.get_active_alerts() == []


async def test_dismiss_then_duplicate_notice_race() -> None:
    store = InMemoryAlertStore(latency=0.01)
    engine, channel = _engine(store)
    alert = await engine.ingest(make_notice())
    assert alert is not None

    # Dismiss reaches the lock first: the notice opens a fresh alert
    dismissed, fresh = await asyncio.gather(
        engine.dismiss(alert.id, "bob"),
        engine.ingest(make_notice()),
    )

    assert dismissed is not None and dismissed.status is AlertStatus.DISMISSED
    assert fresh is not None and fresh.id != alert.id and fresh.count == 1
    active = await engine.get_active_alerts()
    assert [a.id for a in active] == [fresh.id]
    assert len(channel.digests) == 2


async def test_duplicate_notice_then_dismiss_race() -> None:
    store = InMemoryAlertStore(latency=0.01)
    engine, channel = _engine(store)
    alert = await engine.ingest(make_notice())
    assert alert is not None

    # Notice reaches the lock first: it is squashed, then the alert is dismissed
    squashed, dismissed = await asyncio.gather(
        engine.ingest(make_notice()),
        engine.dismiss(alert.id, "bob"),
    )

    assert squashed is not None and squashed.id == alert.id and squashed.count == 2
    assert dismissed is not None and dismissed.count == 2
    assert await engine.get_active_alerts() == []
    assert len(channel.digests) == 1


async def test_concurrent_duplicates_yield_one_active_alert() -> None:
    store = InMemoryAlertStore(latency=0.005)
    engine, channel = _engine(store)

    await asyncio.gather(*(engine.ingest(make_notice()) for _ in range(10)))

    active = await engine.get_active_alerts()
    assert len(active) == 1
    assert active[0].count == 10
    assert len(channel.digests) == 1


async def test_slow_store_serializes_all_traffic() -> None:
    store = OverlapTrackingStore(latency=0.005)
    engine, _ = _engine(store)

    await asyncio.gather(
        *(engine.ingest(make_notice(source=f"S{i}", host=f"H{i}")) for i in range(8))
    )

    assert len(store) == 8
    assert store.max_in_flight == 1


async def test_store_failure_abandons_ingest() -> None:
    engine, channel = _engine(FailingStore())

    assert await engine.ingest(make_notice()) is None
    assert channel.digests == []


async def test_write_failure_publishes_nothing() -> None:
    store = FailingStore(fail_query=False, fail_upsert=True)
    engine, channel = _engine(store)

    assert await engine.ingest(make_notice()) is None
    assert channel.digests == []
    assert len(store.inner) == 0


async def test_store_failure_abandons_dismiss() -> None:
    store = FailingStore(fail_query=False, fail_upsert=False)
    engine, _ = _engine(store)
    alert = await engine.ingest(make_notice())
    assert alert is not None

    store.fail_upsert = True
    assert await engine.dismiss(alert.id, "bob") is None
    assert store.inner.all()[0].is_active

    # The engine keeps working once the store recovers
    store.fail_upsert = False
    assert await engine.dismiss(alert.id, "bob") is not None
