"""Tests for the periodic digest aggregator."""

from __future__ import annotations

import asyncio
import time

import pytest

from alert_engine.engine.aggregator import (
    PeriodicAggregator,
    create_periodic_aggregator,
    validate_interval,
)
from alert_engine.engine.publisher import DigestPublisher
from alert_engine.models import Alert
from alert_engine.storage.memory_store import InMemoryAlertStore

from conftest import FailingStore, OverlapTrackingStore, RecordingChannel, make_notice


@pytest.fixture(autouse=True)
def fast_minutes(monkeypatch: pytest.MonkeyPatch) -> None:
    # One "minute" lasts 100ms in these tests
    monkeypatch.setattr(PeriodicAggregator, "SECONDS_PER_MINUTE", 0.1)


async def _seed(store: InMemoryAlertStore, *sources: str) -> list[Alert]:
    alerts = [Alert.from_notice(make_notice(source=s)) for s in sources]
    for alert in alerts:
        await store.upsert(alert)
    return alerts


@pytest.mark.parametrize("interval", [0, -5, 1.5, "10", True, None])
def test_validate_interval_rejects_non_positive_integers(interval: object) -> None:
    with pytest.raises(ValueError):
        validate_interval(interval)  # type: ignore[arg-type]


def test_validate_interval_accepts_positive_integers() -> None:
    assert validate_interval(1) == 1
    assert validate_interval(1440) == 1440


def test_constructor_rejects_invalid_interval(
    store: InMemoryAlertStore, publisher: DigestPublisher
) -> None:
    with pytest.raises(ValueError):
        PeriodicAggregator(store, publisher, interval_minutes=0)


async def test_fire_without_active_alerts_publishes_nothing(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    alert = (await _seed(store, "S1"))[0]
    await store.upsert(alert.dismiss("bob"))
    aggregator = PeriodicAggregator(store, publisher, interval_minutes=10)

    assert await aggregator.fire() is None
    assert channel.digests == []


async def test_fire_publishes_all_active_alerts(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    a, b, c = await _seed(store, "S1", "S2", "S3")
    await store.upsert(b.dismiss("bob"))
    aggregator = PeriodicAggregator(store, publisher, interval_minutes=10)

    digest = await aggregator.fire()

    assert digest is not None
    assert {alert.id for alert in digest.alerts} == {a.id, c.id}
    assert channel.digests == [digest]


async def test_fire_survives_store_failure(
    publisher: DigestPublisher, channel: RecordingChannel
) -> None:
    aggregator = PeriodicAggregator(FailingStore(), publisher, interval_minutes=10)

    assert await aggregator.fire() is None
    assert channel.digests == []


async def test_first_tick_waits_one_full_interval(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")

    async with PeriodicAggregator(store, publisher, interval_minutes=2) as aggregator:
        assert aggregator.is_running
        await asyncio.sleep(0.1)
        assert channel.digests == []
        await asyncio.sleep(0.2)
        assert len(channel.digests) == 1

    assert aggregator.is_closed
    assert not aggregator.is_running


async def test_timer_fires_repeatedly(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    await asyncio.sleep(0.35)
    await aggregator.close()

    assert 2 <= len(channel.digests) <= 4


async def test_empty_ticks_publish_nothing(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    await asyncio.sleep(0.25)
    await aggregator.close()

    assert store.query_count >= 1
    assert channel.digests == []


async def test_reconfigure_reschedules_without_double_fire(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=2)

    await asyncio.sleep(0.12)
    # Old timer would fire at 0.2s; the new one fires at 0.32s
    await aggregator.set_interval(2)
    await aggregator.set_interval(2)
    assert aggregator.interval_minutes == 2

    await asyncio.sleep(0.14)
    assert channel.digests == []

    await asyncio.sleep(0.15)
    assert len(channel.digests) == 1

    await aggregator.close()


async def test_reconfigure_to_shorter_interval(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=100)

    await aggregator.set_interval(1)
    await asyncio.sleep(0.15)
    await aggregator.close()

    assert aggregator.interval_minutes == 1
    assert len(channel.digests) == 1


async def test_invalid_reconfigure_keeps_schedule(
    store: InMemoryAlertStore, publisher: DigestPublisher
) -> None:
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=5)

    with pytest.raises(ValueError):
        await aggregator.set_interval(0)

    assert aggregator.interval_minutes == 5
    assert aggregator.is_running
    await aggregator.close()


async def test_close_is_final_and_idempotent(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    await aggregator.close()
    await aggregator.close()
    await asyncio.sleep(0.15)

    assert channel.digests == []
    assert aggregator.is_closed
    with pytest.raises(RuntimeError):
        await aggregator.set_interval(3)
    with pytest.raises(RuntimeError):
        await aggregator.start()


async def test_close_waits_for_in_flight_tick(
    publisher: DigestPublisher, channel: RecordingChannel
) -> None:
    store = InMemoryAlertStore()
    await _seed(store, "S1")
    store.latency = 0.2
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    # Tick starts at 0.1s and its query completes at 0.3s
    await asyncio.sleep(0.15)
    await aggregator.close()

    assert len(channel.digests) == 1


async def test_start_is_idempotent(
    store: InMemoryAlertStore, publisher: DigestPublisher
) -> None:
    aggregator = PeriodicAggregator(store, publisher, interval_minutes=5)
    assert not aggregator.is_running

    await aggregator.start()
    timer = aggregator._timer
    await aggregator.start()

    assert aggregator._timer is timer
    await aggregator.close()


async def test_slow_tick_skips_slots_instead_of_overlapping(
    publisher: DigestPublisher, channel: RecordingChannel
) -> None:
    store = OverlapTrackingStore(latency=0.0)
    await _seed(store, "S1")
    store.latency = 0.25
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    # Ticks at 0.1s and 0.4s; the 0.2s, 0.3s and 0.5s slots find a tick in flight
    await asyncio.sleep(0.55)
    await aggregator.close()

    assert store.max_in_flight == 1
    assert 1 <= len(channel.digests) <= 3
    assert store.query_count <= 3


async def test_stalled_loop_does_not_burst_ticks(
    store: InMemoryAlertStore,
    publisher: DigestPublisher,
    channel: RecordingChannel,
) -> None:
    await _seed(store, "S1")
    aggregator = await create_periodic_aggregator(store, publisher, interval_minutes=1)

    await asyncio.sleep(0.05)
    # Block the loop across three slots
    time.sleep(0.35)
    await asyncio.sleep(0.03)
    await aggregator.close()

    assert len(channel.digests) == 1
