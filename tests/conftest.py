"""Shared fixtures and fakes for alert engine tests."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import pytest

from alert_engine.config.models import ChannelsConfig
from alert_engine.engine.manager import AlertEngine
from alert_engine.engine.publisher import DigestPublisher
from alert_engine.interfaces.alert_store import AlertStore, StoreOperationError
from alert_engine.models.alerts import Alert, Digest
from alert_engine.models.notices import Notice
from alert_engine.storage.memory_store import InMemoryAlertStore


class RecordingChannel:
    """Digest channel that keeps every digest it receives."""

    def __init__(self) -> None:
        self.digests: List[Digest] = []

    async def publish(self, digest: Digest) -> None:
        self.digests.append(digest)


class FailingChannel:
    async def publish(self, digest: Digest) -> None:
        raise RuntimeError("channel down")


class FailingStore(AlertStore):
    """Store whose queries and/or writes always fail."""

    def __init__(self, fail_query: bool = True, fail_upsert: bool = True) -> None:
        self.fail_query = fail_query
        self.fail_upsert = fail_upsert
        self.inner = InMemoryAlertStore()

    async def query(self, predicate: str) -> List[Alert]:
        if self.fail_query:
            raise StoreOperationError("query failed")
        return await self.inner.query(predicate)

    async def upsert(self, alert: Alert) -> None:
        if self.fail_upsert:
            raise StoreOperationError("upsert failed")
        await self.inner.upsert(alert)


class OverlapTrackingStore(InMemoryAlertStore):
    """Slow in-memory store recording how many calls overlap."""

    def __init__(self, latency: float = 0.01) -> None:
        super().__init__(latency=latency)
        self.in_flight = 0
        self.max_in_flight = 0

    async def query(self, predicate: str) -> List[Alert]:
        self._enter()
        try:
            return await super().query(predicate)
        finally:
            self.in_flight -= 1

    async def upsert(self, alert: Alert) -> None:
        self._enter()
        try:
            await super().upsert(alert)
        finally:
            self.in_flight -= 1

    def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)


class FakeBus:
    """In-process stand-in for RedisBus."""

    def __init__(self) -> None:
        self.channels = ChannelsConfig()
        self.queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self.published: List[Digest] = []
        self.connected = False
        self.subscriptions: Optional[tuple[List[str], List[str]]] = None

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def publish_digest(self, digest: Digest) -> int:
        self.published.append(digest)
        return 1

    @asynccontextmanager
    async def subscribe(
        self,
        channels: Sequence[str],
        patterns: Sequence[str] = (),
    ) -> AsyncIterator[AsyncIterator[Dict[str, Any]]]:
        self.subscriptions = (list(channels), list(patterns))

        async def messages() -> AsyncIterator[Dict[str, Any]]:
            while True:
                yield await self.queue.get()

        yield messages()


def make_notice(
    source: str = "S1",
    host: str = "H1",
    details: Sequence[str] = (),
    **overrides: Any,
) -> Notice:
    payload: Dict[str, Any] = {
        "source": source,
        "hostName": host,
        "hostAddress": "10.0.0.1",
        "title": f"{source} failing",
        "details": list(details),
    }
    payload.update(overrides)
    return Notice.model_validate(payload)


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def publisher(channel: RecordingChannel) -> DigestPublisher:
    return DigestPublisher(channels={"recording": channel})


@pytest.fixture
def engine(store: InMemoryAlertStore, publisher: DigestPublisher) -> AlertEngine:
    return AlertEngine(store=store, publisher=publisher)
