"""
Shared service runtime.

This module provides the pieces every long-running service process shares:
structured logging setup and the ServiceRunner lifecycle base class.

Lifecycle:
    1. Load configuration (unless one is injected)
    2. Configure logging
    3. Connect the Redis bus and the alert store
    4. ``_initialize`` (service-specific wiring)
    5. ``_run`` until the shutdown event is set or the loop ends
    6. ``_cleanup``, then disconnect store and bus

SIGINT and SIGTERM set the shutdown event.

Example:
    >>> class MyService(ServiceRunner):
    ...     service_name = "my-service"
    ...     async def _initialize(self) -> None: ...
    ...     async def _run(self) -> None:
    ...         await self.shutdown_event.wait()
    ...     async def _cleanup(self) -> None: ...
    >>> await MyService("config").run()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from alert_engine.config import AppConfig, LogFormat, LogLevel, StoreBackend, load_config
from alert_engine.interfaces.alert_store import AlertStore
from alert_engine.storage.memory_store import InMemoryAlertStore
from alert_engine.storage.postgres_store import PostgresAlertStore
from alert_engine.storage.redis_bus import RedisBus

logger = structlog.get_logger(__name__)


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.JSON,
) -> None:
    """
    Configure structlog over the standard logging module.

    Args:
        level: Minimum log level.
        log_format: ``json`` for one JSON object per line, ``text`` for a
            human-readable console renderer.

    Safe to call more than once. Each call replaces the root handler and the
    structlog configuration, so a level loaded from config overrides the
    bootstrap one. Unknown level names fall back to INFO.
    """
    try:
        level_name = LogLevel(level.upper() if isinstance(level, str) else level).value
    except ValueError:
        level_name = LogLevel.INFO.value
    renderer: Any
    if LogFormat(log_format) is LogFormat.TEXT:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name),
        force=True,
    )


def create_alert_store(config: AppConfig) -> AlertStore:
    """
    Build the alert store selected by configuration.

    Args:
        config: Application configuration.

    Returns:
        AlertStore: An unconnected store.
    """
    logger.info("alert_store_selected", backend=config.store.backend.value)
    if config.store.backend is StoreBackend.POSTGRES:
        return PostgresAlertStore(config.postgres)
    return InMemoryAlertStore()


class ServiceRunner(ABC):
    """
    Base class for service processes.

    Subclasses provide ``service_name``, ``_initialize``, ``_run`` and
    ``_cleanup``. The bus and store may be injected; otherwise they are
    built from configuration when the service runs.

    Attributes:
        config_path: Directory holding the YAML configuration.
        config: Loaded configuration, None until ``run``.
        bus: Redis pub/sub bus.
        store: Alert store.
        shutdown_event: Set when the service should stop.
    """

    def __init__(
        self,
        config_path: str = "config",
        config: Optional[AppConfig] = None,
        bus: Optional[RedisBus] = None,
        store: Optional[AlertStore] = None,
    ) -> None:
        self.config_path = config_path
        self.config = config
        self.bus = bus
        self.store = store
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Name used in logs."""
        ...

    @abstractmethod
    async def _initialize(self) -> None:
        """Service-specific wiring after bus and store are connected."""
        ...

    @abstractmethod
    async def _run(self) -> None:
        """Main service loop."""
        ...

    @abstractmethod
    async def _cleanup(self) -> None:
        """Service-specific teardown before bus and store disconnect."""
        ...

    def request_shutdown(self) -> None:
        """Ask the service to stop. Safe to call from a signal handler."""
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested")
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                self.logger.debug("signal_handler_unavailable", signal=sig.name)

    async def _connect(self) -> None:
        if self.config is None:
            raise RuntimeError("Configuration not loaded")

        if self.bus is None:
            self.bus = RedisBus(self.config.redis, self.config.channels)
        await self.bus.connect()

        if self.store is None:
            self.store = create_alert_store(self.config)
        await self.store.connect()

        if isinstance(self.store, PostgresAlertStore) and self.config.store.ensure_schema:
            await self.store.ensure_schema()

    async def _disconnect(self) -> None:
        if self.store is not None:
            await self.store.disconnect()
        if self.bus is not None:
            await self.bus.disconnect()

    async def run(self) -> None:
        """
        Run the service until shutdown.

        Raises:
            ConfigLoadError: If configuration cannot be loaded.
            BusError: If the bus cannot be reached at startup.
            StoreError: If the store cannot be reached at startup.
        """
        if self.config is None:
            self.config = load_config(self.config_path)

        setup_logging(self.config.logging.level, self.config.logging.format)
        self._install_signal_handlers()

        self.logger.info(
            "service_starting",
            service=self.service_name,
            store_backend=self.config.store.backend.value,
        )

        try:
            await self._connect()
            await self._initialize()
            self.logger.info("service_started", service=self.service_name)
            await self._run()
        finally:
            try:
                await self._cleanup()
            finally:
                await self._disconnect()
            self.logger.info("service_stopped", service=self.service_name)
