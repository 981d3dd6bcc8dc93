"""
Async PostgreSQL alert store.

This module provides an AlertStore backed by a single PostgreSQL table.
Alerts are never deleted, so the table doubles as the history of every
dismissed alert.

The engine's predicate strings are parsed with the same grammar the engine
uses to build them and translated into a parameterized ``WHERE`` clause
over a fixed column whitelist; no predicate text ever reaches SQL.

Key Table:
    - system_alerts: one row per alert id, upserted on every change

Note:
    Failures are surfaced as StoreError and never retried here. The engine
    abandons the operation instead.

Example:
    >>> from alert_engine.config.models import PostgresConnectionConfig
    >>> store = PostgresAlertStore(PostgresConnectionConfig(url="postgresql://..."))
    >>> await store.connect()
    >>> await store.ensure_schema()
    >>> alerts = await store.query("status = 'active'")
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import asyncpg
import structlog
from asyncpg import Connection, Pool, Record
from asyncpg.exceptions import (
    ConnectionDoesNotExistError,
    InterfaceError,
    PostgresError,
    TooManyConnectionsError,
)

from alert_engine.config.models import PostgresConnectionConfig
from alert_engine.engine.predicates import parse_predicate
from alert_engine.interfaces.alert_store import (
    AlertStore,
    PredicateError,
    StoreConnectionError,
    StoreOperationError,
)
from alert_engine.models.alerts import Alert, AlertStatus

logger = structlog.get_logger(__name__)


# Wire field name -> column
COLUMNS: Dict[str, str] = {
    "id": "id",
    "source": "source",
    "hostName": "host_name",
    "hostAddress": "host_address",
    "status": "status",
    "title": "title",
    "priority": "priority",
}

SELECT_COLUMNS = (
    "id, source, host_name, host_address, priority, title, details, notice_time, "
    "status, count, last_updated, dismissed_time, dismissed_by"
)


def _sanitize_url(url: str) -> str:
    """Sanitize URL for logging (remove password)."""
    if "@" in url:
        parts = url.split("@")
        if ":" in parts[0]:
            user_part = parts[0].rsplit(":", 1)[0]
            return f"{user_part}:***@{parts[1]}"
    return url


def build_where(predicate: str) -> Tuple[str, List[Any]]:
    """
    Translate a predicate into a parameterized WHERE clause.

    Args:
        predicate: A conjunction of equality clauses.

    Returns:
        Tuple[str, List[Any]]: SQL fragment and its positional arguments.

    Raises:
        PredicateError: If the predicate cannot be parsed.

    Example:
        >>> build_where("source = 'a' AND status = 'active'")
        ('source = $1 AND status = $2', ['a', 'active'])
    """
    clauses = parse_predicate(predicate)
    fragments: List[str] = []
    args: List[Any] = []
    for field, value in clauses.items():
        column = COLUMNS[field]
        if column == "priority":
            try:
                args.append(int(value))
            except ValueError as e:
                raise PredicateError(f"priority must be an integer: {value!r}") from e
        else:
            args.append(value)
        fragments.append(f"{column} = ${len(args)}")
    return " AND ".join(fragments), args


def _record_to_alert(record: Record) -> Alert:
    return Alert(
        id=record["id"],
        source=record["source"],
        host_name=record["host_name"],
        host_address=record["host_address"],
        priority=record["priority"],
        title=record["title"],
        details=list(record["details"] or []),
        timestamp=record["notice_time"],
        status=AlertStatus(record["status"]),
        count=record["count"],
        last_updated=record["last_updated"],
        dismissed_time=record["dismissed_time"],
        dismissed_by=record["dismissed_by"],
    )


class PostgresAlertStore(AlertStore):
    """
    AlertStore backed by PostgreSQL through an asyncpg pool.

    Attributes:
        config: PostgreSQL connection configuration.
        table: Name of the alerts table.
    """

    def __init__(self, config: PostgresConnectionConfig) -> None:
        self.config = config
        self.table = config.table
        self._pool: Optional[Pool] = None
        self._connected: bool = False

        logger.info(
            "postgres_alert_store_initialized",
            url=_sanitize_url(config.url),
            pool_size=config.pool_size,
            table=self.table,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected and self._pool is not None

    async def connect(self) -> None:
        """
        Create the connection pool.

        Raises:
            StoreConnectionError: If the database is unreachable.
        """
        if self._connected:
            logger.warning("postgres_already_connected")
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.config.url,
                min_size=1,
                max_size=self.config.pool_size,
                command_timeout=self.config.pool_timeout,
                init=self._init_connection,
            )

            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            self._connected = True
            logger.info("postgres_connected", url=_sanitize_url(self.config.url))

        except (PostgresError, OSError, asyncio.TimeoutError) as e:
            self._connected = False
            logger.error(
                "postgres_connection_failed",
                url=_sanitize_url(self.config.url),
                error=str(e),
            )
            raise StoreConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

    async def _init_connection(self, conn: Connection) -> None:
        await conn.execute("SET timezone = 'UTC'")

    async def disconnect(self) -> None:
        """Close the pool. Safe to call multiple times."""
        if self._pool is not None:
            try:
                await self._pool.close()
            except Exception as e:
                logger.warning("postgres_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("postgres_disconnected")

    @asynccontextmanager
    async def _acquire_connection(self) -> AsyncIterator[Connection]:
        if not self._connected or self._pool is None:
            raise StoreConnectionError("PostgreSQL alert store is not connected")

        try:
            async with self._pool.acquire() as conn:
                yield conn
        except TooManyConnectionsError as e:
            logger.error("postgres_pool_exhausted", error=str(e))
            raise StoreConnectionError(f"Connection pool exhausted: {e}") from e
        except (ConnectionDoesNotExistError, InterfaceError) as e:
            logger.error("postgres_connection_lost", error=str(e))
            self._connected = False
            raise StoreConnectionError(f"Connection lost: {e}") from e

    async def ensure_schema(self) -> None:
        """
        Create the alerts table and its lookup indexes if missing.

        Raises:
            StoreError: If the DDL fails.
        """
        try:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        id TEXT PRIMARY KEY,
                        source TEXT NOT NULL,
                        host_name TEXT NOT NULL,
                        host_address TEXT NOT NULL,
                        priority INTEGER NOT NULL,
                        title TEXT NOT NULL DEFAULT '',
                        details TEXT[] NOT NULL DEFAULT '{{}}',
                        notice_time TIMESTAMPTZ NOT NULL,
                        status TEXT NOT NULL,
                        count BIGINT NOT NULL,
                        last_updated TIMESTAMPTZ NOT NULL,
                        dismissed_time TIMESTAMPTZ,
                        dismissed_by TEXT
                    );
                    CREATE INDEX IF NOT EXISTS {self.table}_dedup_idx
                        ON {self.table} (source, host_name, status);
                    CREATE INDEX IF NOT EXISTS {self.table}_status_idx
                        ON {self.table} (status, last_updated DESC);
                    """
                )
        except PostgresError as e:
            logger.error("postgres_schema_failed", table=self.table, error=str(e))
            raise StoreOperationError(f"Failed to create {self.table}: {e}") from e

        logger.info("postgres_schema_ready", table=self.table)

    async def query(self, predicate: str) -> List[Alert]:
        where, args = build_where(predicate)
        sql = (
            f"SELECT {SELECT_COLUMNS} FROM {self.table} "
            f"WHERE {where} ORDER BY last_updated DESC, id ASC"
        )

        try:
            async with self._acquire_connection() as conn:
                records = await conn.fetch(sql, *args)
        except (PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                "postgres_alert_query_failed",
                predicate=predicate,
                error=str(e),
            )
            raise StoreOperationError(f"Alert query failed: {e}") from e

        alerts = [_record_to_alert(record) for record in records]
        logger.debug(
            "postgres_alert_query",
            predicate=predicate,
            count=len(alerts),
        )
        return alerts

    async def upsert(self, alert: Alert) -> None:
        sql = f"""
            INSERT INTO {self.table} (
                id, source, host_name, host_address, priority, title, details,
                notice_time, status, count, last_updated, dismissed_time, dismissed_by
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT (id) DO UPDATE SET
                source = EXCLUDED.source,
                host_name = EXCLUDED.host_name,
                host_address = EXCLUDED.host_address,
                priority = EXCLUDED.priority,
                title = EXCLUDED.title,
                details = EXCLUDED.details,
                notice_time = EXCLUDED.notice_time,
                status = EXCLUDED.status,
                count = EXCLUDED.count,
                last_updated = EXCLUDED.last_updated,
                dismissed_time = EXCLUDED.dismissed_time,
                dismissed_by = EXCLUDED.dismissed_by
        """

        try:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    sql,
                    alert.id,
                    alert.source,
                    alert.host_name,
                    alert.host_address,
                    int(alert.priority),
                    alert.title,
                    sorted(alert.details),
                    alert.timestamp,
                    alert.status.value,
                    alert.count,
                    alert.last_updated,
                    alert.dismissed_time,
                    alert.dismissed_by,
                )
        except (PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                "postgres_alert_upsert_failed",
                alert_id=alert.id,
                error=str(e),
            )
            raise StoreOperationError(f"Failed to upsert alert {alert.id}: {e}") from e

        logger.debug(
            "postgres_alert_upserted",
            alert_id=alert.id,
            status=alert.status.value,
            count=alert.count,
        )
