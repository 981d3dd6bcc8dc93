"""
Notice data models.

A notice is the normalized, transient form of one raw occurrence of a
condition reported by some part of the system. Notices are never persisted
directly; the alert engine either squashes them into an existing active
alert or promotes them to a new alert.

Models:
    NoticePriority: Named integer severity levels
    Notice: Immutable notice envelope

Wire format:
    Notices travel as JSON objects. Host fields use camelCase on the wire
    (``hostName``, ``hostAddress``); both the wire name and the Python
    attribute name are accepted on input.

Example:
    >>> notice = Notice(source="ingest-worker", title="Queue backlog")
    >>> notice.priority
    2
"""

import socket
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, FrozenSet, List, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_host_name() -> str:
    """Return the host name of the machine raising the notice."""
    return socket.gethostname()


def _local_host_address() -> str:
    """Return the address of the machine raising the notice."""
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"


class NoticePriority(IntEnum):
    """
    Named notice priority levels.

    Priority on a notice is a plain integer so producers may use any value;
    these names cover the levels used inside the project.

    Attributes:
        LOW: Informational, no action expected.
        NORMAL: Default priority.
        IMPORTANT: Should be looked at soon.
        CRITICAL: Requires immediate attention.
    """

    LOW = 1
    NORMAL = 2
    IMPORTANT = 3
    CRITICAL = 4


class Notice(BaseModel):
    """
    Immutable notice envelope.

    Attributes:
        id: Globally unique identifier, assigned at creation.
        source: Identity of the component that raised the notice.
        host_name: Host the notice originated on.
        host_address: Address of the originating host.
        priority: Integer severity.
        title: Short human-readable summary.
        details: Free-form detail lines.
        timestamp: When the notice was raised (UTC).

    Example:
        >>> notice = Notice(
        ...     source="audit-appender",
        ...     hostName="node-1",
        ...     priority=NoticePriority.CRITICAL,
        ...     title="Failover appender failure",
        ...     details={"disk full"},
        ... )
    """

    model_config = {"frozen": True, "populate_by_name": True}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Globally unique notice identifier",
        min_length=1,
    )
    source: str = Field(
        ...,
        description="Identity of the component that raised the notice",
        min_length=1,
    )
    host_name: str = Field(
        default_factory=_local_host_name,
        alias="hostName",
        description="Host the notice originated on",
    )
    host_address: str = Field(
        default_factory=_local_host_address,
        alias="hostAddress",
        description="Address of the originating host",
    )
    priority: int = Field(
        default=NoticePriority.NORMAL,
        description="Integer severity",
    )
    title: str = Field(
        default="",
        description="Short human-readable summary",
    )
    details: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Free-form detail lines",
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the notice was raised",
    )

    @field_validator("details", mode="before")
    @classmethod
    def coerce_details(cls, value: Any) -> Any:
        """Accept a single string or None as well as any iterable of strings."""
        if value is None:
            return frozenset()
        if isinstance(value, str):
            return frozenset([value])
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(item) for item in value)
        return value

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("details")
    def serialize_details(self, details: FrozenSet[str]) -> List[str]:
        return sorted(details)

    @property
    def dedup_key(self) -> Tuple[str, str]:
        """The (source, host name) pair identifying which alert this notice merges into."""
        return (self.source, self.host_name)
