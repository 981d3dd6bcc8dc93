"""
Alert data models.

An alert is the persisted, deduplicated record of one ongoing or past
condition. Repeated notices from the same (source, host name) pair are
squashed into a single active alert by incrementing its count. An alert
is dismissed exactly once and never reopens; a later notice for the same
key starts a fresh alert.

Models:
    AlertStatus: Lifecycle status (active, dismissed)
    Alert: Persisted alert record
    Digest: Point-in-time snapshot of active alerts, never persisted
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from alert_engine.models.notices import Notice


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertStatus(str, Enum):
    """
    Alert lifecycle status.

    Attributes:
        ACTIVE: Condition is ongoing; repeated notices are squashed into it.
        DISMISSED: Explicitly dismissed by an operator. Terminal.
    """

    ACTIVE = "active"
    DISMISSED = "dismissed"


class Alert(Notice):
    """
    Persisted alert record.

    Carries every notice field plus lifecycle tracking. Instances are
    immutable; the transition methods return updated copies.

    Attributes:
        status: Current lifecycle status.
        count: Number of notices squashed into this alert.
        last_updated: Timestamp of the most recent notice.
        dismissed_time: When the alert was dismissed.
        dismissed_by: Who dismissed the alert.

    Example:
        >>> alert = Alert.from_notice(notice)
        >>> alert = alert.merge(repeat_notice)
        >>> alert.count
        2
        >>> alert = alert.dismiss("bob")
        >>> alert.status
        <AlertStatus.DISMISSED: 'dismissed'>
    """

    status: AlertStatus = Field(
        default=AlertStatus.ACTIVE,
        description="Current lifecycle status",
    )
    count: int = Field(
        default=1,
        description="Number of notices squashed into this alert",
        ge=1,
    )
    last_updated: datetime = Field(
        default_factory=_utcnow,
        alias="lastUpdated",
        description="Timestamp of the most recent notice",
    )
    dismissed_time: Optional[datetime] = Field(
        default=None,
        alias="dismissedTime",
        description="When the alert was dismissed",
    )
    dismissed_by: Optional[str] = Field(
        default=None,
        alias="dismissedBy",
        description="Who dismissed the alert",
        min_length=1,
    )

    @model_validator(mode="after")
    def check_dismissal_fields(self) -> "Alert":
        """Dismissal fields are set iff the alert is dismissed."""
        dismissed = self.status == AlertStatus.DISMISSED
        has_time = self.dismissed_time is not None
        has_by = self.dismissed_by is not None
        if dismissed and not (has_time and has_by):
            raise ValueError("dismissed alerts require dismissed_time and dismissed_by")
        if not dismissed and (has_time or has_by):
            raise ValueError("active alerts cannot carry dismissal fields")
        return self

    @classmethod
    def from_notice(cls, notice: Notice) -> "Alert":
        """
        Promote a notice to a brand-new active alert.

        The alert always gets a freshly minted id. Producers may set or reuse
        notice ids, and a promoted alert must never overwrite a stored one.

        Args:
            notice: The first notice seen for its dedup key.

        Returns:
            Alert: Active alert with count 1, a new id and the notice fields.
        """
        return cls(
            **notice.model_dump(exclude={"id"}),
            id=str(uuid4()),
            status=AlertStatus.ACTIVE,
            count=1,
            last_updated=notice.timestamp,
        )

    @property
    def is_active(self) -> bool:
        """Check if the alert is still active."""
        return self.status == AlertStatus.ACTIVE

    def merge(self, notice: Notice) -> "Alert":
        """
        Squash a repeated notice into this alert.

        The details of the new notice replace the stored details rather
        than being unioned with them.

        Args:
            notice: Repeated notice with the same dedup key.

        Returns:
            Alert: Updated alert with incremented count.
        """
        return self.model_copy(
            update={
                "count": self.count + 1,
                "last_updated": notice.timestamp,
                "details": notice.details,
            }
        )

    def dismiss(self, dismissed_by: str, timestamp: Optional[datetime] = None) -> "Alert":
        """
        Dismiss the alert.

        Args:
            dismissed_by: Non-empty identity of whoever dismissed it.
            timestamp: Dismissal time, defaults to now.

        Returns:
            Alert: Dismissed copy of the alert.

        Raises:
            ValueError: If dismissed_by is empty.
        """
        if not dismissed_by:
            raise ValueError("dismissed_by must be a non-empty string")
        return self.model_copy(
            update={
                "status": AlertStatus.DISMISSED,
                "dismissed_time": timestamp or _utcnow(),
                "dismissed_by": dismissed_by,
            }
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible wire shape."""
        return self.model_dump(mode="json", by_alias=True)


class Digest(BaseModel):
    """
    Point-in-time snapshot of active alerts.

    Published on first occurrence of an alert and on the periodic schedule.
    Never persisted.

    Attributes:
        timestamp: When the digest was taken.
        alerts: Alert snapshots, in store order.
    """

    model_config = {"frozen": True}

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the digest was taken",
    )
    alerts: Tuple[Alert, ...] = Field(
        default=(),
        description="Alert snapshots",
    )

    @classmethod
    def of(cls, alerts: Iterable[Alert], timestamp: Optional[datetime] = None) -> "Digest":
        """Build a digest from a sequence of alerts."""
        if timestamp is None:
            return cls(alerts=tuple(alerts))
        return cls(alerts=tuple(alerts), timestamp=timestamp)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible wire shape."""
        return self.model_dump(mode="json", by_alias=True)
