"""
Shared Pydantic data models for the alert engine.

Modules:
    notices: Transient notice envelope and priority levels
    alerts: Persisted alert record, lifecycle status and digest
    commands: Typed commands produced by the event ingestor

Example:
    >>> from alert_engine.models import Alert, Notice, Digest
    >>> alert = Alert.from_notice(Notice(source="worker"))
"""

# Notice models
from alert_engine.models.notices import (
    Notice,
    NoticePriority,
)

# Alert models
from alert_engine.models.alerts import (
    Alert,
    AlertStatus,
    Digest,
)

# Commands
from alert_engine.models.commands import (
    Command,
    Dismiss,
    RaiseNotice,
    Rejected,
)

__all__ = [
    # Notices
    "Notice",
    "NoticePriority",
    # Alerts
    "Alert",
    "AlertStatus",
    "Digest",
    # Commands
    "Command",
    "Dismiss",
    "RaiseNotice",
    "Rejected",
]
