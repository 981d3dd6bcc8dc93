"""
Event ingestor for inbound bus payloads.

This module provides the EventIngestor, which turns an arbitrary inbound
payload into exactly one typed command:

    - RaiseNotice for payloads on a notice channel that carry a source
    - Dismiss for payloads on the dismiss channel that carry an id
    - Rejected for everything else

Malformed payloads are never raised as faults. Noisy or broken producers
must not be able to destabilize ingestion, so rejected payloads are only
logged at debug level and dropped by the engine.

Example:
    >>> ingestor = EventIngestor()
    >>> command = ingestor.normalize("alerts:notice", {"source": "worker"})
    >>> isinstance(command, RaiseNotice)
    True
"""

from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError

from alert_engine.models.commands import Command, Dismiss, RaiseNotice, Rejected
from alert_engine.models.notices import Notice

logger = structlog.get_logger(__name__)


# Default channel names
DEFAULT_NOTICE_CHANNEL = "alerts:notice"
DEFAULT_DISMISS_CHANNEL = "alerts:dismiss"

# Payload keys
KEY_SOURCE = "source"
KEY_ID = "id"
KEY_DISMISSED_BY = "dismissedBy"


class EventIngestor:
    """
    Normalizes inbound payloads into typed commands.

    The dismiss channel is recognized by exact name. Any other channel is
    treated as a notice channel, so producers may publish on sub-channels
    such as ``alerts:notice:audit``.

    Attributes:
        dismiss_channel: Channel name carrying dismiss requests.
    """

    def __init__(self, dismiss_channel: str = DEFAULT_DISMISS_CHANNEL) -> None:
        self.dismiss_channel = dismiss_channel

    def normalize(self, channel: Optional[str], payload: Any) -> Command:
        """
        Turn one inbound payload into a command.

        Args:
            channel: Channel the payload arrived on.
            payload: Decoded payload, expected to be a mapping.

        Returns:
            Command: RaiseNotice, Dismiss or Rejected.
        """
        if not isinstance(payload, Mapping):
            return self._reject("payload_not_a_mapping", channel)

        if channel == self.dismiss_channel:
            return self._normalize_dismiss(channel, payload)
        return self._normalize_notice(channel, payload)

    def _normalize_notice(self, channel: Optional[str], payload: Mapping[str, Any]) -> Command:
        # Dedup needs an origin identity
        source = payload.get(KEY_SOURCE)
        if not isinstance(source, str) or not source.strip():
            return self._reject("missing_source", channel)

        try:
            notice = Notice.model_validate(dict(payload))
        except ValidationError as e:
            return self._reject(f"invalid_notice: {e.error_count()} error(s)", channel)

        return RaiseNotice(notice=notice)

    def _normalize_dismiss(self, channel: Optional[str], payload: Mapping[str, Any]) -> Command:
        alert_id = payload.get(KEY_ID)
        if not isinstance(alert_id, str) or not alert_id:
            return self._reject("missing_id", channel)

        dismissed_by = payload.get(KEY_DISMISSED_BY, payload.get("dismissed_by"))
        if dismissed_by is not None and not isinstance(dismissed_by, str):
            dismissed_by = str(dismissed_by)

        return Dismiss(alert_id=alert_id, dismissed_by=dismissed_by)

    def _reject(self, reason: str, channel: Optional[str]) -> Rejected:
        logger.debug(
            "payload_rejected",
            reason=reason,
            channel=channel,
        )
        return Rejected(reason=reason, channel=channel)
