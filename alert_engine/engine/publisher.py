"""
Digest publisher for routing digests to outbound channels.

This module provides the DigestPublisher class which hands a digest to
every configured digest channel. Publication is fire-and-forget: channel
failures are logged and swallowed, nothing is retried and no
acknowledgment is awaited beyond the channel call itself. Current state is
never lost by a failed publish because the next periodic tick or the next
first-occurrence alert announces it again.

Example:
    >>> publisher = DigestPublisher(
    ...     channels={"log": LogDigestChannel(), "bus": RedisDigestChannel(bus)},
    ... )
    >>> await publisher.publish(Digest.of([alert]))
    2
"""

from typing import Dict, List, Optional, Protocol

import structlog

from alert_engine.models.alerts import Digest

logger = structlog.get_logger(__name__)


class DigestChannel(Protocol):
    """
    Protocol for digest channels.

    Any channel implementation must support this async method.
    """

    async def publish(self, digest: Digest) -> None:
        """Publish a digest to the channel."""
        ...


class LogDigestChannel:
    """
    Digest channel that writes one structured log line per digest.

    Attributes:
        event: Log event name used for each digest.
    """

    def __init__(self, event: str = "alert_digest") -> None:
        self.event = event
        self._logger = structlog.get_logger("alert_engine.digest")

    async def publish(self, digest: Digest) -> None:
        self._logger.info(
            self.event,
            timestamp=digest.timestamp.isoformat(),
            alert_count=len(digest.alerts),
            alerts=[
                {
                    "id": alert.id,
                    "source": alert.source,
                    "host_name": alert.host_name,
                    "priority": int(alert.priority),
                    "title": alert.title,
                    "count": alert.count,
                }
                for alert in digest.alerts
            ],
        )


class DigestPublisher:
    """
    Hands digests to every configured channel.

    Attributes:
        channels: Dict mapping channel name to channel instance.

    Example:
        >>> publisher = DigestPublisher(channels={"log": LogDigestChannel()})
        >>> delivered = await publisher.publish(digest)
    """

    def __init__(self, channels: Optional[Dict[str, DigestChannel]] = None) -> None:
        """
        Initialize the digest publisher.

        Args:
            channels: Dict mapping channel name to channel instance.
                Defaults to a single LogDigestChannel named "log".
        """
        if channels is None:
            channels = {"log": LogDigestChannel()}
        self.channels: Dict[str, DigestChannel] = dict(channels)

        logger.info(
            "digest_publisher_initialized",
            available_channels=list(self.channels.keys()),
        )

    async def publish(self, digest: Digest) -> int:
        """
        Publish a digest to every channel.

        Never raises. A failing channel does not prevent delivery to the
        others.

        Args:
            digest: The digest to publish.

        Returns:
            int: Number of channels that accepted the digest.
        """
        delivered = 0

        for channel_name, channel in list(self.channels.items()):
            try:
                await channel.publish(digest)
                delivered += 1

                logger.debug(
                    "digest_published_to_channel",
                    channel=channel_name,
                    alert_count=len(digest.alerts),
                )

            except Exception as e:
                logger.error(
                    "digest_publish_failed",
                    channel=channel_name,
                    alert_count=len(digest.alerts),
                    error=str(e),
                )

        logger.info(
            "digest_published",
            alert_count=len(digest.alerts),
            delivered_to=delivered,
            total_channels=len(self.channels),
        )

        return delivered

    def add_channel(self, name: str, channel: DigestChannel) -> None:
        """
        Add a channel to the publisher.

        Args:
            name: Channel name.
            channel: Channel instance.
        """
        self.channels[name] = channel
        logger.info(
            "digest_channel_added",
            channel_name=name,
        )

    def remove_channel(self, name: str) -> bool:
        """
        Remove a channel from the publisher.

        Args:
            name: Channel name to remove.

        Returns:
            bool: True if channel was removed, False if not found.
        """
        if name in self.channels:
            del self.channels[name]
            logger.info(
                "digest_channel_removed",
                channel_name=name,
            )
            return True
        return False

    def get_available_channels(self) -> List[str]:
        """Get list of configured channel names."""
        return list(self.channels.keys())
