"""
Notification sink interface.
The registration subsystem only decides WHAT to announce; sinks decide HOW it
leaves the process. Swappable without touching admission or promotion logic.
"""

from abc import ABC, abstractmethod


class NotificationSink(ABC):
    """
    Interface for notification delivery.

    Implementations:
    - LogNotificationSink: write the payload to the structured log
    - WebhookNotificationSink: POST the payload to an HTTP endpoint
    - RedisNotificationSink: publish the payload on a Redis channel
    """

    name: str = "sink"

    @abstractmethod
    async def send(self, payload: dict) -> None:
        """
        Deliver one notification.

        Args:
            payload: {eventId, type, recipientType, recipientIds, title,
                      message, recipientCount, createdBy, notificationId}

        Raises:
            Any exception on failure. The dispatcher records it on the outbox
            row; it never reaches the registration transaction.
        """
        pass

    async def close(self) -> None:
        """Release connections held by the sink."""
        pass
