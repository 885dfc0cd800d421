"""
Log-only notification sink - no external delivery.
"""

from eventreg.core.logging import get_logger
from eventreg.services.interfaces.notification_sink import NotificationSink

logger = get_logger(__name__)


class LogNotificationSink(NotificationSink):
    """
    Writes each notification to the structured log.

    Use when:
    - Local development and tests
    - Another process tails the logs and handles delivery
    """

    name = "log"

    async def send(self, payload: dict) -> None:
        logger.info(
            "notification_emitted",
            notification_id=payload.get("notificationId"),
            event_id=payload["eventId"],
            type=payload["type"],
            recipients=payload["recipientIds"],
            title=payload["title"],
        )
