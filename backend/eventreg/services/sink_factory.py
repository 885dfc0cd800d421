"""
Notification sink factory.
Configures which notification sink the outbox dispatcher delivers to.
"""

from typing import Optional

from eventreg.core.config import get_settings
from eventreg.services.interfaces.log_sink import LogNotificationSink
from eventreg.services.interfaces.notification_sink import NotificationSink
from eventreg.services.notification_sinks import RedisNotificationSink, WebhookNotificationSink


def build_notification_sink() -> NotificationSink:
    """
    Build the configured sink.

    Selected by NOTIFICATION_SINK:
    - log (default): structured log only
    - webhook: POST to NOTIFICATION_WEBHOOK_URL
    - redis: publish on NOTIFICATION_REDIS_CHANNEL
    """
    settings = get_settings()
    sink = settings.NOTIFICATION_SINK.lower()

    if sink == "webhook":
        return WebhookNotificationSink(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_WEBHOOK_TIMEOUT,
        )
    if sink == "redis":
        return RedisNotificationSink(settings.NOTIFICATION_REDIS_CHANNEL)
    return LogNotificationSink()


# Singleton instance
_sink: Optional[NotificationSink] = None


def get_notification_sink() -> NotificationSink:
    """Get notification sink singleton."""
    global _sink
    if _sink is None:
        _sink = build_notification_sink()
    return _sink


async def close_notification_sink() -> None:
    global _sink
    if _sink is not None:
        await _sink.close()
        _sink = None
