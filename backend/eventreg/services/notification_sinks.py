"""
Notification sinks that leave the process.

Both are fire-and-forget from the registration flow's point of view: they are
only ever called by the outbox dispatcher after the registration transaction
has committed, and any exception they raise is recorded on the outbox row.
"""

import json
from typing import Optional

import httpx

from eventreg.core.config import get_settings
from eventreg.core.logging import get_logger
from eventreg.infrastructure.redis_client import get_redis
from eventreg.services.interfaces.notification_sink import NotificationSink

logger = get_logger(__name__)


class WebhookNotificationSink(NotificationSink):
    """
    POSTs each notification as JSON to the notification collaborator.
    Non-2xx responses count as failed deliveries.
    """

    name = "webhook"

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        if not url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL is required for the webhook sink")
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, payload: dict) -> None:
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug(
            "notification_posted",
            notification_id=payload.get("notificationId"),
            status_code=response.status_code,
        )

    async def close(self) -> None:
        await self._client.aclose()


class RedisNotificationSink(NotificationSink):
    """
    Publishes each notification on a Redis pub/sub channel.
    Fails the delivery when Redis is disabled or unreachable.
    """

    name = "redis"

    def __init__(self, channel: Optional[str] = None):
        self.channel = channel or get_settings().NOTIFICATION_REDIS_CHANNEL

    async def send(self, payload: dict) -> None:
        client = await get_redis()
        if client is None:
            raise ConnectionError("Redis is unavailable")
        receivers = await client.publish(self.channel, json.dumps(payload, default=str))
        logger.debug(
            "notification_published",
            notification_id=payload.get("notificationId"),
            channel=self.channel,
            receivers=receivers,
        )
