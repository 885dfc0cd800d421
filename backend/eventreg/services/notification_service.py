"""
Notification emission through a transactional outbox.

Writing side (inside the registration transaction):
  enqueue_* helpers add an EventNotification row to the session. The row
  commits or rolls back together with the registration change it describes,
  so a notification can never announce a transition that did not happen.

Delivery side (after commit):
  deliver_pending() loads pending rows in a fresh session and hands each
  payload to the configured sink. A sink failure marks that row 'failed' and
  logs a warning; it is not retried and never reaches the API caller.
  dispatch_notifications() is the fire-and-forget wrapper scheduled as a
  background task by the routes; run_outbox_relay() is an optional periodic
  sweep for rows left pending (e.g. the process died between commit and
  dispatch).
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventreg.core.logging import get_logger
from eventreg.core.metrics import record_notification_delivery
from eventreg.models.event import Event
from eventreg.models.notification import (
    OUTBOX_DELIVERED,
    OUTBOX_FAILED,
    OUTBOX_PENDING,
    RECIPIENT_SPECIFIC_USERS,
    EventNotification,
    NotificationType,
)
from eventreg.models.registration import Registration, RegistrationStatus
from eventreg.services.interfaces.notification_sink import NotificationSink

logger = get_logger(__name__)


def _enqueue(
    db: AsyncSession,
    *,
    event: Event,
    type: str,
    recipient_id: int,
    title: str,
    message: str,
    created_by: Optional[int],
) -> EventNotification:
    notification = EventNotification(
        event_id=event.id,
        type=type,
        recipient_type=RECIPIENT_SPECIFIC_USERS,
        recipient_ids=[recipient_id],
        title=title,
        message=message,
        recipient_count=1,
        created_by=created_by,
        status=OUTBOX_PENDING,
        attempts=0,
    )
    db.add(notification)
    return notification


def enqueue_registration_outcome(
    db: AsyncSession, event: Event, registration: Registration
) -> EventNotification:
    if registration.status == RegistrationStatus.CONFIRMED:
        return _enqueue(
            db,
            event=event,
            type=NotificationType.REGISTRATION_CONFIRMED,
            recipient_id=registration.user_id,
            title=f"Registration Confirmed: {event.title}",
            message=(
                f"You have successfully registered for {event.title}. "
                "We look forward to your participation!"
            ),
            created_by=registration.user_id,
        )
    return _enqueue(
        db,
        event=event,
        type=NotificationType.REGISTRATION_WAITLIST,
        recipient_id=registration.user_id,
        title=f"Waiting List: {event.title}",
        message=(
            f"You have been added to the waiting list for {event.title}. "
            "We will notify you immediately if a spot becomes available."
        ),
        created_by=registration.user_id,
    )


def enqueue_cancellation(
    db: AsyncSession, event: Event, registration: Registration
) -> EventNotification:
    return _enqueue(
        db,
        event=event,
        type=NotificationType.REGISTRATION_CANCELLED,
        recipient_id=registration.user_id,
        title=f"Registration Cancelled: {event.title}",
        message=f"Your registration for {event.title} has been cancelled.",
        created_by=registration.user_id,
    )


def enqueue_promotion(
    db: AsyncSession, event: Event, promoted: Registration, actor_id: Optional[int]
) -> EventNotification:
    return _enqueue(
        db,
        event=event,
        type=NotificationType.WAITLIST_PROMOTED,
        recipient_id=promoted.user_id,
        title=f"Waiting List Promotion: {event.title}",
        message=(
            "Good news! You have been moved from the waiting list to confirmed "
            f"registration for {event.title}. We look forward to your participation!"
        ),
        created_by=actor_id,
    )


@dataclass
class DeliveryReport:
    delivered: int = 0
    failed: int = 0


async def deliver_pending(
    session_factory: async_sessionmaker[AsyncSession],
    sink: NotificationSink,
    ids: Optional[Iterable[int]] = None,
    batch_size: int = 50,
) -> DeliveryReport:
    """Deliver pending outbox rows (optionally only the given ids) to the sink."""
    report = DeliveryReport()

    async with session_factory() as db:
        query = (
            select(EventNotification)
            .where(EventNotification.status == OUTBOX_PENDING)
            .order_by(EventNotification.id.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        if ids is not None:
            query = query.where(EventNotification.id.in_(list(ids)))

        result = await db.execute(query)
        notifications = list(result.scalars().all())

        for notification in notifications:
            notification.attempts += 1
            try:
                await sink.send(notification.to_payload())
            except Exception as e:
                notification.status = OUTBOX_FAILED
                notification.last_error = f"{type(e).__name__}: {e}"[:1000]
                report.failed += 1
                record_notification_delivery(sink.name, delivered=False)
                logger.warning(
                    "notification_delivery_failed",
                    notification_id=notification.id,
                    event_id=notification.event_id,
                    type=notification.type,
                    sink=sink.name,
                    error=str(e),
                )
                continue

            notification.status = OUTBOX_DELIVERED
            notification.delivered_at = datetime.now(timezone.utc)
            report.delivered += 1
            record_notification_delivery(sink.name, delivered=True)

        await db.commit()

    if notifications:
        logger.info(
            "notifications_dispatched",
            delivered=report.delivered,
            failed=report.failed,
            sink=sink.name,
        )
    return report


async def dispatch_notifications(
    session_factory: async_sessionmaker[AsyncSession],
    sink: NotificationSink,
    ids: list[int],
) -> None:
    """Background-task entry point. Never raises: the request has already succeeded."""
    if not ids:
        return
    try:
        await deliver_pending(session_factory, sink, ids=ids, batch_size=len(ids))
    except Exception as e:
        logger.warning("notification_dispatch_error", notification_ids=ids, error=str(e))


async def run_outbox_relay(
    session_factory: async_sessionmaker[AsyncSession],
    sink: NotificationSink,
    interval: float,
    batch_size: int = 50,
) -> None:
    """Periodically deliver rows still pending. Runs until cancelled."""
    logger.info("outbox_relay_started", interval=interval, sink=sink.name)
    while True:
        try:
            await deliver_pending(session_factory, sink, batch_size=batch_size)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("outbox_relay_error", error=str(e))
        await asyncio.sleep(interval)
