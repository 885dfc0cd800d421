"""
Cancellation and FIFO waitlist promotion.

Cancelling a confirmed registration frees a seat; in the same transaction the
oldest waitlisted registration (smallest registered_at, then id) takes it.
The event's ledger row stays locked from before the cancellation until
commit, so two cancellations on one event run one after the other and each
promotes whoever is at the front of the queue at that moment, never a
snapshot taken before the other committed.

Cancelling a waitlisted registration holds no seat and promotes nobody.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.core.config import RegistrationPolicy
from eventreg.core.exceptions import DeadlinePassed, NotRegistered, RegistrationError
from eventreg.core.logging import get_logger
from eventreg.core.metrics import record_registration_outcome, registration_latency, waitlist_promotions
from eventreg.core.security import Principal
from eventreg.models.event import Event
from eventreg.models.registration import Registration, RegistrationStatus
from eventreg.services.admission_service import find_registration
from eventreg.services.capacity_ledger import SeatReservation, lock_ledger, release_seat, try_reserve_seat
from eventreg.services.deadline import is_cancellation_open
from eventreg.services.event_catalog import get_published_event
from eventreg.services.notification_service import enqueue_cancellation, enqueue_promotion
from eventreg.services.transaction import run_in_transaction

logger = get_logger(__name__)


@dataclass
class Promotion:
    registration: Registration
    notification_id: Optional[int] = None


@dataclass
class CancellationOutcome:
    registration: Registration
    event: Event
    promoted: Optional[Registration] = None
    notification_ids: list[int] = field(default_factory=list)


async def next_in_line(db: AsyncSession, event_id: int) -> Optional[Registration]:
    result = await db.execute(
        select(Registration)
        .where(
            Registration.event_id == event_id,
            Registration.status == RegistrationStatus.WAITLISTED,
        )
        .order_by(Registration.registered_at.asc(), Registration.id.asc())
        .limit(1)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def promote_next(db: AsyncSession, event: Event, actor_id: Optional[int]) -> Optional[Promotion]:
    """Move the front of the waitlist into a free seat. Caller holds the ledger lock."""
    candidate = await next_in_line(db, event.id)
    if candidate is None:
        logger.info("seat_released_no_waitlist", event_id=event.id)
        return None

    reservation = await try_reserve_seat(db, event.id, event.max_participants)
    if reservation is not SeatReservation.RESERVED:
        # Only possible when capacity was lowered below the confirmed count
        logger.warning(
            "promotion_skipped_no_seat",
            event_id=event.id,
            registration_id=candidate.id,
            capacity=event.max_participants,
        )
        return None

    candidate.transition_to(RegistrationStatus.CONFIRMED)
    notification = enqueue_promotion(db, event, candidate, actor_id)
    await db.flush()

    waitlist_promotions.inc()
    logger.info(
        "waitlist_promoted",
        event_id=event.id,
        registration_id=candidate.id,
        user_id=candidate.user_id,
    )
    return Promotion(registration=candidate, notification_id=notification.id)


async def on_cancel(
    db: AsyncSession,
    event: Event,
    cancelled: Registration,
    prior_status: RegistrationStatus,
    actor_id: Optional[int],
) -> Optional[Promotion]:
    """Release the cancelled seat and hand it to the waitlist. No-op unless it was confirmed."""
    if prior_status is not RegistrationStatus.CONFIRMED:
        return None

    await release_seat(db, event.id)
    logger.debug("seat_released", event_id=event.id, registration_id=cancelled.id)
    return await promote_next(db, event, actor_id)


async def cancel_registration(
    db: AsyncSession,
    event_id: int,
    principal: Principal,
    policy: RegistrationPolicy,
) -> CancellationOutcome:
    """Cancel the caller's active registration, promoting from the waitlist. Commits on success."""

    async def cancel() -> CancellationOutcome:
        event = await get_published_event(db, event_id)

        if not is_cancellation_open(event.registration_deadline, policy):
            raise DeadlinePassed("Registration cancellation deadline has passed")

        registration = await find_registration(db, event_id, principal.id)
        if not registration or not registration.is_active:
            raise NotRegistered()

        await lock_ledger(db, event.id)

        # Re-read under the lock; a concurrent cancel may have won
        registration = await find_registration(db, event_id, principal.id, for_update=True)
        if not registration or not registration.is_active:
            raise NotRegistered()

        prior_status = registration.status
        registration.transition_to(RegistrationStatus.CANCELLED)
        cancellation = enqueue_cancellation(db, event, registration)

        promotion = await on_cancel(db, event, registration, prior_status, principal.id)
        await db.flush()

        notification_ids = [cancellation.id]
        if promotion is not None:
            notification_ids.append(promotion.notification_id)

        return CancellationOutcome(
            registration=registration,
            event=event,
            promoted=promotion.registration if promotion else None,
            notification_ids=notification_ids,
        )

    with registration_latency.labels(operation="cancel").time():
        try:
            outcome = await run_in_transaction(db, cancel, policy, operation="cancel")
        except RegistrationError as e:
            record_registration_outcome("rejected" if e.status_code < 500 else "error")
            logger.info("cancellation_rejected", event_id=event_id, user_id=principal.id, reason=e.code)
            raise

    record_registration_outcome("cancelled")
    logger.info(
        "registration_cancelled",
        event_id=event_id,
        user_id=principal.id,
        registration_id=outcome.registration.id,
        promoted_registration_id=outcome.promoted.id if outcome.promoted else None,
    )
    return outcome
