"""
Registration admission: decides whether a registration is confirmed or
waitlisted.

Preconditions, checked in order, each with its own error:
  1. event is published and requires registration    -> EventNotEligible (404)
  2. registration deadline has not passed             -> DeadlinePassed (400)
  3. caller has no confirmed/waitlisted registration  -> AlreadyRegistered (400)

The seat decision never reads a count and writes a status in two
uncoordinated steps. Inside one transaction we lock the event's ledger row,
re-check the caller's registration under that lock, then claim a seat with a
single conditional UPDATE (see capacity_ledger). Losing the seat race means
waiting_list, never an overbooked event. Lock contention is retried by the
transaction runner and is invisible to the caller unless retries run out.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.core.config import RegistrationPolicy
from eventreg.core.exceptions import AlreadyRegistered, DeadlinePassed, RegistrationError
from eventreg.core.logging import get_logger
from eventreg.core.metrics import record_registration_outcome, registration_latency
from eventreg.core.security import Principal
from eventreg.models.event import Event
from eventreg.models.registration import Registration, RegistrationStatus
from eventreg.schemas.registration import ParticipantInfo
from eventreg.services.cache_service import get_cached_summary, set_cached_summary
from eventreg.services.capacity_ledger import SeatReservation, get_confirmed_count, lock_ledger, try_reserve_seat
from eventreg.services.deadline import is_cancellation_open, is_registration_open
from eventreg.services.event_catalog import get_event_for_status, get_registrable_event
from eventreg.services.notification_service import enqueue_registration_outcome
from eventreg.services.transaction import run_in_transaction

logger = get_logger(__name__)


@dataclass
class RegistrationOutcome:
    registration: Registration
    event: Event
    notification_ids: list[int] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        return self.registration.status == RegistrationStatus.CONFIRMED


@dataclass
class RegistrationOverview:
    event: Event
    registration: Optional[Registration]
    registration_count: int
    spots_available: Optional[int]
    is_registration_open: bool
    can_register: bool
    can_cancel_registration: bool
    waitlist_position: Optional[int] = None


async def find_registration(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    for_update: bool = False,
) -> Optional[Registration]:
    query = (
        select(Registration)
        .where(Registration.event_id == event_id, Registration.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _participant_fields(info: ParticipantInfo, principal: Principal) -> dict:
    return {
        "participant_name": info.participant_name or principal.display_name,
        "participant_email": info.participant_email or principal.email,
        "participant_phone": info.participant_phone,
        "grade": info.grade,
        "special_requests": info.special_requests,
    }


async def register_participant(
    db: AsyncSession,
    event_id: int,
    principal: Principal,
    info: ParticipantInfo,
    policy: RegistrationPolicy,
) -> RegistrationOutcome:
    """Admit the caller as confirmed or waitlisted. Commits on success."""

    async def admit() -> RegistrationOutcome:
        event = await get_registrable_event(db, event_id)

        if not is_registration_open(event.registration_deadline):
            raise DeadlinePassed()

        existing = await find_registration(db, event_id, principal.id)
        if existing and existing.is_active:
            raise AlreadyRegistered()

        await lock_ledger(db, event.id)

        # A concurrent request from the same user may have committed while we waited
        existing = await find_registration(db, event_id, principal.id, for_update=True)
        if existing and existing.is_active:
            raise AlreadyRegistered()

        reservation = await try_reserve_seat(db, event.id, event.max_participants)
        status = (
            RegistrationStatus.CONFIRMED
            if reservation is SeatReservation.RESERVED
            else RegistrationStatus.WAITLISTED
        )

        now = datetime.now(timezone.utc)
        fields = _participant_fields(info, principal)

        if existing is None:
            registration = Registration.open(
                status,
                event_id=event.id,
                user_id=principal.id,
                registered_at=now,
                **fields,
            )
            db.add(registration)
        else:
            # Reactivate the cancelled row instead of inserting a second one
            existing.transition_to(status)
            for name, value in fields.items():
                setattr(existing, name, value)
            if not policy.preserve_queue_position_on_reactivation:
                existing.registered_at = now
            registration = existing

        notification = enqueue_registration_outcome(db, event, registration)
        await db.flush()
        return RegistrationOutcome(
            registration=registration,
            event=event,
            notification_ids=[notification.id],
        )

    with registration_latency.labels(operation="register").time():
        try:
            outcome = await run_in_transaction(db, admit, policy, operation="register")
        except RegistrationError as e:
            record_registration_outcome("rejected" if e.status_code < 500 else "error")
            logger.info("registration_rejected", event_id=event_id, user_id=principal.id, reason=e.code)
            raise

    registration = outcome.registration
    record_registration_outcome("confirmed" if outcome.confirmed else "waitlisted")
    logger.info(
        "registration_confirmed" if outcome.confirmed else "registration_waitlisted",
        event_id=event_id,
        user_id=principal.id,
        registration_id=registration.id,
        capacity=outcome.event.max_participants,
    )
    return outcome


async def get_waitlist_position(db: AsyncSession, registration: Registration) -> Optional[int]:
    """1-based position in the FIFO waitlist, None when not waitlisted."""
    if registration.status != RegistrationStatus.WAITLISTED:
        return None
    result = await db.execute(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.event_id == registration.event_id,
            Registration.status == RegistrationStatus.WAITLISTED,
            or_(
                Registration.registered_at < registration.registered_at,
                and_(
                    Registration.registered_at == registration.registered_at,
                    Registration.id < registration.id,
                ),
            ),
        )
    )
    return result.scalar_one() + 1


async def get_registration_count(db: AsyncSession, event_id: int) -> int:
    """Confirmed count for display; may come from the cache and lag behind writes."""
    cached = await get_cached_summary(event_id)
    if cached is not None:
        return cached["registrationCount"]

    count = await get_confirmed_count(db, event_id)
    await set_cached_summary(event_id, {"registrationCount": count})
    return count


async def get_registration_overview(
    db: AsyncSession,
    event_id: int,
    principal: Principal,
    policy: RegistrationPolicy,
) -> RegistrationOverview:
    event = await get_event_for_status(db, event_id)
    registration = await find_registration(db, event_id, principal.id)

    registration_count = await get_registration_count(db, event.id)
    spots_available = (
        max(event.max_participants - registration_count, 0)
        if event.max_participants is not None
        else None
    )
    registration_open = is_registration_open(event.registration_deadline)
    active = registration is not None and registration.is_active

    waitlist_position = None
    if registration is not None:
        waitlist_position = await get_waitlist_position(db, registration)

    return RegistrationOverview(
        event=event,
        registration=registration,
        registration_count=registration_count,
        spots_available=spots_available,
        is_registration_open=registration_open,
        # A full event still accepts registrations onto the waitlist
        can_register=registration_open and not active,
        can_cancel_registration=active and is_cancellation_open(event.registration_deadline, policy),
        waitlist_position=waitlist_position,
    )
