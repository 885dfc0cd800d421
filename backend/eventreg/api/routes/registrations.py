"""
Event registration endpoints: status, register, cancel.

Notifications are written to the outbox inside the service transaction and
delivered by a background task after the response, so a slow or failing sink
never delays or fails a registration.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventreg.core.config import RegistrationPolicy, get_policy
from eventreg.core.logging import get_logger
from eventreg.core.security import Principal, get_current_principal
from eventreg.db.session import get_db, get_session_factory
from eventreg.schemas.registration import (
    CancellationResponse,
    ErrorResponse,
    EventRegistrationSummary,
    ParticipantInfo,
    RegistrationCreatedResponse,
    RegistrationDetail,
    RegistrationStatusResponse,
)
from eventreg.services.admission_service import get_registration_overview, register_participant
from eventreg.services.cache_service import invalidate_registration_summary
from eventreg.services.interfaces.notification_sink import NotificationSink
from eventreg.services.notification_service import dispatch_notifications
from eventreg.services.sink_factory import get_notification_sink
from eventreg.services.waitlist_service import cancel_registration

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Registrations"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.get(
    "/{event_id}/registration",
    response_model=RegistrationStatusResponse,
    responses=ERROR_RESPONSES,
)
async def get_registration_status(
    event_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    policy: RegistrationPolicy = Depends(get_policy),
):
    """Caller's registration for the event plus seat availability (may lag slightly)."""
    overview = await get_registration_overview(db, event_id, principal, policy)
    event = overview.event

    registration = None
    if overview.registration is not None:
        registration = RegistrationDetail.model_validate(overview.registration)
        registration.waitlist_position = overview.waitlist_position

    return RegistrationStatusResponse(
        event=EventRegistrationSummary(
            id=event.id,
            title=event.title,
            registration_required=event.registration_required,
            registration_deadline=event.registration_deadline,
            max_participants=event.max_participants,
            registration_count=overview.registration_count,
            spots_available=overview.spots_available,
            is_registration_open=overview.is_registration_open,
        ),
        registration=registration,
        can_register=overview.can_register,
        can_cancel_registration=overview.can_cancel_registration,
    )


@router.post(
    "/{event_id}/registration",
    response_model=RegistrationCreatedResponse,
    responses=ERROR_RESPONSES,
)
async def register_for_event(
    event_id: int,
    background_tasks: BackgroundTasks,
    info: Optional[ParticipantInfo] = Body(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    policy: RegistrationPolicy = Depends(get_policy),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    sink: NotificationSink = Depends(get_notification_sink),
):
    """
    Register for an event.

    Confirmed while seats remain, otherwise placed on the waiting list.
    Concurrent requests for the last seat are serialized on the event's
    capacity ledger, so the event is never overbooked.
    """
    outcome = await register_participant(db, event_id, principal, info or ParticipantInfo(), policy)
    registration = outcome.registration

    await invalidate_registration_summary(event_id)
    background_tasks.add_task(dispatch_notifications, session_factory, sink, outcome.notification_ids)

    return RegistrationCreatedResponse(
        id=registration.id,
        status=registration.status,
        registered_at=registration.registered_at,
        participant_name=registration.participant_name,
        grade=registration.grade,
        message="Registration successful!" if outcome.confirmed else "Added to waiting list",
    )


@router.delete(
    "/{event_id}/registration",
    response_model=CancellationResponse,
    responses=ERROR_RESPONSES,
)
async def cancel_event_registration(
    event_id: int,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    policy: RegistrationPolicy = Depends(get_policy),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    sink: NotificationSink = Depends(get_notification_sink),
):
    """Cancel the caller's registration; a freed seat goes to the oldest waitlisted registration."""
    outcome = await cancel_registration(db, event_id, principal, policy)

    await invalidate_registration_summary(event_id)
    background_tasks.add_task(dispatch_notifications, session_factory, sink, outcome.notification_ids)

    return CancellationResponse(message="Registration cancelled")
