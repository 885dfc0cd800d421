"""
Read access to the event catalog. Events are authored elsewhere; this module
only answers "may this event take registrations".
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.core.exceptions import EventNotEligible, EventNotFound, RegistrationNotRequired
from eventreg.models.event import EVENT_STATUS_PUBLISHED, Event


async def find_published_event(db: AsyncSession, event_id: int) -> Optional[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id, Event.status == EVENT_STATUS_PUBLISHED)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_published_event(db: AsyncSession, event_id: int) -> Event:
    """Published event or EventNotFound. Used by cancellation."""
    event = await find_published_event(db, event_id)
    if not event:
        raise EventNotFound()
    return event


async def get_registrable_event(db: AsyncSession, event_id: int) -> Event:
    """Published event that requires registration, or EventNotEligible. Used by admission."""
    event = await find_published_event(db, event_id)
    if not event or not event.registration_required:
        raise EventNotEligible()
    return event


async def get_event_for_status(db: AsyncSession, event_id: int) -> Event:
    """Status view: unknown/unpublished is 404, registration not required is 400."""
    event = await get_published_event(db, event_id)
    if not event.registration_required:
        raise RegistrationNotRequired()
    return event
