"""
Tests for the capacity ledger primitives.
"""

import pytest

from eventreg.models.registration import Registration, RegistrationStatus
from eventreg.services.capacity_ledger import (
    SeatReservation,
    get_confirmed_count,
    lock_ledger,
    reconcile_ledger,
    release_seat,
    try_reserve_seat,
)


@pytest.mark.asyncio
async def test_lock_creates_ledger_row(session_factory, make_event, fetch):
    """First use creates an empty ledger row for the event."""
    event = await make_event(max_participants=3)

    async with session_factory() as db:
        ledger = await lock_ledger(db, event.id)
        assert ledger.confirmed_count == 0
        await db.commit()

    stored = await fetch.ledger(event.id)
    assert stored is not None
    assert stored.confirmed_count == 0


@pytest.mark.asyncio
async def test_reserve_until_full(session_factory, make_event, fetch):
    """Reservations succeed up to capacity and then report no seat."""
    event = await make_event(max_participants=2)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        results = [await try_reserve_seat(db, event.id, 2) for _ in range(3)]
        await db.commit()

    assert results == [
        SeatReservation.RESERVED,
        SeatReservation.RESERVED,
        SeatReservation.NO_SEAT_AVAILABLE,
    ]
    assert (await fetch.ledger(event.id)).confirmed_count == 2


@pytest.mark.asyncio
async def test_unlimited_capacity_always_reserves(session_factory, make_event, fetch):
    event = await make_event(max_participants=None)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        results = {await try_reserve_seat(db, event.id, None) for _ in range(25)}
        await db.commit()

    assert results == {SeatReservation.RESERVED}
    assert (await fetch.ledger(event.id)).confirmed_count == 25


@pytest.mark.asyncio
async def test_release_frees_a_seat(session_factory, make_event, fetch):
    event = await make_event(max_participants=1)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        assert await try_reserve_seat(db, event.id, 1) is SeatReservation.RESERVED
        await release_seat(db, event.id)
        assert await try_reserve_seat(db, event.id, 1) is SeatReservation.RESERVED
        await db.commit()

    ledger = await fetch.ledger(event.id)
    assert ledger.confirmed_count == 1
    assert ledger.version == 4


@pytest.mark.asyncio
async def test_release_never_goes_negative(session_factory, make_event, fetch):
    event = await make_event(max_participants=1)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        await release_seat(db, event.id)
        await db.commit()

    assert (await fetch.ledger(event.id)).confirmed_count == 0


@pytest.mark.asyncio
async def test_rollback_discards_reservation(session_factory, make_event, fetch):
    """A reservation inside a rolled-back transaction never happened."""
    event = await make_event(max_participants=1)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        await db.commit()

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        await try_reserve_seat(db, event.id, 1)
        await db.rollback()

    assert (await fetch.ledger(event.id)).confirmed_count == 0


@pytest.mark.asyncio
async def test_ledger_seeded_from_existing_confirmed_rows(session_factory, make_event, fetch):
    """Events with registrations from before the ledger existed start with the right count."""
    event = await make_event(max_participants=5)

    async with session_factory() as db:
        db.add_all([
            Registration.open(RegistrationStatus.CONFIRMED, event_id=event.id, user_id=1),
            Registration.open(RegistrationStatus.CONFIRMED, event_id=event.id, user_id=2),
            Registration.open(RegistrationStatus.WAITLISTED, event_id=event.id, user_id=3),
        ])
        await db.commit()

    async with session_factory() as db:
        assert await get_confirmed_count(db, event.id) == 2
        ledger = await lock_ledger(db, event.id)
        assert ledger.confirmed_count == 2
        await db.commit()


@pytest.mark.asyncio
async def test_reconcile_corrects_drift(session_factory, make_event, fetch):
    event = await make_event(max_participants=5)

    async with session_factory() as db:
        await lock_ledger(db, event.id)
        for _ in range(3):
            await try_reserve_seat(db, event.id, 5)
        db.add(Registration.open(RegistrationStatus.CONFIRMED, event_id=event.id, user_id=1))
        await db.commit()

    async with session_factory() as db:
        ledger = await reconcile_ledger(db, event.id)
        assert ledger.confirmed_count == 1
        await db.commit()

    assert (await fetch.ledger(event.id)).confirmed_count == 1


@pytest.mark.asyncio
async def test_events_have_independent_ledgers(session_factory, make_event, fetch):
    first = await make_event(max_participants=1)
    second = await make_event(max_participants=1)

    async with session_factory() as db:
        await lock_ledger(db, first.id)
        await lock_ledger(db, second.id)
        assert await try_reserve_seat(db, first.id, 1) is SeatReservation.RESERVED
        assert await try_reserve_seat(db, second.id, 1) is SeatReservation.RESERVED
        await db.commit()

    assert (await fetch.ledger(first.id)).confirmed_count == 1
    assert (await fetch.ledger(second.id)).confirmed_count == 1
