"""
Capacity ledger: the only place confirmed seats are counted.

CONCURRENCY STRATEGY: Row lock + conditional UPDATE
===================================================

Problem:
  Two users register for the last seat simultaneously.
  Both COUNT confirmed registrations, both see one seat left, both commit
  as confirmed. Result: overbooking.

Solution:
  Every event has one capacity_ledger row.

  1. lock_ledger() takes SELECT ... FOR UPDATE on that row. It is held until
     the surrounding transaction commits or rolls back, so admission,
     cancellation and promotion for one event are serialized.
  2. try_reserve_seat() is a single statement:
       UPDATE capacity_ledger
          SET confirmed_count = confirmed_count + 1, version = version + 1
        WHERE event_id = :event_id AND confirmed_count < :capacity
     rowcount 1 means the seat is ours, 0 means the event is full.
  3. The CHECK (confirmed_count >= 0) constraint and the conditional
     decrement in release_seat() keep the counter from going negative.

  Different events never touch the same row, so there is no global lock.

Callers must hold the lock (lock_ledger) before reserving or releasing;
lock_ledger also creates the row on first use.
"""

import enum
from typing import Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.core.logging import get_logger
from eventreg.core.metrics import record_ledger_operation
from eventreg.models.ledger import CapacityLedger
from eventreg.models.registration import Registration, RegistrationStatus

logger = get_logger(__name__)


class SeatReservation(str, enum.Enum):
    RESERVED = "reserved"
    NO_SEAT_AVAILABLE = "no_seat_available"


def _insert_ignoring_conflicts(db: AsyncSession, **values):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        return pg_insert(CapacityLedger).values(**values).on_conflict_do_nothing(index_elements=["event_id"])
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert(CapacityLedger).values(**values).on_conflict_do_nothing(index_elements=["event_id"])
    # Other backends surface the race as IntegrityError, which the transaction runner retries
    return insert(CapacityLedger).values(**values)


async def count_confirmed(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.event_id == event_id,
            Registration.status == RegistrationStatus.CONFIRMED,
        )
    )
    return result.scalar_one()


async def ensure_ledger(db: AsyncSession, event_id: int) -> None:
    """Create the ledger row if missing, seeded from existing confirmed registrations."""
    existing = await db.execute(
        select(CapacityLedger.event_id).where(CapacityLedger.event_id == event_id)
    )
    if existing.scalar_one_or_none() is not None:
        return

    confirmed = await count_confirmed(db, event_id)
    await db.execute(
        _insert_ignoring_conflicts(db, event_id=event_id, confirmed_count=confirmed, version=1)
    )
    logger.info("ledger_created", event_id=event_id, confirmed_count=confirmed)


async def lock_ledger(db: AsyncSession, event_id: int) -> CapacityLedger:
    """Lock the event's ledger row for the rest of the transaction."""
    await ensure_ledger(db, event_id)
    result = await db.execute(
        select(CapacityLedger)
        .where(CapacityLedger.event_id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def try_reserve_seat(
    db: AsyncSession,
    event_id: int,
    capacity: Optional[int],
) -> SeatReservation:
    """
    Atomically claim one confirmed seat.
    capacity=None is unlimited: the seat is always reserved (and still counted).
    """
    conditions = [CapacityLedger.event_id == event_id]
    if capacity is not None:
        conditions.append(CapacityLedger.confirmed_count < capacity)

    result = await db.execute(
        update(CapacityLedger)
        .where(*conditions)
        .values(
            confirmed_count=CapacityLedger.confirmed_count + 1,
            version=CapacityLedger.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        record_ledger_operation("reserve", "reserved")
        return SeatReservation.RESERVED

    record_ledger_operation("reserve", "full")
    logger.debug("ledger_full", event_id=event_id, capacity=capacity)
    return SeatReservation.NO_SEAT_AVAILABLE


async def release_seat(db: AsyncSession, event_id: int) -> None:
    """Give back one confirmed seat. Never drives the counter below zero."""
    result = await db.execute(
        update(CapacityLedger)
        .where(
            CapacityLedger.event_id == event_id,
            CapacityLedger.confirmed_count > 0,
        )
        .values(
            confirmed_count=CapacityLedger.confirmed_count - 1,
            version=CapacityLedger.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        record_ledger_operation("release", "released")
    else:
        record_ledger_operation("release", "noop")
        logger.warning("ledger_release_noop", event_id=event_id)


async def get_confirmed_count(db: AsyncSession, event_id: int) -> int:
    """Display read. Not linearizable with concurrent admissions."""
    result = await db.execute(
        select(CapacityLedger.confirmed_count).where(CapacityLedger.event_id == event_id)
    )
    confirmed = result.scalar_one_or_none()
    if confirmed is None:
        return await count_confirmed(db, event_id)
    return confirmed


async def reconcile_ledger(db: AsyncSession, event_id: int) -> CapacityLedger:
    """
    Recount confirmed registrations under the lock and overwrite the ledger.
    Repair tool for drift (e.g. rows edited outside this service). Caller commits.
    """
    ledger = await lock_ledger(db, event_id)
    actual = await count_confirmed(db, event_id)
    if ledger.confirmed_count != actual:
        logger.warning(
            "ledger_drift_corrected",
            event_id=event_id,
            ledger_count=ledger.confirmed_count,
            actual_count=actual,
        )
        ledger.confirmed_count = actual
        ledger.version = ledger.version + 1
        await db.flush()
    return ledger
