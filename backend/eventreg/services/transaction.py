"""
Transaction runner with bounded retry on ledger contention.

A unit of work is an async callable that performs reads and writes on the
session without committing. The runner commits it, and on a transient
database conflict rolls back and runs it again from scratch with exponential
backoff. Business errors roll back and propagate unchanged. Anything else
rolls back and surfaces as InternalError, so callers never observe a partial
transaction.

What counts as transient:
  - OperationalError: lock timeouts, "database is locked" on SQLite,
    serialization failures / deadlocks on PostgreSQL (SQLSTATE 40001, 40P01)
  - IntegrityError: two first-time registrations for the same (event, user)
    or two first-time ledger inserts racing. On retry the losing side re-reads
    committed state and fails with the proper business error instead.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.core.config import RegistrationPolicy
from eventreg.core.exceptions import InternalError, RegistrationError, TransientConflict
from eventreg.core.logging import get_logger
from eventreg.core.metrics import ledger_retries

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TransientConflict):
        return True
    if isinstance(exc, (OperationalError, IntegrityError)):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return sqlstate in TRANSIENT_SQLSTATES
    return False


def backoff_delay(attempt: int, base: float) -> float:
    """Exponential backoff with full jitter on the upper half."""
    ceiling = base * (2 ** (attempt - 1))
    return ceiling / 2 + random.uniform(0, ceiling / 2)


async def run_in_transaction(
    db: AsyncSession,
    unit_of_work: Callable[[], Awaitable[T]],
    policy: RegistrationPolicy,
    operation: str,
) -> T:
    max_attempts = max(policy.max_retries, 1)

    for attempt in range(1, max_attempts + 1):
        try:
            result = await unit_of_work()
            await db.commit()
            return result

        except RegistrationError:
            await db.rollback()
            raise

        except SQLAlchemyError as e:
            await db.rollback()
            if not is_transient(e):
                logger.error("transaction_failed", operation=operation, error=str(e))
                raise InternalError() from e

            ledger_retries.inc()
            if attempt == max_attempts:
                logger.error(
                    "transaction_retries_exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(e),
                )
                raise InternalError() from e

            delay = backoff_delay(attempt, policy.retry_backoff_seconds)
            logger.info(
                "ledger_conflict_retry",
                operation=operation,
                attempt=attempt,
                delay_ms=round(delay * 1000, 2),
                reason=type(e).__name__,
            )
            await asyncio.sleep(delay)

        except TransientConflict as e:
            await db.rollback()
            ledger_retries.inc()
            if attempt == max_attempts:
                raise InternalError() from e
            await asyncio.sleep(backoff_delay(attempt, policy.retry_backoff_seconds))

    # Should not reach here, but just in case
    raise InternalError()
