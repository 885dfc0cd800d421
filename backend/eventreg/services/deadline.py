"""
Registration deadline gate.

Pure predicates: no I/O, `now` is injectable for tests. Naive timestamps
(SQLite drops tzinfo) are read as UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from eventreg.core.config import RegistrationPolicy


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_registration_open(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when there is no deadline or the deadline is still in the future."""
    if deadline is None:
        return True
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return _as_utc(deadline) > now


def is_cancellation_open(
    deadline: Optional[datetime],
    policy: RegistrationPolicy,
    now: Optional[datetime] = None,
) -> bool:
    if policy.allow_cancel_after_deadline:
        return True
    return is_registration_open(deadline, now)
