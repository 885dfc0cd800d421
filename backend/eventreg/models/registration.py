"""
Registration model linking a user to an event.

Key design decisions:
- Unique constraint on (event_id, user_id): one row per pair for the lifetime
  of the event. Cancelling flips the status, re-registering reactivates the
  same row, so "at most one active registration" holds structurally.
- `status` is a RegistrationStatus enum; every change goes through
  `transition_to`, which enforces the allowed state machine.
- `registered_at` orders the waitlist (ties broken by id).
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from eventreg.core.exceptions import InvalidTransition
from eventreg.db.base import Base, TimestampMixin


class RegistrationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waiting_list"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self is not RegistrationStatus.CANCELLED


# None is the state of a registration that does not exist yet
ALLOWED_TRANSITIONS = {
    None: frozenset({RegistrationStatus.CONFIRMED, RegistrationStatus.WAITLISTED}),
    RegistrationStatus.CONFIRMED: frozenset({RegistrationStatus.CANCELLED}),
    RegistrationStatus.WAITLISTED: frozenset({RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED}),
    RegistrationStatus.CANCELLED: frozenset({RegistrationStatus.CONFIRMED, RegistrationStatus.WAITLISTED}),
}


def can_transition(current, target: RegistrationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class Registration(Base, TimestampMixin):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    status = Column(
        Enum(
            RegistrationStatus,
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
            validate_strings=True,
        ),
        nullable=False,
    )

    participant_name = Column(String(255), nullable=True)
    participant_email = Column(String(255), nullable=True)
    participant_phone = Column(String(50), nullable=True)
    grade = Column(String(50), nullable=True)
    special_requests = Column(Text, nullable=True)

    registered_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_user_registration"),
        CheckConstraint(
            "status IN ('confirmed', 'waiting_list', 'cancelled')",
            name="check_registration_status",
        ),
        # Covers "oldest waitlisted registration for this event"
        Index("ix_registrations_waitlist", "event_id", "status", "registered_at"),
    )

    @classmethod
    def open(cls, status: RegistrationStatus, **fields) -> "Registration":
        """Create a new registration in its initial state."""
        if not can_transition(None, status):
            raise InvalidTransition(None, status)
        return cls(status=status, **fields)

    def transition_to(self, target: RegistrationStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransition(self.status, target)
        self.status = target

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"
