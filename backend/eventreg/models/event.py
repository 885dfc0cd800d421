"""
Event model: the registration-relevant slice of the event catalog.

Events are authored elsewhere; this service only reads them. Key columns:
- `status` must be 'published' for any registration activity
- `max_participants` NULL means unlimited capacity
- `registration_deadline` NULL means registration never closes
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from eventreg.db.base import Base, TimestampMixin

EVENT_STATUS_PUBLISHED = "published"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    registration_required = Column(Boolean, nullable=False, default=False)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)

    registrations = relationship("Registration", back_populates="event", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "max_participants IS NULL OR max_participants >= 0",
            name="check_max_participants_non_negative",
        ),
        Index("ix_events_status", "status"),
    )

    @property
    def is_published(self) -> bool:
        return self.status == EVENT_STATUS_PUBLISHED

    @property
    def has_capacity_limit(self) -> bool:
        return self.max_participants is not None

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, status={self.status}, max={self.max_participants})>"
