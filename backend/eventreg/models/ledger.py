"""
Capacity ledger: one row per event holding the authoritative confirmed count.

The row doubles as the per-event lock. Admission and cancellation lock it
(SELECT ... FOR UPDATE) before reading anything else, and seat changes are
single conditional UPDATEs against `confirmed_count`. Capacity itself is not
copied here; it is read from the event inside the same transaction.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, func

from eventreg.db.base import Base


class CapacityLedger(Base):
    __tablename__ = "capacity_ledger"

    event_id = Column(Integer, ForeignKey("events.id"), primary_key=True)
    confirmed_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("confirmed_count >= 0", name="check_confirmed_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<CapacityLedger(event={self.event_id}, confirmed={self.confirmed_count}, v={self.version})>"
