"""
Notification outbox.

Rows are written inside the registration transaction and delivered to the
notification sink after commit. A failed delivery only changes the row's
status; the registration it describes is never touched.
"""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text

from eventreg.db.base import Base, TimestampMixin

OUTBOX_PENDING = "pending"
OUTBOX_DELIVERED = "delivered"
OUTBOX_FAILED = "failed"


class NotificationType:
    REGISTRATION_CONFIRMED = "registration_confirmed"
    REGISTRATION_WAITLIST = "registration_waitlist"
    REGISTRATION_CANCELLED = "registration_cancelled"
    WAITLIST_PROMOTED = "waitlist_promoted"


RECIPIENT_SPECIFIC_USERS = "specific_users"


class EventNotification(Base, TimestampMixin):
    __tablename__ = "event_notifications"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    recipient_type = Column(String(30), nullable=False, default=RECIPIENT_SPECIFIC_USERS)
    recipient_ids = Column(JSON, nullable=False, default=list)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    recipient_count = Column(Integer, nullable=False, default=1)
    created_by = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=OUTBOX_PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')",
            name="check_notification_status",
        ),
        Index("ix_event_notifications_status_id", "status", "id"),
    )

    def to_payload(self) -> dict:
        """Wire shape handed to the notification sink."""
        return {
            "notificationId": self.id,
            "eventId": self.event_id,
            "type": self.type,
            "recipientType": self.recipient_type,
            "recipientIds": list(self.recipient_ids or []),
            "title": self.title,
            "message": self.message,
            "recipientCount": self.recipient_count,
            "createdBy": self.created_by,
        }

    def __repr__(self) -> str:
        return f"<EventNotification(id={self.id}, event={self.event_id}, type={self.type}, status={self.status})>"
