"""Initial schema: events, registrations, capacity ledger, notification outbox.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Events table (registration-relevant slice of the event catalog)
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("registration_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "max_participants IS NULL OR max_participants >= 0",
            name="check_max_participants_non_negative",
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_status", "events", ["status"])

    # Registrations: one row per (event, user) for life; cancellation is a status
    op.create_table(
        "event_registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("participant_name", sa.String(255), nullable=True),
        sa.Column("participant_email", sa.String(255), nullable=True),
        sa.Column("participant_phone", sa.String(50), nullable=True),
        sa.Column("grade", sa.String(50), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("checked_in", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_user_registration"),
        sa.CheckConstraint(
            "status IN ('confirmed', 'waiting_list', 'cancelled')",
            name="check_registration_status",
        ),
    )
    op.create_index("ix_event_registrations_id", "event_registrations", ["id"])
    op.create_index("ix_event_registrations_event_id", "event_registrations", ["event_id"])
    op.create_index("ix_event_registrations_user_id", "event_registrations", ["user_id"])
    # WAITLIST INDEX: promotion asks for "oldest waitlisted registration of this
    # event" while holding the ledger lock. This index answers it with one seek.
    op.create_index(
        "ix_registrations_waitlist",
        "event_registrations",
        ["event_id", "status", "registered_at"],
    )

    # Capacity ledger: authoritative confirmed count, one lockable row per event
    op.create_table(
        "capacity_ledger",
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), primary_key=True),
        sa.Column("confirmed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("confirmed_count >= 0", name="check_confirmed_count_non_negative"),
    )

    # Notification outbox
    op.create_table(
        "event_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("recipient_type", sa.String(30), nullable=False),
        sa.Column("recipient_ids", sa.JSON(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')",
            name="check_notification_status",
        ),
    )
    op.create_index("ix_event_notifications_id", "event_notifications", ["id"])
    op.create_index("ix_event_notifications_event_id", "event_notifications", ["event_id"])
    # The relay polls "pending rows in id order"
    op.create_index("ix_event_notifications_status_id", "event_notifications", ["status", "id"])


def downgrade() -> None:
    op.drop_table("event_notifications")
    op.drop_table("capacity_ledger")
    op.drop_table("event_registrations")
    op.drop_table("events")
