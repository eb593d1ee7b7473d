"""create group reminder tables

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

REMINDER_STATUS = sa.Enum("PENDING", "SENT", "FAILED", name="reminder_status")
ACK_METHOD = sa.Enum("EMAIL", "SMS", "WHATSAPP", "WEB_APP", "MANUAL", name="acknowledgment_method")


def _timestamps():
    return (
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def upgrade() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "group_members",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("whatsapp", sa.String(length=32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])

    op.create_table(
        "calendar_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "reminders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reminder_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("advance_minutes", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", REMINDER_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("advance_minutes >= 0", name="ck_reminders_advance_minutes_non_negative"),
    )
    op.create_index("ix_reminders_event_id", "reminders", ["event_id"])
    op.create_index("ix_reminders_group_id", "reminders", ["group_id"])
    op.create_index("ix_reminders_reminder_time", "reminders", ["reminder_time"])
    op.create_index("ix_reminders_status", "reminders", ["status"])

    op.create_table(
        "acknowledgments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("reminder_id", sa.String(length=36), sa.ForeignKey("reminders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.String(length=36), sa.ForeignKey("group_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("method", ACK_METHOD, nullable=False),
        sa.Column("acknowledged_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_acknowledgments_reminder_id", "acknowledgments", ["reminder_id"])


def downgrade() -> None:
    op.drop_table("acknowledgments")
    op.drop_table("reminders")
    op.drop_table("calendar_events")
    op.drop_table("group_members")
    op.drop_table("groups")
    ACK_METHOD.drop(op.get_bind(), checkfirst=True)
    REMINDER_STATUS.drop(op.get_bind(), checkfirst=True)
