"""Create notifications and notifications_log tables

Revision ID: 004
Revises: 003
Create Date: 2026-09-02 09:30:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create reminder records and the push send log."""
    op.create_table(
        "notifications",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "event_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("notify_date", sa.Date(), nullable=False),
        sa.Column("notification_type", sa.String(20), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "notification_type IN ('day_before', 'event_day')",
            name="notifications_type_check",
        ),
        sa.UniqueConstraint(
            "event_id", "user_id", "notification_type", name="unique_event_user_notification"
        ),
    )

    op.create_index(
        "idx_notifications_user_notify_date", "notifications", ["user_id", "notify_date"]
    )
    op.create_index("idx_notifications_user_sent", "notifications", ["user_id", "sent"])

    op.create_table(
        "notifications_log",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="sent"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint("status IN ('sent', 'failed')", name="notifications_log_status_check"),
    )

    op.create_index("idx_notifications_log_user_id", "notifications_log", ["user_id"])
    op.create_index("idx_notifications_log_created_at", "notifications_log", ["created_at"])


def downgrade() -> None:
    """Drop reminder and log tables."""
    op.drop_index("idx_notifications_log_created_at", table_name="notifications_log")
    op.drop_index("idx_notifications_log_user_id", table_name="notifications_log")
    op.drop_table("notifications_log")
    op.drop_index("idx_notifications_user_sent", table_name="notifications")
    op.drop_index("idx_notifications_user_notify_date", table_name="notifications")
    op.drop_table("notifications")
