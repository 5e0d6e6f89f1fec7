"""Calendar event model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
)

from app.models.base import metadata

events = Table(
    "events",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("title", Text, nullable=False),
    Column("description", Text, nullable=True),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    # Optional time of day; all-day events leave it empty
    Column("time", Time, nullable=True),
    Column("color", String(20), nullable=True),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("end_date >= start_date", name="events_date_range_check"),
    Index("idx_events_start_date", "start_date"),
    Index("idx_events_created_by", "created_by"),
)
