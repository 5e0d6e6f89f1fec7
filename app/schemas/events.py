"""Calendar event schemas."""

import datetime as dt
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class EventBase(BaseModel):
    """Fields shared by event requests and responses."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    start_date: date
    end_date: date | None = Field(None, description="Defaults to start_date")
    time: dt.time | None = Field(None, description="Time of day; omit for all-day events")
    color: str | None = Field(None, max_length=20, description="CSS color for the event bar")


class EventCreate(EventBase):
    """Schema for creating an event."""

    @model_validator(mode="after")
    def check_date_range(self) -> "EventCreate":
        if self.end_date is None:
            self.end_date = self.start_date
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class EventUpdate(BaseModel):
    """Schema for a partial event update."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    start_date: date | None = None
    end_date: date | None = None
    time: dt.time | None = None
    color: str | None = Field(None, max_length=20)

    @model_validator(mode="after")
    def check_date_range(self) -> "EventUpdate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class EventResponse(BaseModel):
    """Event as returned by the API."""

    id: UUID
    title: str
    description: str | None = None
    start_date: date
    end_date: date
    time: dt.time | None = None
    color: str | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class EventPlacement(BaseModel):
    """Event bar placed on one row of a calendar week."""

    event_id: UUID
    title: str
    color: str
    row: int
    start_index: int = Field(..., ge=0, le=6)
    end_index: int = Field(..., ge=0, le=6)
    continues_before: bool = False
    continues_after: bool = False


class CalendarWeek(BaseModel):
    """Seven consecutive days starting on Sunday."""

    days: list[date]
    placements: list[EventPlacement]
    row_count: int


class CalendarMonthResponse(BaseModel):
    """Month grid with event bars laid out per week."""

    year: int
    month: int
    weeks: list[CalendarWeek]


class EventStats(BaseModel):
    """Event counters."""

    total_events: int
    events_this_month: int
    upcoming_events: int
