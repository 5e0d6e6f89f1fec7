"""Notification preference schemas."""

from datetime import datetime, time

from pydantic import BaseModel, Field, field_validator

from app.core.reminders import get_timezone


class PreferencesResponse(BaseModel):
    daily_reminders: bool
    reminder_time: time
    timezone: str
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    """Partial preference update."""

    daily_reminders: bool | None = None
    reminder_time: time | None = Field(None, description="HH:MM or HH:MM:SS")
    timezone: str | None = Field(None, description="IANA timezone, e.g. Asia/Jakarta")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is not None:
            get_timezone(v)
        return v
