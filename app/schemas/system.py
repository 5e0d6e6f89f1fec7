"""Environment self-check schemas."""

from datetime import datetime

from pydantic import BaseModel


class ComponentCheck(BaseModel):
    ok: bool
    detail: str | None = None


class SetupCheckResponse(BaseModel):
    timestamp: datetime
    environment: dict[str, bool]
    firebase: ComponentCheck
    database: ComponentCheck
    redis: ComponentCheck
    ready: bool
