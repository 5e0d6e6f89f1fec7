"""Client-side push registration and reminder scheduling."""

from app.client.registrar import PushTokenRegistrar
from app.client.scheduler import ReminderScheduler, SchedulerState

__all__ = ["PushTokenRegistrar", "ReminderScheduler", "SchedulerState"]
