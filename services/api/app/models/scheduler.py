from __future__ import annotations

from pydantic import BaseModel


class SchedulerStatusOut(BaseModel):
    running: bool
    in_progress: bool
    interval_minutes: float
    last_run: str | None = None
    next_run: str | None = None
    last_result: str | None = None


class SchedulerTriggerResponse(BaseModel):
    success: bool
    message: str
    advanced: int = 0
