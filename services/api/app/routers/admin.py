from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.db.deps import get_scheduler
from services.api.app.models.scheduler import SchedulerStatusOut, SchedulerTriggerResponse
from services.api.app.services.scheduler import StatusScheduler

router = APIRouter()


@router.post("/api/admin/scheduler/trigger", response_model=SchedulerTriggerResponse)
def trigger_scheduler(
    scheduler: StatusScheduler = Depends(get_scheduler),
) -> SchedulerTriggerResponse:
    advanced = scheduler.trigger()
    return SchedulerTriggerResponse(
        success=True,
        message=scheduler.last_result or "Order status progression completed successfully",
        advanced=advanced,
    )


@router.get("/api/admin/scheduler/status", response_model=SchedulerStatusOut)
def scheduler_status(scheduler: StatusScheduler = Depends(get_scheduler)) -> SchedulerStatusOut:
    return scheduler.status()
