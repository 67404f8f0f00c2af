"""HTTP surface for the active schedule.

Authentication is handled upstream; the caller identity arrives in the
X-User-Id header.
"""

from __future__ import annotations

from datetime import date as date_type

from fastapi import APIRouter, Depends, Header, HTTPException, status
from loguru import logger
from pydantic import BaseModel

from hercules.config.settings import settings
from hercules.schedule.service import ScheduleDraft, ScheduleService
from hercules.schedule.types import PlanDrivenSchedule, RotatingSchedule, ScheduleResolution, ScheduleSummary

router = APIRouter(prefix="/schedule", tags=["schedule"])


class OverrideRequest(BaseModel):
    date: date_type
    workout_id: str | None = None
    note: str | None = None


class WeekResponse(BaseModel):
    days: list[ScheduleResolution]


class RotationResponse(BaseModel):
    program_id: str | None
    current_index: int
    workout_id: str | None


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    return x_user_id or settings.default_user_id


def get_schedule_service(user_id: str = Depends(get_current_user_id)) -> ScheduleService:
    return ScheduleService(user_id).load()


def _raise_not_persisted(action: str) -> None:
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Could not {action}; changes were not saved",
    )


def _require_schedule(service: ScheduleService) -> None:
    if service.store.schedule is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No active schedule")


@router.get("/today", response_model=ScheduleResolution)
def get_today(service: ScheduleService = Depends(get_schedule_service)):
    return service.today()


@router.get("/date/{target}", response_model=ScheduleResolution)
def get_date(target: date_type, service: ScheduleService = Depends(get_schedule_service)):
    return service.describe_workout_for_date(target)


@router.get("/week", response_model=WeekResponse)
def get_week(start: date_type | None = None, service: ScheduleService = Depends(get_schedule_service)):
    return WeekResponse(days=service.week(start))


@router.get("/summary", response_model=ScheduleSummary)
def get_summary(service: ScheduleService = Depends(get_schedule_service)):
    return service.get_schedule_summary()


@router.put("", response_model=ScheduleSummary)
def put_schedule(draft: ScheduleDraft, service: ScheduleService = Depends(get_schedule_service)):
    if draft.type == "plan-driven":
        program_id = draft.program_id or (
            service.store.schedule.program_id if isinstance(service.store.schedule, PlanDrivenSchedule) else None
        )
        if program_id is None or not service.catalog.program_exists(program_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown program")
    if not service.save_schedule(draft):
        _raise_not_persisted("save schedule")
    logger.info("Schedule saved via API", user_id=service.user_id, schedule_type=draft.type)
    return service.get_schedule_summary()


@router.post("/overrides", response_model=ScheduleResolution)
def post_override(request: OverrideRequest, service: ScheduleService = Depends(get_schedule_service)):
    _require_schedule(service)
    if not service.add_override(request.date, request.workout_id, request.note):
        _raise_not_persisted("save override")
    return service.describe_workout_for_date(request.date)


@router.delete("/overrides/{target}", status_code=status.HTTP_204_NO_CONTENT)
def delete_override(target: date_type, service: ScheduleService = Depends(get_schedule_service)):
    _require_schedule(service)
    if service.store.snapshot.override_for(target.isoformat()) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No override for that date")
    if not service.remove_override(target):
        _raise_not_persisted("remove override")


@router.delete("/overrides", status_code=status.HTTP_204_NO_CONTENT)
def delete_overrides(service: ScheduleService = Depends(get_schedule_service)):
    _require_schedule(service)
    if service.store.overrides and not service.clear_overrides():
        _raise_not_persisted("clear overrides")


@router.post("/advance", response_model=RotationResponse)
def post_advance(service: ScheduleService = Depends(get_schedule_service)):
    if not service.store.can_advance:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No rotation to advance")
    if not service.advance_rotation():
        _raise_not_persisted("advance rotation")

    workout_id = service.resolve_workout_for_date(service.resolver.today())
    schedule = service.store.schedule
    if isinstance(schedule, RotatingSchedule):
        return RotationResponse(program_id=None, current_index=schedule.rotating.current_index, workout_id=workout_id)
    state = service.store.rotation_state
    return RotationResponse(program_id=state.program_id, current_index=state.current_index, workout_id=workout_id)
