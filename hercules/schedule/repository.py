"""Persistence contract for the active schedule.

Remote shape:
- active_schedules: one row per user (type, weekday_assignment, rotating_days,
  rotating_start_date, program_id)
- schedule_overrides: keyed by (schedule_id, date)
- programs.rotation_state: {workoutSequence, currentIndex, lastAdvancedAt}

The repository is the source of truth on rehydration.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hercules.db.models import ActiveSchedule, Program, ScheduleOverrideRecord
from hercules.db.session import SessionFactory, get_session
from hercules.schedule.errors import ScheduleRepositoryError
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingSchedule,
    RotationState,
    Schedule,
    ScheduleOverride,
    ScheduleSnapshot,
    schedule_adapter,
)


class ScheduleRepository(Protocol):
    """Read/write contract the store needs from the remote backing store."""

    def fetch(self, user_id: str) -> ScheduleSnapshot: ...

    def save_schedule(self, user_id: str, schedule: Schedule) -> None: ...

    def delete_schedule(self, user_id: str) -> None: ...

    def upsert_override(self, schedule_id: str, override: ScheduleOverride) -> None: ...

    def delete_override(self, schedule_id: str, date: str) -> None: ...

    def clear_overrides(self, schedule_id: str) -> None: ...

    def save_rotation_state(self, user_id: str, program_id: str, state: RotationState | None) -> None: ...


def rotation_state_to_wire(state: RotationState) -> dict[str, Any]:
    return {
        "workoutSequence": list(state.workout_sequence),
        "currentIndex": state.current_index,
        "lastAdvancedAt": state.last_advanced_at.isoformat() if state.last_advanced_at else None,
    }


def rotation_state_from_wire(program_id: str, payload: dict[str, Any]) -> RotationState:
    """Parse the rotation_state column.

    lastAdvancedAt may be an ISO string or a legacy millisecond timestamp.
    """
    last_advanced_at = payload.get("lastAdvancedAt")
    if isinstance(last_advanced_at, int | float):
        last_advanced_at = datetime.fromtimestamp(last_advanced_at / 1000).astimezone()
    return RotationState(
        program_id=program_id,
        workout_sequence=[workout_id for workout_id in payload.get("workoutSequence") or [] if workout_id],
        current_index=max(int(payload.get("currentIndex") or 0), 0),
        last_advanced_at=last_advanced_at,
    )


def schedule_to_row(schedule: Schedule, row: ActiveSchedule) -> None:
    """Copy a schedule into an active_schedules row (in place)."""
    row.name = schedule.name
    row.type = schedule.type
    row.weekday_assignment = dict(schedule.weekday_assignment)
    row.rotating_days = None
    row.rotating_start_date = None
    row.rotating_current_index = 0
    row.program_id = None

    if isinstance(schedule, RotatingSchedule):
        row.rotating_days = [day.model_dump() for day in schedule.rotating.days]
        row.rotating_start_date = schedule.rotating.start_date
        row.rotating_current_index = schedule.rotating.current_index
    elif isinstance(schedule, PlanDrivenSchedule):
        row.program_id = schedule.program_id


def schedule_from_row(row: ActiveSchedule) -> Schedule:
    payload: dict[str, Any] = {
        "id": row.id,
        "name": row.name,
        "type": row.type,
        "weekday_assignment": row.weekday_assignment,
    }
    if row.type == "rotating":
        payload["rotating"] = RotatingConfig.model_validate(
            {
                "days": row.rotating_days or [],
                "start_date": row.rotating_start_date,
                "current_index": row.rotating_current_index or 0,
            }
        )
    elif row.type == "plan-driven":
        payload["program_id"] = row.program_id
    return schedule_adapter.validate_python(payload)


class SqlScheduleRepository:
    """SQLAlchemy implementation of ScheduleRepository.

    Every SQLAlchemyError is wrapped in ScheduleRepositoryError so the store
    can reconcile without knowing about the database driver.
    """

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    def fetch(self, user_id: str) -> ScheduleSnapshot:
        try:
            with self._session_factory() as session:
                row = self._get_row(session, user_id)
                schedule = None
                overrides: list[ScheduleOverride] = []
                if row is not None:
                    try:
                        schedule = schedule_from_row(row)
                    except ValidationError as e:
                        logger.warning("Stored schedule is malformed, ignoring it", user_id=user_id, error=str(e))
                    overrides = [
                        ScheduleOverride(date=record.date, workout_id=record.workout_id, note=record.note)
                        for record in row.overrides
                    ]

                rotation_state = self._fetch_rotation_state(session, user_id, schedule)
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to fetch schedule for user {user_id}: {e}") from e

        logger.debug(
            "Fetched schedule snapshot",
            user_id=user_id,
            schedule_type=schedule.type if schedule else None,
            overrides=len(overrides),
            has_rotation_state=rotation_state is not None,
        )
        return ScheduleSnapshot(schedule=schedule, overrides=overrides, rotation_state=rotation_state)

    def save_schedule(self, user_id: str, schedule: Schedule) -> None:
        """Create or update the user's single schedule row."""
        try:
            with self._session_factory() as session:
                row = self._get_row(session, user_id)
                if row is None:
                    row = ActiveSchedule(id=schedule.id, user_id=user_id)
                    session.add(row)
                    logger.info("Creating active schedule", user_id=user_id, schedule_id=schedule.id)
                elif row.id != schedule.id:
                    # Singleton per user: the draft replaces whatever was there
                    logger.info("Replacing active schedule", user_id=user_id, old_id=row.id, new_id=schedule.id)
                    session.delete(row)
                    session.flush()
                    row = ActiveSchedule(id=schedule.id, user_id=user_id)
                    session.add(row)
                schedule_to_row(schedule, row)
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to save schedule for user {user_id}: {e}") from e

    def delete_schedule(self, user_id: str) -> None:
        try:
            with self._session_factory() as session:
                row = self._get_row(session, user_id)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to delete schedule for user {user_id}: {e}") from e

    def upsert_override(self, schedule_id: str, override: ScheduleOverride) -> None:
        try:
            with self._session_factory() as session:
                record = session.execute(
                    select(ScheduleOverrideRecord).where(
                        ScheduleOverrideRecord.schedule_id == schedule_id,
                        ScheduleOverrideRecord.date == override.date,
                    )
                ).scalar_one_or_none()
                if record is None:
                    record = ScheduleOverrideRecord(schedule_id=schedule_id, date=override.date)
                    session.add(record)
                record.workout_id = override.workout_id
                record.note = override.note
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to save override {override.date}: {e}") from e

    def delete_override(self, schedule_id: str, date: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(
                    delete(ScheduleOverrideRecord).where(
                        ScheduleOverrideRecord.schedule_id == schedule_id,
                        ScheduleOverrideRecord.date == date,
                    )
                )
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to delete override {date}: {e}") from e

    def clear_overrides(self, schedule_id: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(delete(ScheduleOverrideRecord).where(ScheduleOverrideRecord.schedule_id == schedule_id))
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to clear overrides for schedule {schedule_id}: {e}") from e

    def save_rotation_state(self, user_id: str, program_id: str, state: RotationState | None) -> None:
        """Write (or clear, with None) the rotation_state column of a program.

        Activating one program clears the rotation state of every other
        program of the user: there is at most one live rotation.
        """
        try:
            with self._session_factory() as session:
                programs = session.execute(select(Program).where(Program.user_id == user_id)).scalars().all()
                target = next((program for program in programs if program.id == program_id), None)
                if target is None:
                    if state is not None:
                        raise ScheduleRepositoryError(f"Program {program_id} not found for user {user_id}")
                    return
                if state is not None:
                    for program in programs:
                        if program.id != program_id and program.rotation_state is not None:
                            program.rotation_state = None
                target.rotation_state = rotation_state_to_wire(state) if state is not None else None
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to save rotation state for program {program_id}: {e}") from e

    def _get_row(self, session: Session, user_id: str) -> ActiveSchedule | None:
        return session.execute(select(ActiveSchedule).where(ActiveSchedule.user_id == user_id)).scalar_one_or_none()

    def _fetch_rotation_state(self, session: Session, user_id: str, schedule: Schedule | None) -> RotationState | None:
        query = select(Program).where(Program.user_id == user_id, Program.rotation_state.is_not(None))
        if isinstance(schedule, PlanDrivenSchedule):
            query = query.where(Program.id == schedule.program_id)
        program = session.execute(query.order_by(Program.updated_at.desc())).scalars().first()
        if program is None or not program.rotation_state:
            return None
        return rotation_state_from_wire(program.id, program.rotation_state)
