"""Schedule editor.

Builds a draft schedule in memory, separate from the committed one, so edits
can be cancelled. Structural edits to the rotation renumber the days right
away. Invalid edits (over the day cap, bad index) are silent no-ops that
return False; messaging is up to the UI.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime

from loguru import logger

from hercules.config.settings import settings
from hercules.schedule.catalog import WorkoutCatalog
from hercules.schedule.dates import local_now, to_local_date
from hercules.schedule.errors import ScheduleValidationError
from hercules.schedule.rotation import derive_weekday_assignment
from hercules.schedule.store import ScheduleStore
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingDay,
    RotatingSchedule,
    Schedule,
    ScheduleType,
    WeekdayAssignment,
    WeekdayKey,
    WeeklySchedule,
    empty_weekday_assignment,
    new_id,
)

MAX_ROTATING_DAYS = 14


class ScheduleEditor:
    """Draft builder for the user's single active schedule.

    All three payloads (weekdays, rotation, program) are kept while editing,
    so switching the type back and forth does not lose work. Only the one
    matching `schedule_type` ends up in the built schedule.
    """

    def __init__(
        self,
        store: ScheduleStore,
        catalog: WorkoutCatalog,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        """Discard the draft and reseed it from the committed schedule."""
        committed = self.store.schedule
        self.schedule_type: ScheduleType = committed.type if committed else "weekly"
        self.name: str = committed.name if committed else settings.default_schedule_name
        self.weekdays: WeekdayAssignment = empty_weekday_assignment()
        self.rotating = RotatingConfig(start_date=to_local_date(self._clock()))
        self.program_id: str | None = None

        if isinstance(committed, WeeklySchedule):
            self.weekdays = dict(committed.weekday_assignment)
        elif isinstance(committed, RotatingSchedule):
            self.rotating = committed.rotating.model_copy(deep=True)
        elif isinstance(committed, PlanDrivenSchedule):
            self.program_id = committed.program_id

    # Type and name

    def set_schedule_type(self, schedule_type: ScheduleType) -> None:
        self.schedule_type = schedule_type

    def set_name(self, name: str) -> None:
        self.name = name.strip() or settings.default_schedule_name

    # Weekly

    def assign_weekday(self, day: WeekdayKey, workout_id: str | None) -> None:
        self.weekdays[day] = workout_id

    # Rotation

    @property
    def rotating_days(self) -> list[RotatingDay]:
        return list(self.rotating.days)

    def _renumber(self) -> None:
        for position, day in enumerate(self.rotating.days, start=1):
            day.day_number = position

    def _valid_index(self, index: int) -> bool:
        return 0 <= index < len(self.rotating.days)

    def add_rotating_day(self, workout_id: str | None = None) -> bool:
        return self.insert_rotating_day(len(self.rotating.days), workout_id)

    def insert_rotating_day(self, index: int, workout_id: str | None = None) -> bool:
        """Insert a day before index (index == N appends)."""
        if len(self.rotating.days) >= MAX_ROTATING_DAYS:
            logger.debug("Rotation is at the day cap, ignoring add", max_days=MAX_ROTATING_DAYS)
            return False
        if not 0 <= index <= len(self.rotating.days):
            return False
        self.rotating.days.insert(index, RotatingDay(workout_id=workout_id))
        self._renumber()
        return True

    def remove_rotating_day(self, index: int) -> bool:
        if not self._valid_index(index):
            return False
        del self.rotating.days[index]
        self._renumber()
        return True

    def move_rotating_day_up(self, index: int) -> bool:
        if not self._valid_index(index) or index == 0:
            return False
        days = self.rotating.days
        days[index - 1], days[index] = days[index], days[index - 1]
        self._renumber()
        return True

    def move_rotating_day_down(self, index: int) -> bool:
        if not self._valid_index(index) or index == len(self.rotating.days) - 1:
            return False
        return self.move_rotating_day_up(index + 1)

    def assign_rotating_day(self, index: int, workout_id: str | None) -> bool:
        if not self._valid_index(index):
            return False
        self.rotating.days[index].workout_id = workout_id
        return True

    def set_rotating_start_date(self, start: date | datetime | None) -> None:
        self.rotating.start_date = to_local_date(start) if start is not None else None

    # Plan-driven

    def set_program(self, program_id: str) -> bool:
        if not self.catalog.program_exists(program_id):
            logger.debug("Unknown program, ignoring selection", program_id=program_id)
            return False
        self.program_id = program_id
        return True

    # Preview and build

    def weekly_preview(self) -> WeekdayAssignment:
        """Weekday view of the draft for the current calendar week."""
        if self.schedule_type == "rotating":
            return derive_weekday_assignment(self.rotating, self._clock())
        if self.schedule_type == "weekly":
            return dict(self.weekdays)
        return empty_weekday_assignment()

    @property
    def is_valid(self) -> bool:
        return self.schedule_type != "plan-driven" or self.program_id is not None

    def build(self, schedule_id: str | None = None) -> Schedule:
        """Build a committable schedule from the draft.

        Raises:
            ScheduleValidationError: If a plan-driven draft has no program
        """
        schedule_id = schedule_id or new_id()
        if self.schedule_type == "weekly":
            return WeeklySchedule(id=schedule_id, name=self.name, weekday_assignment=dict(self.weekdays))
        if self.schedule_type == "rotating":
            rotating = RotatingConfig.model_validate(self.rotating.model_dump())
            return RotatingSchedule(
                id=schedule_id,
                name=self.name,
                rotating=rotating,
                weekday_assignment=derive_weekday_assignment(rotating, self._clock()),
            )
        if self.program_id is None:
            raise ScheduleValidationError("A plan-driven schedule needs a program")
        return PlanDrivenSchedule(id=schedule_id, name=self.name, program_id=self.program_id)

    def save(self) -> bool:
        """Commit the draft as the user's active schedule.

        Updates the existing schedule record when there is one, creates it
        otherwise. A plan-driven draft activates its program's rotation
        unless that program is already rotating; any other type deactivates
        the current rotation.
        """
        if not self.is_valid:
            logger.debug("Draft schedule is not valid, not saving", schedule_type=self.schedule_type)
            return False

        committed = self.store.schedule
        schedule = self.build(committed.id if committed else None)
        logger.info(
            "Saving schedule",
            user_id=self.store.user_id,
            schedule_type=schedule.type,
            mode="update" if committed else "create",
        )

        previous = self.store.rotation_state
        if isinstance(schedule, PlanDrivenSchedule):
            state = previous
            if state is None or state.program_id != schedule.program_id:
                workout_ids = self.catalog.program_workout_ids(schedule.program_id) or []
                if not self.store.activate_program(schedule.program_id, workout_ids):
                    return False
        elif self.store.rotation_state is not None and not self.store.deactivate_program():
            return False

        if self.store.commit(schedule):
            return True

        # The schedule write failed, put the rotation back the way it was
        if self.store.rotation_state != previous:
            snapshot = self.store.snapshot
            snapshot.rotation_state = previous
            self.store.apply_snapshot("restore_rotation", snapshot)
        return False
