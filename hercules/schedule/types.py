"""Active schedule data model.

This module defines:
- The schedule rule as a tagged variant (weekly, rotating, plan-driven)
- Date-specific overrides
- Pointer-based rotation state for plan-driven schedules
- Resolution and summary results handed to display layers

A null workout id always means "rest day".
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator, model_validator

WeekdayKey = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Monday-first, matching date.weekday()
WEEKDAY_KEYS: tuple[WeekdayKey, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

WEEKDAY_LABELS: dict[WeekdayKey, str] = {key: key.title() for key in WEEKDAY_KEYS}

ScheduleType = Literal["weekly", "rotating", "plan-driven"]

WeekdayAssignment = dict[WeekdayKey, str | None]


def new_id() -> str:
    return str(uuid.uuid4())


def empty_weekday_assignment() -> WeekdayAssignment:
    return dict.fromkeys(WEEKDAY_KEYS)


def normalize_weekday_assignment(value: Any) -> WeekdayAssignment:
    """Fill every weekday key, dropping unknown keys.

    Accepts legacy payloads that stored only some weekday keys.
    """
    assignment = empty_weekday_assignment()
    if isinstance(value, dict):
        for key in WEEKDAY_KEYS:
            workout_id = value.get(key)
            assignment[key] = workout_id if isinstance(workout_id, str) and workout_id else None
    return assignment


def _legacy_start_date(value: Any) -> Any:
    # Millisecond epoch timestamps of local midnight
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000).date()
    if isinstance(value, datetime):
        return value.astimezone().date() if value.tzinfo is not None else value.date()
    return value


class RotatingDay(BaseModel):
    """One slot of a rotating cycle.

    Attributes:
        id: Stable slot identifier (survives reordering)
        day_number: 1-based position in the cycle
        workout_id: Workout due on this cycle day, None for rest
    """

    id: str = Field(default_factory=new_id)
    day_number: int = Field(default=1, ge=1)
    workout_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("workout_id", "workoutId", "planId"),
    )


class RotatingConfig(BaseModel):
    """Ordered N-day cycle, repeating from start_date.

    Day numbers are always contiguous 1..N by position. N = 0 is legal and
    resolves every date to rest.

    Without a start_date the cycle is pointer-driven: current_index names the
    day that is due, and it only moves when the rotation is advanced.
    """

    days: list[RotatingDay] = Field(default_factory=list)
    start_date: date | None = Field(default=None, validation_alias=AliasChoices("start_date", "startDate"))
    current_index: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("current_index", "currentIndex", "currentRotationIndex"),
    )

    @field_validator("days", mode="before")
    @classmethod
    def accept_bare_workout_ids(cls, value: Any) -> Any:
        """Accept legacy cycles stored as a plain list of workout ids/nulls."""
        if not isinstance(value, list):
            return value
        days = []
        for item in value:
            if item is None or isinstance(item, str):
                days.append({"workout_id": item})
            else:
                days.append(item)
        return days

    @field_validator("start_date", mode="before")
    @classmethod
    def accept_timestamp(cls, value: Any) -> Any:
        return _legacy_start_date(value)

    @model_validator(mode="after")
    def renumber(self) -> RotatingConfig:
        for position, day in enumerate(self.days, start=1):
            day.day_number = position
        if self.current_index >= len(self.days):
            self.current_index = 0
        return self

    @property
    def cycle_length(self) -> int:
        return len(self.days)


class _ScheduleBase(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = "Workout Schedule"
    weekday_assignment: WeekdayAssignment = Field(default_factory=empty_weekday_assignment)

    @field_validator("weekday_assignment", mode="before")
    @classmethod
    def fill_weekdays(cls, value: Any) -> WeekdayAssignment:
        return normalize_weekday_assignment(value)


class WeeklySchedule(_ScheduleBase):
    """Fixed weekday-to-workout mapping. weekday_assignment is authoritative."""

    type: Literal["weekly"] = "weekly"


class RotatingSchedule(_ScheduleBase):
    """Date-derived N-day cycle. weekday_assignment is a display preview only."""

    type: Literal["rotating"] = "rotating"
    rotating: RotatingConfig = Field(default_factory=RotatingConfig)


class PlanDrivenSchedule(_ScheduleBase):
    """Follows a program's own rotation by explicit pointer (RotationState)."""

    type: Literal["plan-driven"] = "plan-driven"
    program_id: str


Schedule = Annotated[WeeklySchedule | RotatingSchedule | PlanDrivenSchedule, Field(discriminator="type")]

schedule_adapter: TypeAdapter[Schedule] = TypeAdapter(Schedule)


class ScheduleOverride(BaseModel):
    """Date-specific exception that wins over the base schedule.

    Attributes:
        date: Local date key (YYYY-MM-DD)
        workout_id: Workout to do on that date, None for a forced rest day
        note: Optional reason shown instead of the default label
    """

    date: str
    workout_id: str | None = None
    note: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value: Any) -> str:
        if isinstance(value, datetime):
            value = value.astimezone().date() if value.tzinfo is not None else value.date()
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d")
        if isinstance(value, str):
            # Validates the format, raises ValueError otherwise
            return datetime.strptime(value, "%Y-%m-%d").strftime("%Y-%m-%d")
        raise ValueError(f"Invalid override date: {value!r}")


class RotationState(BaseModel):
    """Pointer-based rotation progress of the program driving the schedule.

    Advancing is an explicit action; it never moves with the calendar.
    """

    program_id: str
    workout_sequence: list[str] = Field(default_factory=list)
    current_index: int = Field(default=0, ge=0)
    last_advanced_at: datetime | None = None


class ScheduleSnapshot(BaseModel):
    """Everything the store owns for one user."""

    schedule: Schedule | None = None
    overrides: list[ScheduleOverride] = Field(default_factory=list)
    rotation_state: RotationState | None = None

    def override_for(self, key: str) -> ScheduleOverride | None:
        return next((override for override in self.overrides if override.date == key), None)


class ScheduleResolution(BaseModel):
    """Resolved workout for a date plus display context.

    Attributes:
        date: Local date key that was resolved
        workout_id: Workout due, None for rest
        source: Where the answer came from (override, rule, or none)
        label: Short human-readable label (e.g., "Monday", "Day 3 of 5")
        context: Optional secondary line for display
    """

    date: str
    workout_id: str | None
    source: Literal["override", "rule", "none"]
    label: str
    context: str | None = None

    @property
    def is_rest(self) -> bool:
        return self.workout_id is None


class ScheduleSummary(BaseModel):
    """Read-only view of the active schedule for rendering."""

    type: ScheduleType | None
    type_label: str
    description: str
    is_active: bool
    weekday_assignment: WeekdayAssignment = Field(default_factory=empty_weekday_assignment)
    rotating: RotatingConfig | None = None
    program_id: str | None = None
