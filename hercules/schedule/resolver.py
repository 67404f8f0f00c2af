"""Active schedule resolution.

Single source of truth for "what is due on this day":
1. A date override always wins (workout or forced rest)
2. Otherwise the active rule decides (weekly, rotating, plan-driven)
3. A workout id the catalog no longer knows resolves to rest

Display layers treat None as rest regardless of the cause.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, assert_never

from loguru import logger

from hercules.schedule.catalog import WorkoutCatalog
from hercules.schedule.dates import date_key, to_local_date, weekday_key
from hercules.schedule.rotation import (
    current_workout,
    resolve_rotating,
    resolve_weekly,
    rotating_position,
    sync_weekday_assignment,
)
from hercules.schedule.types import (
    WEEKDAY_LABELS,
    PlanDrivenSchedule,
    RotatingSchedule,
    RotationState,
    Schedule,
    ScheduleOverride,
    ScheduleResolution,
    ScheduleSummary,
    WeeklySchedule,
)

if TYPE_CHECKING:
    from hercules.schedule.store import ScheduleStore


def _find_override(overrides: Iterable[ScheduleOverride], key: str) -> ScheduleOverride | None:
    return next((override for override in overrides if override.date == key), None)


def _plan_driven_pointer(
    schedule: PlanDrivenSchedule,
    rotation_state: RotationState | None,
    catalog: WorkoutCatalog,
) -> tuple[str | None, int, int]:
    """(workout id, 0-based position, sequence length) for a plan-driven schedule.

    A missing or empty driving program means "no schedule".
    """
    program_workouts = catalog.program_workout_ids(schedule.program_id)
    if not program_workouts:
        return None, 0, 0
    if rotation_state is None or rotation_state.program_id != schedule.program_id:
        return None, 0, 0
    return current_workout(rotation_state), rotation_state.current_index, len(rotation_state.workout_sequence)


def _resolve_rule(
    schedule: Schedule,
    rotation_state: RotationState | None,
    target: date,
    catalog: WorkoutCatalog,
) -> str | None:
    match schedule:
        case WeeklySchedule():
            return resolve_weekly(schedule.weekday_assignment, target)
        case RotatingSchedule():
            return resolve_rotating(schedule.rotating, target, schedule.rotating.current_index)
        case PlanDrivenSchedule():
            workout_id, _, _ = _plan_driven_pointer(schedule, rotation_state, catalog)
            return workout_id
        case _:
            assert_never(schedule)


def _existing(workout_id: str | None, catalog: WorkoutCatalog) -> str | None:
    if workout_id is None:
        return None
    if not catalog.workout_exists(workout_id):
        logger.debug("Resolved workout no longer exists, treating as rest", workout_id=workout_id)
        return None
    return workout_id


def resolve_workout_for_date(
    schedule: Schedule | None,
    overrides: Iterable[ScheduleOverride],
    rotation_state: RotationState | None,
    target: date | datetime,
    catalog: WorkoutCatalog,
) -> str | None:
    """Resolve the workout due on target.

    Args:
        schedule: Active schedule rule, None when no schedule is set
        overrides: Date overrides of the active schedule
        rotation_state: Pointer state of the driving program (plan-driven only)
        target: Date to resolve; a datetime is reduced to its local date
        catalog: Workout registry used to drop dangling references

    Returns:
        Workout id, or None for rest
    """
    day = to_local_date(target)
    override = _find_override(overrides, date_key(day))
    if override is not None:
        return _existing(override.workout_id, catalog)

    if schedule is None:
        return None

    return _existing(_resolve_rule(schedule, rotation_state, day, catalog), catalog)


def describe_workout_for_date(
    schedule: Schedule | None,
    overrides: Iterable[ScheduleOverride],
    rotation_state: RotationState | None,
    target: date | datetime,
    catalog: WorkoutCatalog,
) -> ScheduleResolution:
    """Resolve target with the label and context shown on the dashboard."""
    day = to_local_date(target)
    key = date_key(day)

    override = _find_override(overrides, key)
    if override is not None:
        workout_id = _existing(override.workout_id, catalog)
        return ScheduleResolution(
            date=key,
            workout_id=workout_id,
            source="override",
            label=override.note or ("Override" if workout_id else "Rest"),
            context="Manual override",
        )

    if schedule is None:
        return ScheduleResolution(
            date=key,
            workout_id=None,
            source="none",
            label="No schedule",
            context="Set up a schedule to see your workouts",
        )

    workout_id = _existing(_resolve_rule(schedule, rotation_state, day, catalog), catalog)
    label, context = _rule_label(schedule, rotation_state, day, catalog)
    if workout_id is None and context is None:
        context = "Rest day"
    return ScheduleResolution(date=key, workout_id=workout_id, source="rule", label=label, context=context)


def _rule_label(
    schedule: Schedule,
    rotation_state: RotationState | None,
    day: date,
    catalog: WorkoutCatalog,
) -> tuple[str, str | None]:
    match schedule:
        case WeeklySchedule():
            return WEEKDAY_LABELS[weekday_key(day)], None
        case RotatingSchedule():
            rotating = schedule.rotating
            if rotating.cycle_length == 0:
                return "Empty cycle", "Add workouts to your cycle"
            if rotating.start_date is None:
                return f"Day {rotating.current_index + 1} of {rotating.cycle_length}", "Advances when you finish a workout"
            position = rotating_position(rotating, day)
            if position is None:
                return "Not started", f"Cycle starts {rotating.start_date.isoformat()}"
            return f"Day {position + 1} of {rotating.cycle_length}", None
        case PlanDrivenSchedule():
            workout_id, position, length = _plan_driven_pointer(schedule, rotation_state, catalog)
            if length == 0:
                return "No schedule", "The program behind this schedule has no workouts"
            return f"Workout {position + 1} of {length}", "Plan-driven schedule" if workout_id else None
        case _:
            assert_never(schedule)


def build_schedule_summary(schedule: Schedule | None, today: date | datetime | None = None) -> ScheduleSummary:
    """Summarize the active schedule for read-only rendering.

    Args:
        schedule: Active schedule, None when no schedule is set
        today: When given, the weekday preview of a non-weekly schedule is
            rebuilt for the week containing today instead of the stored copy
    """
    if schedule is None:
        return ScheduleSummary(type=None, type_label="None", description="No active schedule", is_active=False)
    if today is not None:
        schedule = sync_weekday_assignment(schedule, today)

    match schedule:
        case WeeklySchedule():
            workout_days = sum(1 for workout_id in schedule.weekday_assignment.values() if workout_id)
            return ScheduleSummary(
                type=schedule.type,
                type_label="Weekly",
                description=f"{workout_days} workout{'s' if workout_days != 1 else ''} per week",
                is_active=True,
                weekday_assignment=dict(schedule.weekday_assignment),
            )
        case RotatingSchedule():
            cycle_length = schedule.rotating.cycle_length
            workout_count = sum(1 for day in schedule.rotating.days if day.workout_id)
            return ScheduleSummary(
                type=schedule.type,
                type_label="Rotating Cycle",
                description=f"{workout_count} workouts in {cycle_length}-day cycle",
                is_active=True,
                weekday_assignment=dict(schedule.weekday_assignment),
                rotating=schedule.rotating.model_copy(deep=True),
            )
        case PlanDrivenSchedule():
            return ScheduleSummary(
                type=schedule.type,
                type_label="Plan-Driven",
                description="Following saved plan",
                is_active=True,
                weekday_assignment=dict(schedule.weekday_assignment),
                program_id=schedule.program_id,
            )
        case _:
            assert_never(schedule)


class ActiveScheduleResolver:
    """Façade used by the dashboard, calendar and schedule card.

    Reads the store's in-memory state on every call, so a day rollover is
    picked up lazily the next time "today" is asked for.
    """

    def __init__(
        self,
        store: ScheduleStore,
        catalog: WorkoutCatalog,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self._clock = clock

    def today(self) -> date:
        return to_local_date(self._clock())

    def resolve_workout_for_date(self, target: date | datetime) -> str | None:
        return resolve_workout_for_date(
            self.store.schedule,
            self.store.overrides,
            self.store.rotation_state,
            target,
            self.catalog,
        )

    def describe_workout_for_date(self, target: date | datetime) -> ScheduleResolution:
        return describe_workout_for_date(
            self.store.schedule,
            self.store.overrides,
            self.store.rotation_state,
            target,
            self.catalog,
        )

    def resolve_today(self) -> ScheduleResolution:
        return self.describe_workout_for_date(self.today())

    def resolve_range(self, start: date | datetime, days: int = 7) -> list[ScheduleResolution]:
        first = to_local_date(start)
        return [self.describe_workout_for_date(first + timedelta(days=offset)) for offset in range(days)]

    def workout_name_for_date(self, target: date | datetime) -> str:
        return self.catalog.workout_name(self.resolve_workout_for_date(target))

    def get_schedule_summary(self) -> ScheduleSummary:
        return build_schedule_summary(self.store.schedule, self.today())
