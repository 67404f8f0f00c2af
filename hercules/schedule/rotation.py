"""Rotation engine.

Pure functions that map a schedule payload and a target date to a workout id
(None = rest). Nothing here raises for a misconfigured schedule: an empty
cycle, a missing start date or a bad pointer all degrade to rest.
"""

from datetime import date, datetime, timezone

from hercules.schedule.dates import current_week, days_between, weekday_key
from hercules.schedule.types import (
    WEEKDAY_KEYS,
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingSchedule,
    RotationState,
    Schedule,
    WeekdayAssignment,
    empty_weekday_assignment,
)


def rotating_position(rotating: RotatingConfig, target: date | datetime) -> int | None:
    """0-based cycle day for target, or None when the cycle cannot be placed.

    None means the cycle is empty, has no start date, or has not started yet.
    """
    cycle_length = rotating.cycle_length
    if cycle_length == 0 or rotating.start_date is None:
        return None

    diff_days = days_between(rotating.start_date, target)
    if diff_days < 0:
        return None

    return ((diff_days % cycle_length) + cycle_length) % cycle_length


def resolve_rotating(
    rotating: RotatingConfig,
    target: date | datetime,
    stored_index: int | None = None,
) -> str | None:
    """Resolve the workout for target in an N-day cycle.

    Args:
        rotating: Cycle configuration
        target: Date (or datetime, time of day ignored) to resolve
        stored_index: Pointer used instead of the date when start_date is
            unset; defaults to the cycle's own current_index

    Returns:
        Workout id, or None for a rest day
    """
    cycle_length = rotating.cycle_length
    if cycle_length == 0:
        return None

    if rotating.start_date is None:
        if stored_index is None:
            stored_index = rotating.current_index
        if 0 <= stored_index < cycle_length:
            return rotating.days[stored_index].workout_id
        return None

    index = rotating_position(rotating, target)
    if index is None:
        # Not started yet; negative offsets are never wrapped
        return None
    return rotating.days[index].workout_id


def resolve_weekly(weekday_assignment: WeekdayAssignment, target: date | datetime) -> str | None:
    """Resolve by day of week only; year and month never matter."""
    return weekday_assignment.get(weekday_key(target))


def current_workout(state: RotationState) -> str | None:
    """Workout under the rotation pointer, None if the pointer is out of range."""
    if 0 <= state.current_index < len(state.workout_sequence):
        return state.workout_sequence[state.current_index]
    return None


def advance(state: RotationState, now: datetime | None = None) -> RotationState:
    """Move the pointer to the next workout, wrapping at the end of the sequence.

    An empty sequence is returned unchanged.
    """
    if not state.workout_sequence:
        return state

    next_index = (state.current_index + 1) % len(state.workout_sequence)
    return state.model_copy(
        update={
            "current_index": next_index,
            "last_advanced_at": now or datetime.now(timezone.utc),
        }
    )


def derive_weekday_assignment(rotating: RotatingConfig, today: date | datetime) -> WeekdayAssignment:
    """Weekly preview of a rotation for the calendar week containing today.

    This is a "this week" view, not an absolute weekday mapping: next week
    the same cycle may land on different weekdays.

    A pointer-driven cycle (no start date) does not move with the calendar,
    so its preview is empty.
    """
    assignment = empty_weekday_assignment()
    if rotating.start_date is None:
        return assignment
    for key, day in zip(WEEKDAY_KEYS, current_week(today), strict=True):
        assignment[key] = resolve_rotating(rotating, day)
    return assignment


def sync_weekday_assignment(schedule: Schedule, today: date | datetime) -> Schedule:
    """Refresh the display-only weekday preview of a non-weekly schedule.

    Weekly schedules own their assignment and are returned unchanged. A
    rotating schedule gets this week's preview. Plan-driven schedules are
    pointer-based, so their preview is cleared rather than guessed from dates.
    """
    if isinstance(schedule, RotatingSchedule):
        return schedule.model_copy(
            update={"weekday_assignment": derive_weekday_assignment(schedule.rotating, today)}
        )
    if isinstance(schedule, PlanDrivenSchedule):
        return schedule.model_copy(update={"weekday_assignment": empty_weekday_assignment()})
    return schedule


def advance_rotating(rotating: RotatingConfig) -> RotatingConfig:
    """Move a pointer-driven cycle to its next day, wrapping at the end.

    Date-derived cycles and empty cycles are returned unchanged.
    """
    if rotating.start_date is not None or not rotating.days:
        return rotating
    return rotating.model_copy(update={"current_index": (rotating.current_index + 1) % len(rotating.days)})