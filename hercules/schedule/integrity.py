"""Referential integrity between the schedule and the workout catalog.

When the catalog changes, schedule references are rewritten in the same
call so the store never persists a reference to a workout that is gone.
Nulling a slot keeps the cycle length; only explicit day removal in the
editor changes N.
"""

from __future__ import annotations

from loguru import logger

from hercules.schedule.catalog import CatalogEvents
from hercules.schedule.store import ScheduleStore
from hercules.schedule.types import (
    RotatingSchedule,
    RotationState,
    Schedule,
    ScheduleOverride,
    ScheduleSnapshot,
)


def _clamp_index(state: RotationState, sequence: list[str]) -> RotationState:
    current_index = state.current_index if state.current_index < len(sequence) else 0
    return state.model_copy(update={"workout_sequence": sequence, "current_index": current_index})


def strip_workout(schedule: Schedule, workout_id: str) -> Schedule:
    """Null every weekday and rotation slot that points at workout_id."""
    weekday_assignment = {
        day: (None if assigned == workout_id else assigned) for day, assigned in schedule.weekday_assignment.items()
    }
    update: dict = {"weekday_assignment": weekday_assignment}

    if isinstance(schedule, RotatingSchedule):
        days = [
            day.model_copy(update={"workout_id": None}) if day.workout_id == workout_id else day.model_copy()
            for day in schedule.rotating.days
        ]
        update["rotating"] = schedule.rotating.model_copy(update={"days": days})

    return schedule.model_copy(update=update)


def strip_workout_from_overrides(overrides: list[ScheduleOverride], workout_id: str) -> list[ScheduleOverride]:
    """Turn overrides for workout_id into forced rest days (the date stays overridden)."""
    return [
        override.model_copy(update={"workout_id": None}) if override.workout_id == workout_id else override
        for override in overrides
    ]


def strip_workout_from_rotation(state: RotationState, workout_id: str) -> RotationState:
    """Drop workout_id from the sequence, keeping the order of the rest.

    The pointer resets to 0 when it falls off the end of the shorter sequence.
    """
    sequence = [existing for existing in state.workout_sequence if existing != workout_id]
    return _clamp_index(state, sequence)


def reorder_rotation(state: RotationState, program_id: str, workout_ids: list[str]) -> RotationState:
    """Follow a program reorder; other programs' rotations are untouched."""
    if state.program_id != program_id:
        return state
    return _clamp_index(state, list(workout_ids))


def remap_workout_ids(snapshot: ScheduleSnapshot, id_map: dict[str, str]) -> ScheduleSnapshot:
    """Rewrite workout ids everywhere in a snapshot (e.g. after copying a premade program)."""

    def remap(workout_id: str | None) -> str | None:
        if workout_id is None:
            return None
        return id_map.get(workout_id, workout_id)

    schedule = snapshot.schedule
    if schedule is not None:
        update: dict = {"weekday_assignment": {day: remap(value) for day, value in schedule.weekday_assignment.items()}}
        if isinstance(schedule, RotatingSchedule):
            days = [day.model_copy(update={"workout_id": remap(day.workout_id)}) for day in schedule.rotating.days]
            update["rotating"] = schedule.rotating.model_copy(update={"days": days})
        schedule = schedule.model_copy(update=update)

    overrides = [override.model_copy(update={"workout_id": remap(override.workout_id)}) for override in snapshot.overrides]

    rotation_state = snapshot.rotation_state
    if rotation_state is not None:
        rotation_state = rotation_state.model_copy(
            update={"workout_sequence": [remap(workout_id) for workout_id in rotation_state.workout_sequence]}
        )

    return ScheduleSnapshot(schedule=schedule, overrides=overrides, rotation_state=rotation_state)


class ReferentialIntegrityMaintainer:
    """Keeps the store's schedule references valid as the catalog changes.

    Handlers return True when the stored schedule is consistent with the
    change (nothing to rewrite, or the rewrite was persisted) and False when
    the rewrite could not be written.
    """

    def __init__(self, store: ScheduleStore) -> None:
        self.store = store

    def attach(self, events: CatalogEvents) -> None:
        events.on_workout_deleted(self.on_workout_deleted)
        events.on_workouts_reordered(self.on_workouts_reordered)
        events.on_program_deleted(self.on_program_deleted)
        events.on_workout_ids_remapped(self.on_workout_ids_remapped)

    def _correct(self, action: str, corrected: ScheduleSnapshot) -> bool:
        if corrected == self.store.snapshot:
            return True
        # A refreshed weekday preview can turn the correction into a no-op
        return self.store.apply_snapshot(action, corrected) or not self.store.last_write_failed

    def on_workout_deleted(self, workout_id: str) -> bool:
        snapshot = self.store.snapshot
        if snapshot.schedule is not None:
            snapshot.schedule = strip_workout(snapshot.schedule, workout_id)
        snapshot.overrides = strip_workout_from_overrides(snapshot.overrides, workout_id)
        if snapshot.rotation_state is not None:
            snapshot.rotation_state = strip_workout_from_rotation(snapshot.rotation_state, workout_id)

        logger.info("Removing deleted workout from schedule", workout_id=workout_id, user_id=self.store.user_id)
        return self._correct("workout_deleted", snapshot)

    def on_workouts_reordered(self, program_id: str, workout_ids: list[str]) -> bool:
        snapshot = self.store.snapshot
        if snapshot.rotation_state is None:
            return True
        snapshot.rotation_state = reorder_rotation(snapshot.rotation_state, program_id, workout_ids)
        return self._correct("workouts_reordered", snapshot)

    def on_program_deleted(self, program_id: str) -> bool:
        """Destroy the rotation state of a deleted program.

        A plan-driven schedule that still points at the program is kept and
        resolves to rest until the user picks another schedule.
        """
        snapshot = self.store.snapshot
        if snapshot.rotation_state is None or snapshot.rotation_state.program_id != program_id:
            return True
        snapshot.rotation_state = None
        logger.info("Dropping rotation state of deleted program", program_id=program_id, user_id=self.store.user_id)
        return self._correct("program_deleted", snapshot)

    def on_workout_ids_remapped(self, id_map: dict[str, str]) -> bool:
        if not id_map:
            return True
        return self._correct("workout_ids_remapped", remap_workout_ids(self.store.snapshot, id_map))
