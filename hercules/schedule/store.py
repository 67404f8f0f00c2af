"""Active schedule store.

Owns the canonical in-memory schedule, overrides and rotation state for one
user. Every mutation is two-phase:
1. Apply the change to local state (optimistic)
2. Write it to the repository
3. On a repository failure, discard local state wholesale and rehydrate

There is no partial rollback and no locking: a single active session per
user is assumed.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime

from hercules.core.logger import user_logger
from hercules.schedule.dates import date_key, local_now
from hercules.schedule.errors import ScheduleRepositoryError
from hercules.schedule.repository import ScheduleRepository
from hercules.schedule.rotation import advance, advance_rotating, sync_weekday_assignment
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingSchedule,
    RotationState,
    Schedule,
    ScheduleOverride,
    ScheduleSnapshot,
)

Mutation = Callable[[ScheduleSnapshot], ScheduleSnapshot | None]
Persist = Callable[[ScheduleSnapshot, ScheduleSnapshot], None]


class ScheduleStore:
    """Single owned state object for the user's active schedule."""

    def __init__(
        self,
        repository: ScheduleRepository,
        user_id: str,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.repository = repository
        self.user_id = user_id
        self._log = user_logger(user_id)
        self._clock = clock
        self._snapshot = ScheduleSnapshot()
        self.is_hydrated = False
        self.last_write_failed = False

    @property
    def schedule(self) -> Schedule | None:
        return self._snapshot.schedule

    @property
    def overrides(self) -> list[ScheduleOverride]:
        return list(self._snapshot.overrides)

    @property
    def rotation_state(self) -> RotationState | None:
        return self._snapshot.rotation_state

    @property
    def snapshot(self) -> ScheduleSnapshot:
        return self._snapshot.model_copy(deep=True)

    def hydrate(self) -> bool:
        """Replace local state with a fresh fetch from the repository.

        Returns:
            True when the fetch succeeded. On failure the store falls back to
            an empty state and returns False.
        """
        try:
            snapshot = self.repository.fetch(self.user_id)
        except ScheduleRepositoryError as e:
            self._log.warning("Schedule hydration failed, using empty state", error=str(e))
            self._snapshot = ScheduleSnapshot()
            self.is_hydrated = False
            return False

        self._snapshot = snapshot
        self.is_hydrated = True
        self._log.debug("Schedule store hydrated")
        return True

    def _apply(self, action: str, mutate: Mutation, persist: Persist) -> bool:
        self.last_write_failed = False
        previous = self._snapshot
        updated = mutate(previous.model_copy(deep=True))
        if updated is None:
            self._log.debug("Schedule mutation was a no-op", action=action)
            return False

        self._snapshot = updated
        try:
            persist(previous, updated)
        except ScheduleRepositoryError as e:
            self.last_write_failed = True
            self._log.error(
                "Schedule write failed, discarding local change and rehydrating",
                action=action,
                error=str(e),
            )
            self.hydrate()
            return False

        self._log.info("Schedule updated", action=action)
        return True

    # Schedule

    def commit(self, schedule: Schedule) -> bool:
        """Make schedule the active one (create or update the singleton)."""
        schedule = sync_weekday_assignment(schedule, self._clock())

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
            if snapshot.schedule is None or snapshot.schedule.id != schedule.id:
                # Overrides belong to the replaced schedule record
                snapshot.overrides = []
            snapshot.schedule = schedule.model_copy(deep=True)
            return snapshot

        def persist(_previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
            self.repository.save_schedule(self.user_id, updated.schedule)

        return self._apply("commit", mutate, persist)

    def clear_schedule(self) -> bool:
        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot.schedule is None:
                return None
            snapshot.schedule = None
            snapshot.overrides = []
            return snapshot

        def persist(_previous: ScheduleSnapshot, _updated: ScheduleSnapshot) -> None:
            self.repository.delete_schedule(self.user_id)

        return self._apply("clear_schedule", mutate, persist)

    # Overrides

    def add_override(self, target: date | datetime | str, workout_id: str | None, note: str | None = None) -> bool:
        """Set the workout (or forced rest) for one date; replaces an existing override."""
        override = ScheduleOverride(date=target, workout_id=workout_id, note=note)

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot.schedule is None:
                self._log.debug("Override ignored, no active schedule", date=override.date)
                return None
            snapshot.overrides = [o for o in snapshot.overrides if o.date != override.date] + [override]
            return snapshot

        def persist(_previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
            self.repository.upsert_override(updated.schedule.id, override)

        return self._apply("add_override", mutate, persist)

    def remove_override(self, target: date | datetime | str) -> bool:
        key = target if isinstance(target, str) else date_key(target)

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot.schedule is None or snapshot.override_for(key) is None:
                return None
            snapshot.overrides = [o for o in snapshot.overrides if o.date != key]
            return snapshot

        def persist(_previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
            self.repository.delete_override(updated.schedule.id, key)

        return self._apply("remove_override", mutate, persist)

    def clear_overrides(self) -> bool:
        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot.schedule is None or not snapshot.overrides:
                return None
            snapshot.overrides = []
            return snapshot

        def persist(_previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
            self.repository.clear_overrides(updated.schedule.id)

        return self._apply("clear_overrides", mutate, persist)

    # Rotation state

    def activate_program(self, program_id: str, workout_ids: list[str]) -> bool:
        """Start pointer-based rotation through a program's workouts at index 0."""
        state = RotationState(
            program_id=program_id,
            workout_sequence=list(workout_ids),
            current_index=0,
            last_advanced_at=self._clock(),
        )

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
            snapshot.rotation_state = state
            return snapshot

        def persist(_previous: ScheduleSnapshot, _updated: ScheduleSnapshot) -> None:
            self.repository.save_rotation_state(self.user_id, program_id, state)

        return self._apply("activate_program", mutate, persist)

    def deactivate_program(self) -> bool:
        """Destroy the rotation state of the active program."""

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot.rotation_state is None:
                return None
            snapshot.rotation_state = None
            return snapshot

        def persist(previous: ScheduleSnapshot, _updated: ScheduleSnapshot) -> None:
            self.repository.save_rotation_state(self.user_id, previous.rotation_state.program_id, None)

        return self._apply("deactivate_program", mutate, persist)

    @property
    def can_advance(self) -> bool:
        """True when the active schedule is moved by an explicit pointer.

        That is a plan-driven schedule whose program has live rotation state,
        or a rotating schedule without a start date.
        """
        return _advance_kind(self._snapshot) is not None

    def advance_rotation(self) -> bool:
        """Move a pointer-driven schedule to its next workout (wraps at the end)."""
        now = self._clock()

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            kind = _advance_kind(snapshot)
            if kind == "plan-driven":
                snapshot.rotation_state = advance(snapshot.rotation_state, now)
            elif kind == "rotating":
                schedule = snapshot.schedule
                snapshot.schedule = schedule.model_copy(update={"rotating": advance_rotating(schedule.rotating)})
            else:
                return None
            return snapshot

        def persist(_previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
            if isinstance(updated.schedule, RotatingSchedule):
                self.repository.save_schedule(self.user_id, updated.schedule)
                return
            state = updated.rotation_state
            self.repository.save_rotation_state(self.user_id, state.program_id, state)

        return self._apply("advance_rotation", mutate, persist)

    # Corrections

    def apply_snapshot(self, action: str, updated: ScheduleSnapshot) -> bool:
        """Replace local state with a corrected snapshot as one mutation.

        Only the parts that differ from the current state are written.
        """
        if updated.schedule is not None:
            updated = updated.model_copy(update={"schedule": sync_weekday_assignment(updated.schedule, self._clock())})

        def mutate(snapshot: ScheduleSnapshot) -> ScheduleSnapshot | None:
            if snapshot == updated:
                return None
            return updated.model_copy(deep=True)

        return self._apply(action, mutate, self._persist_difference)

    def _persist_difference(self, previous: ScheduleSnapshot, updated: ScheduleSnapshot) -> None:
        if updated.schedule != previous.schedule:
            if updated.schedule is None:
                self.repository.delete_schedule(self.user_id)
            else:
                self.repository.save_schedule(self.user_id, updated.schedule)

        if updated.schedule is not None:
            before = {override.date: override for override in previous.overrides}
            after = {override.date: override for override in updated.overrides}
            for key in before.keys() - after.keys():
                self.repository.delete_override(updated.schedule.id, key)
            for key, override in after.items():
                if before.get(key) != override:
                    self.repository.upsert_override(updated.schedule.id, override)

        if updated.rotation_state != previous.rotation_state:
            if updated.rotation_state is not None:
                self.repository.save_rotation_state(
                    self.user_id, updated.rotation_state.program_id, updated.rotation_state
                )
            elif previous.rotation_state is not None:
                self.repository.save_rotation_state(self.user_id, previous.rotation_state.program_id, None)


def _advance_kind(snapshot: ScheduleSnapshot) -> str | None:
    schedule = snapshot.schedule
    if isinstance(schedule, PlanDrivenSchedule):
        state = snapshot.rotation_state
        if state is not None and state.program_id == schedule.program_id and state.workout_sequence:
            return "plan-driven"
    elif isinstance(schedule, RotatingSchedule):
        if schedule.rotating.start_date is None and schedule.rotating.days:
            return "rotating"
    return None
