"""Tests for keeping schedule references valid as the catalog changes."""

from datetime import date

import pytest

from hercules.schedule.catalog import CatalogEvents
from hercules.schedule.integrity import (
    ReferentialIntegrityMaintainer,
    remap_workout_ids,
    reorder_rotation,
    strip_workout,
    strip_workout_from_overrides,
    strip_workout_from_rotation,
)
from hercules.schedule.resolver import resolve_workout_for_date
from hercules.schedule.store import ScheduleStore
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingSchedule,
    RotationState,
    ScheduleOverride,
    ScheduleSnapshot,
    WeeklySchedule,
)

USER = "user-1"


@pytest.fixture
def store(repository, fixed_clock) -> ScheduleStore:
    return ScheduleStore(repository, USER, fixed_clock)


@pytest.fixture
def events(store) -> CatalogEvents:
    events = CatalogEvents()
    ReferentialIntegrityMaintainer(store).attach(events)
    return events


class TestStripWorkout:
    """Tests for the pure reference-stripping helpers."""

    def test_rotation_keeps_cycle_length(self):
        """Test deleting B turns [A, B, Rest] into [A, Rest, Rest] without shrinking."""
        schedule = RotatingSchedule(rotating=RotatingConfig(days=["A", "B", None], start_date=date(2024, 1, 1)))
        stripped = strip_workout(schedule, "B")
        assert [day.workout_id for day in stripped.rotating.days] == ["A", None, None]
        assert [day.day_number for day in stripped.rotating.days] == [1, 2, 3]
        assert schedule.rotating.days[1].workout_id == "B"

    def test_weekly_slots_cleared(self):
        schedule = WeeklySchedule(weekday_assignment={"monday": "A", "tuesday": "B", "friday": "A"})
        stripped = strip_workout(schedule, "A")
        assert stripped.weekday_assignment["monday"] is None
        assert stripped.weekday_assignment["friday"] is None
        assert stripped.weekday_assignment["tuesday"] == "B"

    def test_overrides_become_forced_rest(self):
        overrides = [ScheduleOverride(date="2024-01-02", workout_id="A"), ScheduleOverride(date="2024-01-03", workout_id="B")]
        stripped = strip_workout_from_overrides(overrides, "A")
        assert [(o.date, o.workout_id) for o in stripped] == [("2024-01-02", None), ("2024-01-03", "B")]

    def test_sequence_preserves_order(self):
        state = RotationState(program_id="strength", workout_sequence=["X", "Y", "Z"], current_index=0)
        assert strip_workout_from_rotation(state, "Y").workout_sequence == ["X", "Z"]

    def test_pointer_clamps_to_start(self):
        """Test a pointer past the end of the shorter sequence resets to 0."""
        state = RotationState(program_id="strength", workout_sequence=["X", "Y", "Z"], current_index=2)
        stripped = strip_workout_from_rotation(state, "Z")
        assert stripped.workout_sequence == ["X", "Y"]
        assert stripped.current_index == 0

    def test_pointer_in_range_is_kept(self):
        state = RotationState(program_id="strength", workout_sequence=["X", "Y", "Z"], current_index=1)
        assert strip_workout_from_rotation(state, "Z").current_index == 1


class TestReorderAndRemap:
    """Tests for program reorders and id remapping."""

    def test_reorder_follows_program(self):
        state = RotationState(program_id="strength", workout_sequence=["X", "Y", "Z"], current_index=1)
        assert reorder_rotation(state, "strength", ["Z", "X", "Y"]).workout_sequence == ["Z", "X", "Y"]

    def test_reorder_of_other_program_is_ignored(self):
        state = RotationState(program_id="strength", workout_sequence=["X", "Y"])
        assert reorder_rotation(state, "ppl", ["C", "B", "A"]) is state

    def test_remap_everywhere(self):
        snapshot = ScheduleSnapshot(
            schedule=RotatingSchedule(rotating=RotatingConfig(days=["A", None, "B"])),
            overrides=[ScheduleOverride(date="2024-01-02", workout_id="A")],
            rotation_state=RotationState(program_id="ppl", workout_sequence=["A", "B"]),
        )
        remapped = remap_workout_ids(snapshot, {"A": "A2"})
        assert [day.workout_id for day in remapped.schedule.rotating.days] == ["A2", None, "B"]
        assert remapped.overrides[0].workout_id == "A2"
        assert remapped.rotation_state.workout_sequence == ["A2", "B"]


class TestReferentialIntegrityMaintainer:
    """Tests for event-driven corrections through the store."""

    def test_deleted_workout_no_longer_resolves(self, store, events, repository, catalog):
        """Test deleting B makes 2024-01-02 a rest day in the stored rotation."""
        store.commit(RotatingSchedule(rotating=RotatingConfig(days=["A", "B", None], start_date=date(2024, 1, 1))))
        assert resolve_workout_for_date(store.schedule, [], None, date(2024, 1, 2), catalog) == "B"

        events.workout_deleted("B")

        assert [day.workout_id for day in store.schedule.rotating.days] == ["A", None, None]
        assert resolve_workout_for_date(store.schedule, [], None, date(2024, 1, 2), catalog) is None
        stored = repository.snapshots[USER].schedule
        assert [day.workout_id for day in stored.rotating.days] == ["A", None, None]

    def test_deleted_workout_in_plan_driven_rotation(self, store, events, repository):
        store.commit(PlanDrivenSchedule(program_id="strength"))
        store.activate_program("strength", ["X", "Y", "Z"])
        store.advance_rotation()
        store.advance_rotation()

        events.workout_deleted("Z")

        assert store.rotation_state.workout_sequence == ["X", "Y"]
        assert store.rotation_state.current_index == 0
        assert repository.snapshots[USER].rotation_state.current_index == 0

    def test_deleting_unreferenced_workout_writes_nothing(self, store, events, repository):
        store.commit(WeeklySchedule(weekday_assignment={"monday": "A"}))
        repository.writes.clear()
        events.workout_deleted("Q")
        assert repository.writes == []

    def test_program_deleted_drops_rotation(self, store, events):
        store.commit(PlanDrivenSchedule(program_id="strength"))
        store.activate_program("strength", ["X"])
        events.program_deleted("strength")
        assert store.rotation_state is None
        assert isinstance(store.schedule, PlanDrivenSchedule)

    def test_reorder_event(self, store, events):
        store.activate_program("strength", ["X", "Y", "Z"])
        events.workouts_reordered("strength", ["Y", "Z", "X"])
        assert store.rotation_state.workout_sequence == ["Y", "Z", "X"]

    def test_remap_event(self, store, events):
        store.commit(WeeklySchedule(weekday_assignment={"monday": "A"}))
        events.workout_ids_remapped({"A": "A-copy"})
        assert store.schedule.weekday_assignment["monday"] == "A-copy"

    def test_failed_correction_rehydrates(self, store, events, repository):
        """Test a correction that cannot be written is reported so the delete can be held back."""
        store.commit(WeeklySchedule(weekday_assignment={"monday": "A"}))
        repository.fail_writes = True
        assert not events.workout_deleted("A")
        assert store.schedule.weekday_assignment["monday"] == "A"

    def test_nothing_to_correct_is_applied(self, store, events, repository):
        """Test events that touch nothing stored report success without writing."""
        store.commit(WeeklySchedule(weekday_assignment={"monday": "A"}))
        repository.fail_writes = True
        assert events.workout_deleted("Z")
        assert events.program_deleted("strength")
        assert events.workouts_reordered("strength", ["Y", "X"])
        assert events.workout_ids_remapped({})
