"""Tests for the SQLAlchemy schedule repository against in-memory SQLite."""

from datetime import UTC, date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from hercules.db.models import ActiveSchedule, Program
from hercules.schedule.catalog import SqlWorkoutCatalog
from hercules.schedule.errors import ScheduleRepositoryError
from hercules.schedule.repository import (
    SqlScheduleRepository,
    rotation_state_from_wire,
    rotation_state_to_wire,
)
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingSchedule,
    RotationState,
    ScheduleOverride,
    WeeklySchedule,
)

USER = "user-1"


@pytest.fixture
def repo(session_factory) -> SqlScheduleRepository:
    return SqlScheduleRepository(session_factory)


@pytest.fixture
def sql_catalog(session_factory) -> SqlWorkoutCatalog:
    return SqlWorkoutCatalog(USER, session_factory=session_factory)


class TestScheduleRows:
    """Tests for the singleton active_schedules row."""

    def test_empty_fetch(self, repo):
        snapshot = repo.fetch(USER)
        assert snapshot.schedule is None
        assert snapshot.overrides == []
        assert snapshot.rotation_state is None

    def test_rotating_round_trip(self, repo):
        schedule = RotatingSchedule(
            name="Cycle",
            rotating=RotatingConfig(days=["A", None, "B"], start_date=date(2024, 1, 1)),
        )
        repo.save_schedule(USER, schedule)

        stored = repo.fetch(USER).schedule
        assert isinstance(stored, RotatingSchedule)
        assert stored.id == schedule.id
        assert stored.rotating.start_date == date(2024, 1, 1)
        assert [day.workout_id for day in stored.rotating.days] == ["A", None, "B"]
        assert [day.id for day in stored.rotating.days] == [day.id for day in schedule.rotating.days]

    def test_update_in_place(self, repo):
        schedule = WeeklySchedule(weekday_assignment={"monday": "A"})
        repo.save_schedule(USER, schedule)
        repo.save_schedule(USER, schedule.model_copy(update={"weekday_assignment": {**schedule.weekday_assignment, "monday": "B"}}))
        assert repo.fetch(USER).schedule.weekday_assignment["monday"] == "B"

    def test_new_id_replaces_row_and_overrides(self, repo):
        """Test one schedule per user: saving a new id replaces the row and its overrides."""
        first = WeeklySchedule()
        repo.save_schedule(USER, first)
        repo.upsert_override(first.id, ScheduleOverride(date="2024-01-02", workout_id="A"))

        second = PlanDrivenSchedule(program_id="p1")
        repo.save_schedule(USER, second)

        snapshot = repo.fetch(USER)
        assert snapshot.schedule.id == second.id
        assert snapshot.overrides == []

    def test_delete_schedule(self, repo):
        repo.save_schedule(USER, WeeklySchedule())
        repo.delete_schedule(USER)
        assert repo.fetch(USER).schedule is None

    def test_malformed_row_is_ignored(self, repo, session_factory):
        with session_factory() as session:
            session.add(ActiveSchedule(user_id=USER, name="Broken", type="plan-driven", weekday_assignment={}))
        assert repo.fetch(USER).schedule is None

    def test_legacy_rotating_payload(self, repo, session_factory):
        """Test rows storing bare id lists and partial weekday maps still load."""
        with session_factory() as session:
            session.add(
                ActiveSchedule(
                    user_id=USER,
                    name="Legacy",
                    type="rotating",
                    weekday_assignment={"monday": "A"},
                    rotating_days=["A", None, {"planId": "B", "dayNumber": 7}],
                    rotating_start_date=date(2024, 1, 1),
                )
            )
        stored = repo.fetch(USER).schedule
        assert [day.workout_id for day in stored.rotating.days] == ["A", None, "B"]
        assert [day.day_number for day in stored.rotating.days] == [1, 2, 3]
        assert stored.weekday_assignment["sunday"] is None


class TestOverrideRows:
    """Tests for schedule_overrides."""

    def test_upsert_replaces_same_date(self, repo):
        schedule = WeeklySchedule()
        repo.save_schedule(USER, schedule)
        repo.upsert_override(schedule.id, ScheduleOverride(date="2024-01-02", workout_id="A"))
        repo.upsert_override(schedule.id, ScheduleOverride(date="2024-01-02", workout_id=None, note="Sick"))

        overrides = repo.fetch(USER).overrides
        assert len(overrides) == 1
        assert overrides[0].workout_id is None
        assert overrides[0].note == "Sick"

    def test_delete_and_clear(self, repo):
        schedule = WeeklySchedule()
        repo.save_schedule(USER, schedule)
        for key in ("2024-01-02", "2024-01-03", "2024-01-04"):
            repo.upsert_override(schedule.id, ScheduleOverride(date=key, workout_id="A"))

        repo.delete_override(schedule.id, "2024-01-03")
        assert sorted(o.date for o in repo.fetch(USER).overrides) == ["2024-01-02", "2024-01-04"]

        repo.clear_overrides(schedule.id)
        assert repo.fetch(USER).overrides == []


class TestRotationStateRows:
    """Tests for programs.rotation_state."""

    def test_save_and_fetch(self, repo, sql_catalog):
        program_id = sql_catalog.create_program("Strength", ["Squat", "Bench"])
        workout_ids = sql_catalog.program_workout_ids(program_id)
        repo.save_schedule(USER, PlanDrivenSchedule(program_id=program_id))

        state = RotationState(program_id=program_id, workout_sequence=workout_ids, current_index=1)
        repo.save_rotation_state(USER, program_id, state)

        fetched = repo.fetch(USER).rotation_state
        assert fetched.program_id == program_id
        assert fetched.workout_sequence == workout_ids
        assert fetched.current_index == 1

    def test_single_live_rotation(self, repo, sql_catalog, session_factory):
        """Test activating a second program clears the first one's state."""
        first = sql_catalog.create_program("One", ["a"])
        second = sql_catalog.create_program("Two", ["b"])
        repo.save_rotation_state(USER, first, RotationState(program_id=first, workout_sequence=["a"]))
        repo.save_rotation_state(USER, second, RotationState(program_id=second, workout_sequence=["b"]))

        with session_factory() as session:
            assert session.get(Program, first).rotation_state is None
            assert session.get(Program, second).rotation_state is not None

    def test_clear_state(self, repo, sql_catalog):
        program_id = sql_catalog.create_program("One", ["a"])
        repo.save_rotation_state(USER, program_id, RotationState(program_id=program_id, workout_sequence=["a"]))
        repo.save_rotation_state(USER, program_id, None)
        assert repo.fetch(USER).rotation_state is None

    def test_unknown_program(self, repo):
        with pytest.raises(ScheduleRepositoryError):
            repo.save_rotation_state(USER, "missing", RotationState(program_id="missing"))
        repo.save_rotation_state(USER, "missing", None)

    def test_wire_format(self):
        now = datetime(2024, 1, 3, 8, 0, tzinfo=UTC)
        wire = rotation_state_to_wire(RotationState(program_id="p", workout_sequence=["x"], last_advanced_at=now))
        assert wire == {"workoutSequence": ["x"], "currentIndex": 0, "lastAdvancedAt": "2024-01-03T08:00:00+00:00"}
        assert rotation_state_from_wire("p", wire).last_advanced_at == now

    def test_legacy_millisecond_timestamp(self):
        state = rotation_state_from_wire(
            "p", {"workoutSequence": ["x", None, "y"], "currentIndex": -1, "lastAdvancedAt": 1704268800000}
        )
        assert state.workout_sequence == ["x", "y"]
        assert state.current_index == 0
        assert state.last_advanced_at == datetime(2024, 1, 3, 8, 0, tzinfo=UTC)


class TestErrors:
    """Tests that driver errors surface as ScheduleRepositoryError."""

    def test_database_error_is_wrapped(self):
        def broken_session():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        repo = SqlScheduleRepository(broken_session)
        with pytest.raises(ScheduleRepositoryError):
            repo.fetch(USER)
        with pytest.raises(ScheduleRepositoryError):
            repo.save_schedule(USER, WeeklySchedule())
