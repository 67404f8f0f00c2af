"""Root conftest for all tests.

Shared fixtures: an isolated in-memory SQLite database, a fixed clock, a
static workout catalog and an in-memory schedule repository whose writes
can be made to fail.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hercules.db.models import Base
from hercules.db.session import session_scope
from hercules.schedule.catalog import StaticWorkoutCatalog
from hercules.schedule.errors import ScheduleRepositoryError
from hercules.schedule.types import RotationState, Schedule, ScheduleOverride, ScheduleSnapshot

# Wednesday
FIXED_NOW = datetime(2024, 1, 3, 9, 30)


class InMemoryScheduleRepository:
    """ScheduleRepository double keeping one snapshot per user.

    Set `fail_writes = True` to make every write raise, like a dropped
    network connection. Put write names in `fail_on` to fail only those.
    """

    def __init__(self) -> None:
        self.snapshots: dict[str, ScheduleSnapshot] = {}
        self.fail_writes = False
        self.fail_on: set[str] = set()
        self.fail_reads = False
        self.writes: list[str] = []

    def _user_for_schedule(self, schedule_id: str) -> str:
        for user_id, snapshot in self.snapshots.items():
            if snapshot.schedule is not None and snapshot.schedule.id == schedule_id:
                return user_id
        raise ScheduleRepositoryError(f"Schedule {schedule_id} not found")

    def _write(self, name: str) -> None:
        if self.fail_writes or name in self.fail_on:
            raise ScheduleRepositoryError(f"{name} failed: connection reset")
        self.writes.append(name)

    def fetch(self, user_id: str) -> ScheduleSnapshot:
        if self.fail_reads:
            raise ScheduleRepositoryError("fetch failed: connection reset")
        return self.snapshots.get(user_id, ScheduleSnapshot()).model_copy(deep=True)

    def save_schedule(self, user_id: str, schedule: Schedule) -> None:
        self._write("save_schedule")
        snapshot = self.snapshots.setdefault(user_id, ScheduleSnapshot())
        if snapshot.schedule is None or snapshot.schedule.id != schedule.id:
            snapshot.overrides = []
        snapshot.schedule = schedule.model_copy(deep=True)

    def delete_schedule(self, user_id: str) -> None:
        self._write("delete_schedule")
        snapshot = self.snapshots.setdefault(user_id, ScheduleSnapshot())
        snapshot.schedule = None
        snapshot.overrides = []

    def upsert_override(self, schedule_id: str, override: ScheduleOverride) -> None:
        self._write("upsert_override")
        snapshot = self.snapshots[self._user_for_schedule(schedule_id)]
        snapshot.overrides = [o for o in snapshot.overrides if o.date != override.date] + [override.model_copy()]

    def delete_override(self, schedule_id: str, date: str) -> None:
        self._write("delete_override")
        snapshot = self.snapshots[self._user_for_schedule(schedule_id)]
        snapshot.overrides = [o for o in snapshot.overrides if o.date != date]

    def clear_overrides(self, schedule_id: str) -> None:
        self._write("clear_overrides")
        self.snapshots[self._user_for_schedule(schedule_id)].overrides = []

    def save_rotation_state(self, user_id: str, program_id: str, state: RotationState | None) -> None:
        self._write("save_rotation_state")
        snapshot = self.snapshots.setdefault(user_id, ScheduleSnapshot())
        snapshot.rotation_state = state.model_copy(deep=True) if state is not None else None


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def repository() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


@pytest.fixture
def catalog() -> StaticWorkoutCatalog:
    """Two programs: a push/pull/legs split and a three-workout strength block."""
    return StaticWorkoutCatalog(
        {
            "ppl": [("A", "Push"), ("B", "Pull"), ("C", "Legs")],
            "strength": [("X", "Squat Day"), ("Y", "Bench Day"), ("Z", "Deadlift Day")],
        }
    )


@pytest.fixture
def engine():
    """Isolated in-memory SQLite database shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return session_scope(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))
