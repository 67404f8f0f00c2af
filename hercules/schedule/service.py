"""Schedule service - the consumer-facing entry point.

Wires store, catalog, integrity maintainer, resolver and editor for one user
and exposes the operations the dashboard, calendar and schedule card use.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime

from loguru import logger
from pydantic import BaseModel, Field

from hercules.db.session import SessionFactory, get_session
from hercules.schedule.catalog import CatalogEvents, SqlWorkoutCatalog, WorkoutCatalog
from hercules.schedule.dates import local_now
from hercules.schedule.editor import ScheduleEditor
from hercules.schedule.integrity import ReferentialIntegrityMaintainer
from hercules.schedule.repository import ScheduleRepository, SqlScheduleRepository
from hercules.schedule.resolver import ActiveScheduleResolver
from hercules.schedule.store import ScheduleStore
from hercules.schedule.types import (
    WEEKDAY_KEYS,
    ScheduleResolution,
    ScheduleSummary,
    ScheduleType,
    WeekdayAssignment,
    normalize_weekday_assignment,
)


class ScheduleDraft(BaseModel):
    """User input for a new active schedule.

    Attributes:
        type: Schedule type to save
        name: Optional display name
        weekday_assignment: Weekday to workout id (weekly)
        rotating_days: Ordered cycle of workout ids, None for rest (rotating)
        start_date: First day of the cycle (rotating)
        program_id: Program to follow (plan-driven)
    """

    type: ScheduleType
    name: str | None = None
    weekday_assignment: WeekdayAssignment = Field(default_factory=lambda: normalize_weekday_assignment({}))
    rotating_days: list[str | None] = Field(default_factory=list)
    start_date: date | None = None
    program_id: str | None = None


class ScheduleService:
    """Active schedule operations for one user."""

    def __init__(
        self,
        user_id: str,
        repository: ScheduleRepository | None = None,
        catalog: WorkoutCatalog | None = None,
        clock: Callable[[], datetime] = local_now,
        session_factory: SessionFactory = get_session,
    ) -> None:
        self.user_id = user_id
        self.events = CatalogEvents()
        self.catalog = catalog or SqlWorkoutCatalog(user_id, self.events, session_factory)
        self.store = ScheduleStore(repository or SqlScheduleRepository(session_factory), user_id, clock)
        self.maintainer = ReferentialIntegrityMaintainer(self.store)
        self.maintainer.attach(self.events)
        self.resolver = ActiveScheduleResolver(self.store, self.catalog, clock)
        self._clock = clock

    def load(self) -> ScheduleService:
        self.store.hydrate()
        return self

    def editor(self) -> ScheduleEditor:
        return ScheduleEditor(self.store, self.catalog, self._clock)

    def resolve_workout_for_date(self, target: date | datetime) -> str | None:
        return self.resolver.resolve_workout_for_date(target)

    def describe_workout_for_date(self, target: date | datetime) -> ScheduleResolution:
        return self.resolver.describe_workout_for_date(target)

    def today(self) -> ScheduleResolution:
        return self.resolver.resolve_today()

    def week(self, start: date | datetime | None = None) -> list[ScheduleResolution]:
        return self.resolver.resolve_range(start or self.resolver.today(), 7)

    def get_schedule_summary(self) -> ScheduleSummary:
        return self.resolver.get_schedule_summary()

    def save_schedule(self, draft: ScheduleDraft) -> bool:
        """Apply a draft through the editor and commit it.

        Rotation days beyond the day cap are dropped, like taps on a full
        rotation in the editor.
        """
        editor = self.editor()
        editor.set_schedule_type(draft.type)
        if draft.name is not None:
            editor.set_name(draft.name)

        if draft.type == "weekly":
            for day in WEEKDAY_KEYS:
                editor.assign_weekday(day, draft.weekday_assignment.get(day))
        elif draft.type == "rotating":
            while editor.rotating_days:
                editor.remove_rotating_day(0)
            for workout_id in draft.rotating_days:
                if not editor.add_rotating_day(workout_id):
                    logger.debug("Rotation day dropped at cap", user_id=self.user_id)
            if draft.start_date is not None:
                editor.set_rotating_start_date(draft.start_date)
        elif draft.program_id is not None and not editor.set_program(draft.program_id):
            return False

        return editor.save()

    def add_override(self, target: date | datetime | str, workout_id: str | None, note: str | None = None) -> bool:
        return self.store.add_override(target, workout_id, note)

    def remove_override(self, target: date | datetime | str) -> bool:
        return self.store.remove_override(target)

    def clear_overrides(self) -> bool:
        return self.store.clear_overrides()

    def advance_rotation(self) -> bool:
        return self.store.advance_rotation()
