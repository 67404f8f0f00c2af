"""Active schedule module - resolution, rotation and integrity.

This module provides:
- Tagged schedule model (weekly, rotating, plan-driven) with overrides
- Pure rotation engine and the resolver façade used by display layers
- The store that owns schedule state and reconciles on write failures
- The draft editor and the catalog integrity maintainer
"""

from hercules.schedule.catalog import CatalogEvents, SqlWorkoutCatalog, StaticWorkoutCatalog, WorkoutCatalog
from hercules.schedule.editor import MAX_ROTATING_DAYS, ScheduleEditor
from hercules.schedule.errors import ScheduleError, ScheduleRepositoryError, ScheduleValidationError
from hercules.schedule.integrity import ReferentialIntegrityMaintainer
from hercules.schedule.repository import ScheduleRepository, SqlScheduleRepository
from hercules.schedule.resolver import (
    ActiveScheduleResolver,
    build_schedule_summary,
    describe_workout_for_date,
    resolve_workout_for_date,
)
from hercules.schedule.rotation import advance, advance_rotating, resolve_rotating, resolve_weekly
from hercules.schedule.store import ScheduleStore
from hercules.schedule.types import (
    PlanDrivenSchedule,
    RotatingConfig,
    RotatingDay,
    RotatingSchedule,
    RotationState,
    Schedule,
    ScheduleOverride,
    ScheduleResolution,
    ScheduleSnapshot,
    ScheduleSummary,
    WeeklySchedule,
)

__all__ = [
    "MAX_ROTATING_DAYS",
    "ActiveScheduleResolver",
    "CatalogEvents",
    "PlanDrivenSchedule",
    "ReferentialIntegrityMaintainer",
    "RotatingConfig",
    "RotatingDay",
    "RotatingSchedule",
    "RotationState",
    "Schedule",
    "ScheduleEditor",
    "ScheduleError",
    "ScheduleOverride",
    "ScheduleRepository",
    "ScheduleRepositoryError",
    "ScheduleResolution",
    "ScheduleSnapshot",
    "ScheduleStore",
    "ScheduleSummary",
    "ScheduleValidationError",
    "SqlScheduleRepository",
    "SqlWorkoutCatalog",
    "StaticWorkoutCatalog",
    "WeeklySchedule",
    "WorkoutCatalog",
    "advance",
    "advance_rotating",
    "build_schedule_summary",
    "describe_workout_for_date",
    "resolve_rotating",
    "resolve_weekly",
    "resolve_workout_for_date",
]
