"""Workout catalog contract.

The catalog (programs and their workouts) is owned by the plan/program
subsystem. Schedules only reference workouts by id, so the engine needs
existence and name lookups plus notifications when workouts go away.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from hercules.db.models import Program, ProgramWorkout
from hercules.db.session import SessionFactory, get_session
from hercules.schedule.errors import ScheduleRepositoryError

REST_LABEL = "Rest"

WorkoutDeletedHandler = Callable[[str], bool | None]
WorkoutsReorderedHandler = Callable[[str, list[str]], bool | None]
ProgramDeletedHandler = Callable[[str], bool | None]
WorkoutIdsRemappedHandler = Callable[[dict[str, str]], bool | None]


class WorkoutCatalog(Protocol):
    """Read-only view of the workout registry."""

    def workout_exists(self, workout_id: str) -> bool: ...

    def workout_name(self, workout_id: str | None) -> str: ...

    def program_exists(self, program_id: str) -> bool: ...

    def program_workout_ids(self, program_id: str) -> list[str] | None: ...


class CatalogEvents:
    """Synchronous publish/subscribe hub for catalog changes.

    Handlers run inline, in subscription order, inside the call that
    publishes the event. A handler returns False when it could not bring
    its state in line with the change; publishing returns False if any
    handler did.
    """

    def __init__(self) -> None:
        self._workout_deleted: list[WorkoutDeletedHandler] = []
        self._workouts_reordered: list[WorkoutsReorderedHandler] = []
        self._program_deleted: list[ProgramDeletedHandler] = []
        self._workout_ids_remapped: list[WorkoutIdsRemappedHandler] = []

    def on_workout_deleted(self, handler: WorkoutDeletedHandler) -> None:
        self._workout_deleted.append(handler)

    def on_workouts_reordered(self, handler: WorkoutsReorderedHandler) -> None:
        self._workouts_reordered.append(handler)

    def on_program_deleted(self, handler: ProgramDeletedHandler) -> None:
        self._program_deleted.append(handler)

    def on_workout_ids_remapped(self, handler: WorkoutIdsRemappedHandler) -> None:
        self._workout_ids_remapped.append(handler)

    @staticmethod
    def _all_applied(results: list[bool | None]) -> bool:
        return all(result is not False for result in results)

    def workout_deleted(self, workout_id: str) -> bool:
        logger.debug("Publishing workout_deleted", workout_id=workout_id)
        return self._all_applied([handler(workout_id) for handler in self._workout_deleted])

    def workouts_reordered(self, program_id: str, workout_ids: list[str]) -> bool:
        logger.debug("Publishing workouts_reordered", program_id=program_id, count=len(workout_ids))
        return self._all_applied([handler(program_id, list(workout_ids)) for handler in self._workouts_reordered])

    def program_deleted(self, program_id: str) -> bool:
        logger.debug("Publishing program_deleted", program_id=program_id)
        return self._all_applied([handler(program_id) for handler in self._program_deleted])

    def workout_ids_remapped(self, id_map: dict[str, str]) -> bool:
        logger.debug("Publishing workout_ids_remapped", count=len(id_map))
        return self._all_applied([handler(dict(id_map)) for handler in self._workout_ids_remapped])


class StaticWorkoutCatalog:
    """In-memory catalog built from {program_id: [(workout_id, name), ...]}."""

    def __init__(self, programs: dict[str, list[tuple[str, str]]] | None = None) -> None:
        self._programs: dict[str, list[tuple[str, str]]] = {
            program_id: list(workouts) for program_id, workouts in (programs or {}).items()
        }

    def _names(self) -> dict[str, str]:
        return {workout_id: name for workouts in self._programs.values() for workout_id, name in workouts}

    def workout_exists(self, workout_id: str) -> bool:
        return workout_id in self._names()

    def workout_name(self, workout_id: str | None) -> str:
        if workout_id is None:
            return REST_LABEL
        return self._names().get(workout_id, REST_LABEL)

    def program_exists(self, program_id: str) -> bool:
        return program_id in self._programs

    def program_workout_ids(self, program_id: str) -> list[str] | None:
        workouts = self._programs.get(program_id)
        if workouts is None:
            return None
        return [workout_id for workout_id, _ in workouts]

    def remove_workout(self, workout_id: str) -> None:
        for program_id, workouts in self._programs.items():
            self._programs[program_id] = [entry for entry in workouts if entry[0] != workout_id]


class SqlWorkoutCatalog:
    """Catalog over the programs / program_workouts tables.

    Mutations publish their event on `events` after the catalog write
    succeeds, so schedule references are corrected in the same call.
    """

    def __init__(
        self,
        user_id: str,
        events: CatalogEvents | None = None,
        session_factory: SessionFactory = get_session,
    ) -> None:
        self.user_id = user_id
        self.events = events or CatalogEvents()
        self._session_factory = session_factory

    def workout_exists(self, workout_id: str) -> bool:
        with self._session_factory() as session:
            found = session.execute(
                select(ProgramWorkout.id)
                .join(Program, Program.id == ProgramWorkout.program_id)
                .where(ProgramWorkout.id == workout_id, Program.user_id == self.user_id)
            ).first()
        return found is not None

    def workout_name(self, workout_id: str | None) -> str:
        if workout_id is None:
            return REST_LABEL
        with self._session_factory() as session:
            name = session.execute(
                select(ProgramWorkout.name)
                .join(Program, Program.id == ProgramWorkout.program_id)
                .where(ProgramWorkout.id == workout_id, Program.user_id == self.user_id)
            ).scalar_one_or_none()
        return name or REST_LABEL

    def program_exists(self, program_id: str) -> bool:
        with self._session_factory() as session:
            return self._get_program(session, program_id) is not None

    def program_workout_ids(self, program_id: str) -> list[str] | None:
        with self._session_factory() as session:
            program = self._get_program(session, program_id)
            if program is None:
                return None
            return [workout.id for workout in program.workouts]

    def create_program(self, name: str, workout_names: list[str] | None = None) -> str:
        """Create a program with workouts in the given order. Returns the program id."""
        try:
            with self._session_factory() as session:
                program = Program(user_id=self.user_id, name=name)
                program.workouts = [
                    ProgramWorkout(name=workout_name, position=position)
                    for position, workout_name in enumerate(workout_names or [])
                ]
                session.add(program)
                session.flush()
                program_id = program.id
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to create program: {e}") from e
        logger.info("Created program", program_id=program_id, user_id=self.user_id)
        return program_id

    def add_workout(self, program_id: str, name: str) -> str | None:
        """Append a workout to a program. Returns its id, None if the program is unknown."""
        try:
            with self._session_factory() as session:
                program = self._get_program(session, program_id)
                if program is None:
                    return None
                position = session.execute(
                    select(func.count(ProgramWorkout.id)).where(ProgramWorkout.program_id == program_id)
                ).scalar_one()
                workout = ProgramWorkout(program_id=program_id, name=name, position=position)
                session.add(workout)
                session.flush()
                workout_id = workout.id
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to add workout: {e}") from e
        return workout_id

    def delete_workout(self, workout_id: str) -> bool:
        """Delete a workout once schedule references to it are rewritten.

        workout_deleted is published first. If a subscriber cannot persist
        its correction the workout is kept, so no stored schedule is left
        pointing at a deleted workout.
        """
        if not self.workout_exists(workout_id):
            return False
        if not self.events.workout_deleted(workout_id):
            logger.error("Schedule correction failed, workout not deleted", workout_id=workout_id)
            return False

        try:
            with self._session_factory() as session:
                workout = session.execute(
                    select(ProgramWorkout)
                    .join(Program, Program.id == ProgramWorkout.program_id)
                    .where(ProgramWorkout.id == workout_id, Program.user_id == self.user_id)
                ).scalar_one_or_none()
                if workout is None:
                    return False
                session.delete(workout)
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to delete workout {workout_id}: {e}") from e

        logger.info("Deleted workout", workout_id=workout_id, user_id=self.user_id)
        return True

    def reorder_workouts(self, program_id: str, workout_ids: list[str]) -> bool:
        """Reorder a program's workouts and publish workouts_reordered.

        Ids not in the program are ignored.
        """
        try:
            with self._session_factory() as session:
                program = self._get_program(session, program_id)
                if program is None:
                    return False
                by_id = {workout.id: workout for workout in program.workouts}
                ordered = [by_id[workout_id] for workout_id in workout_ids if workout_id in by_id]
                for position, workout in enumerate(ordered):
                    workout.position = position
                ordered_ids = [workout.id for workout in ordered]
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to reorder program {program_id}: {e}") from e

        self.events.workouts_reordered(program_id, ordered_ids)
        return True

    def delete_program(self, program_id: str) -> bool:
        """Delete a program with its workouts after the schedule lets go of them.

        program_deleted and one workout_deleted per workout are published
        before the delete; the program is kept if any correction fails.
        """
        workout_ids = self.program_workout_ids(program_id)
        if workout_ids is None:
            return False

        applied = self.events.program_deleted(program_id)
        for workout_id in workout_ids:
            applied = self.events.workout_deleted(workout_id) and applied
        if not applied:
            logger.error("Schedule correction failed, program not deleted", program_id=program_id)
            return False

        try:
            with self._session_factory() as session:
                program = self._get_program(session, program_id)
                if program is None:
                    return False
                session.delete(program)
        except SQLAlchemyError as e:
            raise ScheduleRepositoryError(f"Failed to delete program {program_id}: {e}") from e

        logger.info("Deleted program", program_id=program_id, user_id=self.user_id)
        return True

    def _get_program(self, session, program_id: str) -> Program | None:
        return session.execute(
            select(Program).where(Program.id == program_id, Program.user_id == self.user_id)
        ).scalar_one_or_none()
