from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class Program(Base):
    """A named collection of workouts owned by a user.

    Stores:
    - rotation_state: pointer-based rotation progress for the active program
      ({workoutSequence, currentIndex, lastAdvancedAt}), NULL when the program
      is not driving the user's schedule
    """

    __tablename__ = "programs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    rotation_state: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    workouts: Mapped[list[ProgramWorkout]] = relationship(
        back_populates="program",
        cascade="all, delete-orphan",
        order_by="ProgramWorkout.position",
    )


class ProgramWorkout(Base):
    """A workout inside a program. Schedules reference these by id."""

    __tablename__ = "program_workouts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    program_id: Mapped[str] = mapped_column(String, ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    program: Mapped[Program] = relationship(back_populates="workouts")

    __table_args__ = (Index("idx_program_workouts_program_position", "program_id", "position"),)


class ActiveSchedule(Base):
    """The user's single active schedule rule.

    One row per user. Only the payload matching `type` is authoritative;
    weekday_assignment is kept in sync for display for every type.
    """

    __tablename__ = "active_schedules"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    weekday_assignment: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    rotating_days: Mapped[list | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    rotating_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rotating_current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    program_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    overrides: Mapped[list[ScheduleOverrideRecord]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleOverrideRecord.date",
    )


class ScheduleOverrideRecord(Base):
    """Date-specific exception to the active schedule (last write wins)."""

    __tablename__ = "schedule_overrides"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    schedule_id: Mapped[str] = mapped_column(
        String, ForeignKey("active_schedules.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    workout_id: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    schedule: Mapped[ActiveSchedule] = relationship(back_populates="overrides")

    __table_args__ = (UniqueConstraint("schedule_id", "date", name="uq_schedule_overrides_schedule_date"),)
