"""
SQLAlchemy 2.0 Database Models.
All datetime fields are timezone-aware (reference timezone from config).
"""
import uuid
from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, synonym

from dates import now_local


def new_uuid() -> str:
    return str(uuid.uuid4())


# Enums
class UserRole(str, PyEnum):
    WORKER = "worker"
    TEAM_LEADER = "team_leader"
    SUPERVISOR = "supervisor"
    CLINICIAN = "clinician"
    WHS_CONTROL_CENTER = "whs_control_center"  # administrative control role
    ADMIN = "admin"


class ExceptionType(str, PyEnum):
    INJURY = "injury"
    MEDICAL_LEAVE = "medical_leave"
    ACCIDENT = "accident"
    TRANSFER = "transfer"
    OTHER = "other"


class CaseStatus(str, PyEnum):
    NEW = "new"
    TRIAGED = "triaged"
    ASSESSED = "assessed"
    IN_REHAB = "in_rehab"
    RETURN_TO_WORK = "return_to_work"
    CLOSED = "closed"


class DutyType(str, PyEnum):
    MODIFIED = "modified"
    FULL = "full"


class PlanStatus(str, PyEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DayStatus(str, PyEnum):
    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"


# Base class
class Base(DeclarativeBase):
    pass


# Models
class Team(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    site_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    supervisor_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", use_alter=True), nullable=True
    )
    team_leader_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", use_alter=True), nullable=True
    )

    # Relationships
    members: Mapped[list["User"]] = relationship(
        "User", back_populates="team", foreign_keys="User.team_id"
    )
    supervisor: Mapped[Optional["User"]] = relationship("User", foreign_keys=[supervisor_id])
    team_leader: Mapped[Optional["User"]] = relationship("User", foreign_keys=[team_leader_id])


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    api_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )

    # Relationships
    team: Mapped[Optional["Team"]] = relationship(
        "Team", back_populates="members", foreign_keys=[team_id]
    )
    exceptions: Mapped[list["WorkerException"]] = relationship(
        "WorkerException", back_populates="worker", foreign_keys="WorkerException.user_id"
    )
    notifications: Mapped[list["Notification"]] = relationship(
        "Notification", back_populates="user"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.username


class WorkerException(Base):
    """
    A time-bounded condition affecting a worker's availability.
    Once escalated to medical tracking it is a case: clinician assigned,
    status journal in case_status_entries.
    """

    __tablename__ = "worker_exceptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True
    )
    exception_type: Mapped[ExceptionType] = mapped_column(Enum(ExceptionType), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # open-ended if NULL
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    clinician_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    return_to_work_duty_type: Mapped[Optional[DutyType]] = mapped_column(
        Enum(DutyType), nullable=True
    )
    return_to_work_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # Bumped on every status transition and plan change (optimistic concurrency)
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    worker: Mapped["User"] = relationship(
        "User", back_populates="exceptions", foreign_keys=[user_id]
    )
    team: Mapped[Optional["Team"]] = relationship("Team", foreign_keys=[team_id])
    clinician: Mapped[Optional["User"]] = relationship("User", foreign_keys=[clinician_id])
    status_entries: Mapped[list["CaseStatusEntry"]] = relationship(
        "CaseStatusEntry",
        back_populates="case",
        order_by="CaseStatusEntry.id",
        cascade="all, delete-orphan",
    )
    rehabilitation_plans: Mapped[list["RehabilitationPlan"]] = relationship(
        "RehabilitationPlan", back_populates="case"
    )

    worker_id = synonym("user_id")


class CaseStatusEntry(Base):
    """Append-only status journal; the row with the highest id is current."""

    __tablename__ = "case_status_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exception_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("worker_exceptions.id"), nullable=False
    )
    status: Mapped[CaseStatus] = mapped_column(Enum(CaseStatus), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(200), nullable=False)
    updated_by_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    case: Mapped["WorkerException"] = relationship(
        "WorkerException", back_populates="status_entries"
    )


class RehabilitationPlan(Base):
    __tablename__ = "rehabilitation_plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    exception_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("worker_exceptions.id"), nullable=False
    )
    clinician_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    plan_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PlanStatus] = mapped_column(
        Enum(PlanStatus), default=PlanStatus.ACTIVE, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    case: Mapped["WorkerException"] = relationship(
        "WorkerException", back_populates="rehabilitation_plans"
    )
    exercises: Mapped[list["RehabilitationExercise"]] = relationship(
        "RehabilitationExercise",
        back_populates="plan",
        order_by="RehabilitationExercise.exercise_order",
        cascade="all, delete-orphan",
    )
    completions: Mapped[list["ExerciseCompletion"]] = relationship(
        "ExerciseCompletion", back_populates="plan", cascade="all, delete-orphan"
    )


class RehabilitationExercise(Base):
    __tablename__ = "rehabilitation_exercises"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rehabilitation_plans.id"), nullable=False
    )
    exercise_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repetitions: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    exercise_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    plan: Mapped["RehabilitationPlan"] = relationship(
        "RehabilitationPlan", back_populates="exercises"
    )


class ExerciseCompletion(Base):
    __tablename__ = "exercise_completions"
    __table_args__ = (
        UniqueConstraint("plan_id", "exercise_id", "completion_date", name="uq_plan_exercise_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rehabilitation_plans.id"), nullable=False
    )
    exercise_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rehabilitation_exercises.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )

    # Relationships
    plan: Mapped["RehabilitationPlan"] = relationship(
        "RehabilitationPlan", back_populates="completions"
    )


class WorkerSchedule(Base):
    __tablename__ = "worker_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    worker_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    worker: Mapped["User"] = relationship("User", foreign_keys=[worker_id])


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="notifications")
