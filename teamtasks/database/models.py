"""
SQLAlchemy models for the task database.

Schema includes:
- Teams, users (managers and employees) and workstations
- Task templates (recurring or one-shot, workstation or direct target)
- Daily task instances materialized from templates
- Day preparation records per team and business day
- Audit logs
"""

import uuid
from datetime import datetime, date as date_type
from typing import Optional, List, Dict
from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Date,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def new_id() -> str:
    """Opaque identifier for new rows."""
    return uuid.uuid4().hex


# ==================== ENUMS ====================

class UserRoleEnum(str, enum.Enum):
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class RecurrenceTypeEnum(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    X_PER_WEEK = "x_per_week"


# ==================== TEAM ====================

class TeamDB(Base):
    """A manager and their employees. Scoping boundary for queries and events."""
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    members: Mapped[List["UserDB"]] = relationship(
        "UserDB", back_populates="team", foreign_keys="UserDB.team_id"
    )
    workstations: Mapped[List["WorkstationDB"]] = relationship(
        "WorkstationDB", back_populates="team", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_teams_manager", "manager_id"),
    )


class UserDB(Base):
    """Manager or employee account (credentials live with the auth provider)."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRoleEnum.EMPLOYEE.value)
    team_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    team: Mapped[Optional["TeamDB"]] = relationship(
        "TeamDB", back_populates="members", foreign_keys=[team_id]
    )
    memberships: Mapped[List["EmployeeWorkstationDB"]] = relationship(
        "EmployeeWorkstationDB", back_populates="employee", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_users_team", "team_id"),
        Index("idx_users_role", "role"),
    )

    @property
    def is_manager(self) -> bool:
        return self.role == UserRoleEnum.MANAGER.value


# ==================== WORKSTATIONS ====================

class WorkstationDB(Base):
    """Named grouping of employees used as an assignment target."""
    __tablename__ = "workstations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)  # duplicates allowed
    team_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    team: Mapped["TeamDB"] = relationship("TeamDB", back_populates="workstations")
    memberships: Mapped[List["EmployeeWorkstationDB"]] = relationship(
        "EmployeeWorkstationDB", back_populates="workstation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_workstations_team", "team_id"),
    )


class EmployeeWorkstationDB(Base):
    """Membership join between employees and workstations."""
    __tablename__ = "employee_workstations"

    employee_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    workstation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("workstations.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    employee: Mapped["UserDB"] = relationship("UserDB", back_populates="memberships")
    workstation: Mapped["WorkstationDB"] = relationship("WorkstationDB", back_populates="memberships")

    __table_args__ = (
        Index("idx_membership_workstation", "workstation_id"),
    )


# ==================== TEMPLATES ====================

class TaskTemplateDB(Base):
    """Manager-authored task definition. Targets a workstation XOR an employee."""
    __tablename__ = "task_templates"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Assignment target
    workstation_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("workstations.id", ondelete="CASCADE"), nullable=True
    )
    assigned_to_employee_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    # Schedule
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=True)
    recurrence_type: Mapped[str] = mapped_column(String(20), default=RecurrenceTypeEnum.DAILY.value)
    recurrence_days: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # "1,3,5"
    target_per_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    notify_employee: Mapped[bool] = mapped_column(Boolean, default=True)

    # Ownership
    team_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    workstation: Mapped[Optional["WorkstationDB"]] = relationship("WorkstationDB")
    assigned_to_employee: Mapped[Optional["UserDB"]] = relationship(
        "UserDB", foreign_keys=[assigned_to_employee_id]
    )
    daily_tasks: Mapped[List["DailyTaskDB"]] = relationship(
        "DailyTaskDB", back_populates="task_template", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_templates_team", "team_id"),
        Index("idx_templates_workstation", "workstation_id"),
        Index("idx_templates_employee", "assigned_to_employee_id"),
        Index("idx_templates_recurring", "is_recurring"),
    )


# ==================== DAILY TASKS ====================

class DailyTaskDB(Base):
    """Concrete per-employee, per-day instance of a template."""
    __tablename__ = "daily_tasks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    task_template_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("task_templates.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)

    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    task_template: Mapped["TaskTemplateDB"] = relationship("TaskTemplateDB", back_populates="daily_tasks")
    employee: Mapped["UserDB"] = relationship("UserDB")

    __table_args__ = (
        UniqueConstraint("task_template_id", "employee_id", "date", name="uq_daily_task_template_employee_date"),
        Index("idx_daily_tasks_employee", "employee_id"),
        Index("idx_daily_tasks_template", "task_template_id"),
        Index("idx_daily_tasks_date", "date"),
    )


class DayPreparationDB(Base):
    """Marks that a materialization pass ran for a team and business day."""
    __tablename__ = "day_preparations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    team_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    prepared_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    prepared_by_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("team_id", "date", name="uq_day_preparation_team_date"),
        Index("idx_day_preparation_date", "date"),
    )


# ==================== AUDIT ====================

class AuditLogDB(Base):
    """Audit trail for destructive and ownership-changing operations."""
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[Dict]] = mapped_column(JSON, nullable=True)
    level: Mapped[str] = mapped_column(String(20), default="info")
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("idx_audit_action", "action"),
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )
