"""
Repository classes for database operations.

Engine repositories take the caller's session so a service can compose
several calls into one transaction. The audit repository opens its own.
"""

from .team import TeamRepository, get_team_repository
from .workstations import WorkstationRepository, get_workstation_repository
from .templates import TemplateRepository, get_template_repository
from .daily_tasks import DailyTaskRepository, get_daily_task_repository, DIRECT_ASSIGNMENT_FILTER
from .preparation import DayPreparationRepository, get_preparation_repository
from .audit import AuditRepository, get_audit_repository

__all__ = [
    "TeamRepository",
    "get_team_repository",
    "WorkstationRepository",
    "get_workstation_repository",
    "TemplateRepository",
    "get_template_repository",
    "DailyTaskRepository",
    "get_daily_task_repository",
    "DIRECT_ASSIGNMENT_FILTER",
    "DayPreparationRepository",
    "get_preparation_repository",
    "AuditRepository",
    "get_audit_repository",
]
