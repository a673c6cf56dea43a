"""
Database module for Team Tasks.

Handles:
- Teams, employees, workstations and memberships
- Task templates and their daily task instances
- Day preparation records
- Audit logs
"""

from .connection import (
    get_database,
    set_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    TeamDB,
    UserDB,
    WorkstationDB,
    EmployeeWorkstationDB,
    TaskTemplateDB,
    DailyTaskDB,
    DayPreparationDB,
    AuditLogDB,
    UserRoleEnum,
    RecurrenceTypeEnum,
)

__all__ = [
    "get_database",
    "set_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "TeamDB",
    "UserDB",
    "WorkstationDB",
    "EmployeeWorkstationDB",
    "TaskTemplateDB",
    "DailyTaskDB",
    "DayPreparationDB",
    "AuditLogDB",
    "UserRoleEnum",
    "RecurrenceTypeEnum",
]
