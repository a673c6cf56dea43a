"""
Assignment resolution and reassignment of daily tasks.

Who should hold a template's instances:
- workstation template: the workstation's current members who are employees
  of the template's team (none is a valid answer)
- direct template: its single assignee

Reassignment moves an existing instance to another employee in place. The
instance keeps its id and completion state. Two instances of the same
template for the same employee and day cannot exist: a pre-check gives a
clean CONFLICT, and the unique constraint catches the race the pre-check
cannot see.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_database
from ..database.models import TaskTemplateDB, DailyTaskDB, UserDB
from ..database.exceptions import (
    AssignmentConflictError,
    EntityNotFoundError,
)
from ..database.repositories import (
    get_team_repository,
    get_workstation_repository,
    get_daily_task_repository,
)
from ..realtime.broker import publish_event
from ..realtime.events import TaskAssignedEvent
from ..utils.audit_logger import log_audit_event, AuditAction
from ..utils.datetime_utils import format_day_key
from .access import require_manager

logger = logging.getLogger(__name__)


def assigned_event_for(task: DailyTaskDB) -> TaskAssignedEvent:
    """task:assigned payload for an instance loaded with template and employee."""
    return TaskAssignedEvent(
        task_id=task.id,
        employee_id=task.employee_id,
        employee_name=task.employee.name,
        task_title=task.task_template.title,
        task_description=task.task_template.description,
        task_date=format_day_key(task.date),
    )


class AssignmentResolver:
    """Resolves intended assignees and performs reassignment."""

    def __init__(self, db=None):
        self.db = db or get_database()
        self.team_repo = get_team_repository()
        self.workstation_repo = get_workstation_repository()
        self.daily_repo = get_daily_task_repository()

    async def intended_employee_ids(self, session: AsyncSession, template: TaskTemplateDB) -> List[str]:
        """Employees who should hold an instance of the template right now."""
        if template.assigned_to_employee_id:
            employee = await self.team_repo.get_employee_in_team(
                session, template.assigned_to_employee_id, template.team_id
            )
            return [employee.id] if employee else []

        if template.workstation_id:
            return await self.workstation_repo.member_ids(session, template.workstation_id, template.team_id)

        return []

    async def _find_conflict(
        self,
        session: AsyncSession,
        task: DailyTaskDB,
        employee_id: str,
    ) -> Optional[DailyTaskDB]:
        return await self.daily_repo.find(session, task.task_template_id, employee_id, task.date)

    async def move_in_session(
        self,
        session: AsyncSession,
        task_id: str,
        new_employee_id: str,
        team_id: str,
    ) -> Tuple[DailyTaskDB, Optional[str], Optional[TaskAssignedEvent]]:
        """
        Move a task inside the caller's transaction.

        Returns:
            (task, previous employee id, task:assigned event). The last two
            are None when the destination already owns the task.

        Raises:
            EntityNotFoundError: task or destination missing in the team
            AssignmentConflictError: destination already has this template that day
        """
        task = await self.daily_repo.get(session, task_id, for_update=True)
        if task is None or task.task_template.team_id != team_id:
            raise EntityNotFoundError(f"Daily task {task_id} not found")

        employee = await self.team_repo.get_employee_in_team(session, new_employee_id, team_id)
        if employee is None:
            raise EntityNotFoundError(f"Employee {new_employee_id} not found")

        if task.employee_id == new_employee_id:
            logger.debug(f"Task {task_id} already owned by {new_employee_id}, nothing to do")
            return task, None, None

        existing = await self._find_conflict(session, task, new_employee_id)
        if existing is not None:
            raise AssignmentConflictError(existing_task_id=existing.id)

        previous_employee_id = task.employee_id
        task = await self.daily_repo.move_to_employee(session, task, new_employee_id)
        return task, previous_employee_id, assigned_event_for(task)

    async def announce_move(
        self,
        team_id: str,
        task_id: str,
        previous_employee_id: str,
        event: TaskAssignedEvent,
        actor: UserDB,
    ) -> None:
        """Publish and audit a committed move."""
        logger.info(f"Reassigned task {task_id} from {previous_employee_id} to {event.employee_id}")
        await publish_event(team_id, event)
        await log_audit_event(
            AuditAction.TASK_REASSIGN,
            user_id=actor.id,
            entity_type="daily_task",
            entity_id=task_id,
            details={"from": previous_employee_id, "to": event.employee_id},
        )

    async def reassign(self, task_id: str, new_employee_id: str, actor: UserDB) -> DailyTaskDB:
        """
        Move a daily task to another employee of the same team.

        Args:
            task_id: Daily task to move
            new_employee_id: Destination employee
            actor: Acting user (must manage the task's team)

        Returns:
            The task with its new owner (unchanged if already owned)

        Raises:
            PermissionDeniedError: actor is not a manager
            EntityNotFoundError: task or destination missing in the actor's team
            AssignmentConflictError: destination already has this template that day
        """
        team_id = require_manager(actor)

        async with self.db.session() as session:
            task, previous_employee_id, event = await self.move_in_session(
                session, task_id, new_employee_id, team_id
            )

        if event is not None:
            await self.announce_move(team_id, task_id, previous_employee_id, event, actor)
        return task


# Singleton
_resolver: Optional[AssignmentResolver] = None


def get_assignment_resolver() -> AssignmentResolver:
    """Get the assignment resolver singleton."""
    global _resolver
    if _resolver is None:
        _resolver = AssignmentResolver()
    return _resolver
