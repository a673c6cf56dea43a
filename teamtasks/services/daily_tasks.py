"""
Daily task reads and completion.

Completion is a two-state machine (pending, done). Callers send the state
they want; asking for the current state changes nothing.
"""

import logging
from datetime import date
from typing import List, Optional, Dict, Any, Tuple

from ..database.connection import get_database
from ..database.models import DailyTaskDB, UserDB
from ..database.exceptions import EntityNotFoundError, PermissionDeniedError, ValidationError
from ..database.repositories import (
    get_team_repository,
    get_workstation_repository,
    get_daily_task_repository,
)
from ..realtime.broker import publish_event
from ..realtime.events import TaskUpdatedEvent
from ..utils.datetime_utils import format_day_key, get_local_now
from .access import require_manager, manages_team
from .assignment import get_assignment_resolver
from .materializer import get_materializer

logger = logging.getLogger(__name__)


class DailyTaskService:
    """Service for daily task operations."""

    def __init__(self, db=None):
        self.db = db or get_database()
        self.team_repo = get_team_repository()
        self.workstation_repo = get_workstation_repository()
        self.daily_repo = get_daily_task_repository()
        self.materializer = get_materializer()

    async def list_for_day(
        self,
        actor: UserDB,
        day: date,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
    ) -> List[DailyTaskDB]:
        """
        Instances visible to the actor on a day.

        Employees see only their own. Managers see their team, optionally
        narrowed to one employee or workstation. An employee filter that is
        not a member of the team is ignored.
        """
        if not actor.team_id:
            return []

        await self.materializer.ensure_day(actor.team_id, day)

        async with self.db.session() as session:
            if not actor.is_manager:
                employee_id = actor.id
            elif employee_id:
                member = await self.team_repo.get_employee_in_team(session, employee_id, actor.team_id)
                if member is None:
                    logger.debug(f"Ignoring employee filter {employee_id} outside team {actor.team_id}")
                    employee_id = None

            return await self.daily_repo.list_for_day(
                session,
                actor.team_id,
                day,
                employee_id=employee_id,
                workstation_id=workstation_id,
            )

    async def _apply_completion(
        self,
        session,
        task_id: str,
        is_completed: bool,
        actor: UserDB,
    ) -> Tuple[DailyTaskDB, Optional[TaskUpdatedEvent]]:
        """Completion change in the caller's transaction. The event is None when nothing changed."""
        task = await self.daily_repo.get(session, task_id, for_update=True)
        if task is None or task.task_template.team_id != actor.team_id:
            raise EntityNotFoundError(f"Daily task {task_id} not found")

        if task.employee_id != actor.id and not manages_team(actor, task.task_template.team_id):
            raise PermissionDeniedError("You can only update your own tasks")

        if not await self.daily_repo.set_completion(session, task, is_completed, get_local_now()):
            return task, None
        return task, TaskUpdatedEvent(
            task_id=task.id,
            employee_id=task.employee_id,
            is_completed=task.is_completed,
            task_title=task.task_template.title,
            task_date=format_day_key(task.date),
        )

    async def set_completion(self, task_id: str, is_completed: bool, actor: UserDB) -> DailyTaskDB:
        """
        Set a task to the desired completion state.

        completed_at is stamped on pending -> done and cleared on
        done -> pending. Allowed for the owner and the team's manager.

        Raises:
            EntityNotFoundError: task missing or outside the actor's team
            PermissionDeniedError: actor is another employee of the team
        """
        async with self.db.session() as session:
            task, event = await self._apply_completion(session, task_id, is_completed, actor)

        if event is not None:
            logger.info(f"Task {task_id} marked {'done' if is_completed else 'pending'} by {actor.id}")
            await publish_event(actor.team_id, event)
        return task

    async def update_task(
        self,
        task_id: str,
        actor: UserDB,
        is_completed: Optional[bool] = None,
        employee_id: Optional[str] = None,
    ) -> DailyTaskDB:
        """
        Move and/or complete a task in one transaction.

        The move runs first, so a completion sent with it applies to the
        task under its new owner. If either step fails neither is kept.

        Raises:
            ValidationError: neither field given
            AssignmentConflictError: destination already has this template that day
        """
        if is_completed is None and employee_id is None:
            raise ValidationError("Provide isCompleted or employeeId")

        resolver = get_assignment_resolver()
        moved = previous_employee_id = updated = None

        async with self.db.session() as session:
            if employee_id is not None:
                team_id = require_manager(actor)
                task, previous_employee_id, moved = await resolver.move_in_session(
                    session, task_id, employee_id, team_id
                )
            if is_completed is not None:
                task, updated = await self._apply_completion(session, task_id, is_completed, actor)

        if moved is not None:
            await resolver.announce_move(actor.team_id, task_id, previous_employee_id, moved, actor)
        if updated is not None:
            logger.info(f"Task {task_id} marked {'done' if is_completed else 'pending'} by {actor.id}")
            await publish_event(actor.team_id, updated)
        return task

    async def manager_dashboard(
        self,
        actor: UserDB,
        day: date,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Team, preparation state, tasks and workstations for one day."""
        team_id = require_manager(actor)
        tasks = await self.list_for_day(actor, day, employee_id=employee_id, workstation_id=workstation_id)

        async with self.db.session() as session:
            team = await self.team_repo.get_team(session, team_id)
            workstations = await self.workstation_repo.list_for_team(session, team_id)
        preparation = await self.materializer.get_preparation(team_id, day)

        return {
            "team": team,
            "date": day,
            "preparation": preparation,
            "daily_tasks": tasks,
            "workstations": workstations,
        }


# Singleton
_daily_task_service: Optional[DailyTaskService] = None


def get_daily_task_service() -> DailyTaskService:
    """Get the daily task service singleton."""
    global _daily_task_service
    if _daily_task_service is None:
        _daily_task_service = DailyTaskService()
    return _daily_task_service

