"""
Repository for daily task instances.

Each row is one employee's instance of one template on one business day.
The unique constraint on (task_template_id, employee_id, date) is the
authority for uniqueness; callers may pre-check but must handle the
constraint firing.
"""

import logging
from datetime import date, datetime
from typing import Optional, List, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import DailyTaskDB, TaskTemplateDB, UserDB
from ..exceptions import AssignmentConflictError

logger = logging.getLogger(__name__)

# Workstation filter value selecting directly-assigned templates
DIRECT_ASSIGNMENT_FILTER = "__direct__"


def _with_summaries(query):
    return query.options(
        selectinload(DailyTaskDB.task_template).selectinload(TaskTemplateDB.workstation),
        selectinload(DailyTaskDB.employee),
    )


class DailyTaskRepository:
    """Repository for daily task operations."""

    # ==================== READS ====================

    async def get(
        self,
        session: AsyncSession,
        task_id: str,
        for_update: bool = False,
    ) -> Optional[DailyTaskDB]:
        """Get an instance with template and employee loaded."""
        query = _with_summaries(select(DailyTaskDB).where(DailyTaskDB.id == task_id))
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find(
        self,
        session: AsyncSession,
        template_id: str,
        employee_id: str,
        day: date,
    ) -> Optional[DailyTaskDB]:
        result = await session.execute(
            select(DailyTaskDB).where(
                DailyTaskDB.task_template_id == template_id,
                DailyTaskDB.employee_id == employee_id,
                DailyTaskDB.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def existing_keys(
        self,
        session: AsyncSession,
        template_ids: List[str],
        day: date,
    ) -> Set[Tuple[str, str]]:
        """(template_id, employee_id) pairs that already have an instance on a day."""
        if not template_ids:
            return set()
        result = await session.execute(
            select(DailyTaskDB.task_template_id, DailyTaskDB.employee_id).where(
                DailyTaskDB.task_template_id.in_(template_ids),
                DailyTaskDB.date == day,
            )
        )
        return {(row[0], row[1]) for row in result.all()}

    async def list_for_day(
        self,
        session: AsyncSession,
        team_id: str,
        day: date,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
    ) -> List[DailyTaskDB]:
        """
        Instances of a team's templates on a day.

        Args:
            employee_id: Restrict to one employee
            workstation_id: Restrict to one workstation, or DIRECT_ASSIGNMENT_FILTER
                for directly-assigned templates

        Returns:
            Instances ordered by employee name then creation time
        """
        query = (
            select(DailyTaskDB)
            .join(TaskTemplateDB, TaskTemplateDB.id == DailyTaskDB.task_template_id)
            .join(UserDB, UserDB.id == DailyTaskDB.employee_id)
            .where(TaskTemplateDB.team_id == team_id, DailyTaskDB.date == day)
        )
        if employee_id:
            query = query.where(DailyTaskDB.employee_id == employee_id)
        if workstation_id == DIRECT_ASSIGNMENT_FILTER:
            query = query.where(TaskTemplateDB.assigned_to_employee_id.is_not(None))
        elif workstation_id:
            query = query.where(TaskTemplateDB.workstation_id == workstation_id)

        query = query.order_by(UserDB.name, DailyTaskDB.created_at, DailyTaskDB.id)
        result = await session.execute(_with_summaries(query))
        return list(result.scalars().all())

    # ==================== WRITES ====================

    async def insert_if_absent(
        self,
        session: AsyncSession,
        template_id: str,
        employee_id: str,
        day: date,
    ) -> Optional[DailyTaskDB]:
        """
        Insert a fresh, not-completed instance inside a savepoint.

        Returns:
            The new row, or None if the unique constraint fired (another
            pass created it first)
        """
        try:
            async with session.begin_nested():
                task = DailyTaskDB(
                    task_template_id=template_id,
                    employee_id=employee_id,
                    date=day,
                    is_completed=False,
                    completed_at=None,
                )
                session.add(task)
                await session.flush()
            return task
        except IntegrityError:
            logger.debug(f"Instance of {template_id} for {employee_id} on {day} already exists")
            return None

    async def set_completion(
        self,
        session: AsyncSession,
        task: DailyTaskDB,
        is_completed: bool,
        now: datetime,
    ) -> bool:
        """
        Move the instance to the desired state.

        Returns:
            False when it was already in that state (nothing written)
        """
        if task.is_completed == is_completed:
            return False
        task.is_completed = is_completed
        task.completed_at = now if is_completed else None
        await session.flush()
        return True

    async def move_to_employee(
        self,
        session: AsyncSession,
        task: DailyTaskDB,
        employee_id: str,
    ) -> DailyTaskDB:
        """
        Change the owner of an instance in place. Completion state is kept.

        Raises:
            AssignmentConflictError: the destination already owns an instance
                of the same template on the same day
        """
        task_id = task.id
        try:
            async with session.begin_nested():
                task.employee_id = employee_id
                await session.flush()
        except IntegrityError as e:
            logger.warning(f"Reassignment of {task_id} to {employee_id} hit unique constraint: {e.orig}")
            raise AssignmentConflictError()
        return await self.get(session, task_id)


# Singleton
_daily_task_repo: Optional[DailyTaskRepository] = None


def get_daily_task_repository() -> DailyTaskRepository:
    """Get the daily task repository singleton."""
    global _daily_task_repo
    if _daily_task_repo is None:
        _daily_task_repo = DailyTaskRepository()
    return _daily_task_repo
