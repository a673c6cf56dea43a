"""
Repository for task templates.

Templates are team-owned definitions that the materializer turns into daily
tasks. Deleting a template removes every daily task derived from it.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import TaskTemplateDB, DailyTaskDB

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "workstation_id",
    "assigned_to_employee_id",
    "is_recurring",
    "recurrence_type",
    "recurrence_days",
    "target_per_week",
    "notify_employee",
)


def _with_targets(query):
    return query.options(
        selectinload(TaskTemplateDB.workstation),
        selectinload(TaskTemplateDB.assigned_to_employee),
    )


class TemplateRepository:
    """Repository for task template operations."""

    async def create(self, session: AsyncSession, data: Dict[str, Any]) -> TaskTemplateDB:
        """Create a template. Validation happens in the service layer."""
        template = TaskTemplateDB(
            title=data["title"],
            description=data.get("description"),
            workstation_id=data.get("workstation_id"),
            assigned_to_employee_id=data.get("assigned_to_employee_id"),
            is_recurring=data.get("is_recurring", True),
            recurrence_type=data.get("recurrence_type", "daily"),
            recurrence_days=data.get("recurrence_days"),
            target_per_week=data.get("target_per_week"),
            notify_employee=data.get("notify_employee", True),
            team_id=data["team_id"],
            created_by_id=data.get("created_by_id"),
        )
        session.add(template)
        await session.flush()
        logger.info(f"Created template {template.id} ({template.title}) for team {template.team_id}")
        return await self.get(session, template.id)

    async def get(
        self,
        session: AsyncSession,
        template_id: str,
        team_id: Optional[str] = None,
    ) -> Optional[TaskTemplateDB]:
        """Get a template with its target loaded, optionally scoped to a team."""
        query = select(TaskTemplateDB).where(TaskTemplateDB.id == template_id)
        if team_id is not None:
            query = query.where(TaskTemplateDB.team_id == team_id)
        result = await session.execute(_with_targets(query).execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_for_team(self, session: AsyncSession, team_id: str) -> List[TaskTemplateDB]:
        """All templates of a team, newest first."""
        result = await session.execute(
            _with_targets(select(TaskTemplateDB))
            .where(TaskTemplateDB.team_id == team_id)
            .order_by(TaskTemplateDB.created_at.desc(), TaskTemplateDB.title)
        )
        return list(result.scalars().all())

    async def list_recurring_for_team(self, session: AsyncSession, team_id: str) -> List[TaskTemplateDB]:
        """Recurring templates of a team, oldest first (stable materialization order)."""
        result = await session.execute(
            select(TaskTemplateDB)
            .where(TaskTemplateDB.team_id == team_id, TaskTemplateDB.is_recurring.is_(True))
            .order_by(TaskTemplateDB.created_at, TaskTemplateDB.id)
        )
        return list(result.scalars().all())

    async def list_recurring_for_workstations(
        self,
        session: AsyncSession,
        workstation_ids: List[str],
    ) -> List[TaskTemplateDB]:
        if not workstation_ids:
            return []
        result = await session.execute(
            select(TaskTemplateDB).where(
                TaskTemplateDB.workstation_id.in_(workstation_ids),
                TaskTemplateDB.is_recurring.is_(True),
            )
        )
        return list(result.scalars().all())

    async def update(
        self,
        session: AsyncSession,
        template: TaskTemplateDB,
        updates: Dict[str, Any],
    ) -> TaskTemplateDB:
        """Apply already-validated field updates."""
        for field, value in updates.items():
            if field in UPDATABLE_FIELDS:
                setattr(template, field, value)
        await session.flush()
        logger.info(f"Updated template {template.id}: {list(updates.keys())}")
        return await self.get(session, template.id)

    async def count_instances(self, session: AsyncSession, template_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(DailyTaskDB).where(DailyTaskDB.task_template_id == template_id)
        )
        return result.scalar() or 0

    async def delete(self, session: AsyncSession, template: TaskTemplateDB) -> int:
        """
        Hard-delete a template and all of its daily tasks.

        Returns:
            Number of daily tasks deleted
        """
        result = await session.execute(
            delete(DailyTaskDB).where(DailyTaskDB.task_template_id == template.id)
        )
        deleted = result.rowcount or 0
        await session.execute(delete(TaskTemplateDB).where(TaskTemplateDB.id == template.id))
        await session.flush()
        logger.info(f"Deleted template {template.id} and {deleted} daily tasks")
        return deleted


# Singleton
_template_repo: Optional[TemplateRepository] = None


def get_template_repository() -> TemplateRepository:
    """Get the template repository singleton."""
    global _template_repo
    if _template_repo is None:
        _template_repo = TemplateRepository()
    return _template_repo
