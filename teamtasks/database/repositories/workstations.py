"""
Repository for workstations.

A workstation is a named group of employees used as a template target.
"""

import logging
from typing import Optional, List, Sequence, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import WorkstationDB, EmployeeWorkstationDB, UserDB, UserRoleEnum

logger = logging.getLogger(__name__)


class WorkstationRepository:
    """Repository for workstation operations."""

    async def create(self, session: AsyncSession, team_id: str, name: str) -> WorkstationDB:
        workstation = WorkstationDB(team_id=team_id, name=name)
        session.add(workstation)
        await session.flush()
        logger.info(f"Created workstation {workstation.id} ({name}) in team {team_id}")
        return workstation

    async def get(
        self,
        session: AsyncSession,
        workstation_id: str,
        team_id: Optional[str] = None,
    ) -> Optional[WorkstationDB]:
        """Get a workstation, optionally requiring it to belong to a team."""
        query = select(WorkstationDB).where(WorkstationDB.id == workstation_id)
        if team_id is not None:
            query = query.where(WorkstationDB.team_id == team_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def get_many(
        self,
        session: AsyncSession,
        workstation_ids: Sequence[str],
        team_id: str,
    ) -> List[WorkstationDB]:
        """Workstations among the given ids that belong to the team."""
        if not workstation_ids:
            return []
        result = await session.execute(
            select(WorkstationDB).where(
                WorkstationDB.id.in_(list(workstation_ids)),
                WorkstationDB.team_id == team_id,
            )
        )
        return list(result.scalars().all())

    async def list_for_team(self, session: AsyncSession, team_id: str) -> List[Tuple[WorkstationDB, int]]:
        """Workstations of a team with their member counts, ordered by name."""
        member_count = (
            select(func.count(EmployeeWorkstationDB.employee_id))
            .where(EmployeeWorkstationDB.workstation_id == WorkstationDB.id)
            .correlate(WorkstationDB)
            .scalar_subquery()
        )
        result = await session.execute(
            select(WorkstationDB, member_count)
            .where(WorkstationDB.team_id == team_id)
            .order_by(WorkstationDB.name)
        )
        return [(row[0], row[1] or 0) for row in result.all()]

    async def count_members(self, session: AsyncSession, workstation_id: str) -> int:
        result = await session.execute(
            select(func.count())
            .select_from(EmployeeWorkstationDB)
            .where(EmployeeWorkstationDB.workstation_id == workstation_id)
        )
        return result.scalar() or 0

    async def member_ids(self, session: AsyncSession, workstation_id: str, team_id: str) -> List[str]:
        """
        Current members of a workstation who are employees of the team.

        Read at call time: this is the membership snapshot a materialization
        pass uses.
        """
        result = await session.execute(
            select(EmployeeWorkstationDB.employee_id)
            .join(UserDB, UserDB.id == EmployeeWorkstationDB.employee_id)
            .where(
                EmployeeWorkstationDB.workstation_id == workstation_id,
                UserDB.team_id == team_id,
                UserDB.role == UserRoleEnum.EMPLOYEE.value,
            )
            .order_by(UserDB.name)
        )
        return list(result.scalars().all())

    async def delete(self, session: AsyncSession, workstation: WorkstationDB) -> None:
        await session.execute(delete(WorkstationDB).where(WorkstationDB.id == workstation.id))
        logger.info(f"Deleted workstation {workstation.id}")


# Singleton
_workstation_repo: Optional[WorkstationRepository] = None


def get_workstation_repository() -> WorkstationRepository:
    """Get the workstation repository singleton."""
    global _workstation_repo
    if _workstation_repo is None:
        _workstation_repo = WorkstationRepository()
    return _workstation_repo
