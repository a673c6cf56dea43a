"""
Team, user and membership repository.

Stores:
- Teams and their manager
- Employees (users with role EMPLOYEE) scoped to one team
- Employee <-> workstation memberships
"""

import logging
from typing import Optional, List, Sequence

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import TeamDB, UserDB, EmployeeWorkstationDB, UserRoleEnum
from ..exceptions import DatabaseConstraintError

logger = logging.getLogger(__name__)


class TeamRepository:
    """Repository for teams, users and workstation memberships."""

    # ==================== TEAMS ====================

    async def create_team(self, session: AsyncSession, name: str) -> TeamDB:
        """Create an empty team (manager assigned afterwards)."""
        team = TeamDB(name=name)
        session.add(team)
        await session.flush()
        logger.info(f"Created team {team.id} ({name})")
        return team

    async def get_team(self, session: AsyncSession, team_id: str) -> Optional[TeamDB]:
        result = await session.execute(select(TeamDB).where(TeamDB.id == team_id))
        return result.scalar_one_or_none()

    async def list_team_ids(self, session: AsyncSession) -> List[str]:
        result = await session.execute(select(TeamDB.id).order_by(TeamDB.name))
        return list(result.scalars().all())

    # ==================== USERS ====================

    async def create_user(
        self,
        session: AsyncSession,
        name: str,
        email: str,
        team_id: str,
        role: str = UserRoleEnum.EMPLOYEE.value,
    ) -> UserDB:
        """
        Create a user in a team. Creating a MANAGER also makes them the
        team's manager.

        Raises:
            DatabaseConstraintError: email already in use
        """
        try:
            async with session.begin_nested():
                user = UserDB(name=name, email=email.strip().lower(), role=role, team_id=team_id)
                session.add(user)
                await session.flush()
        except IntegrityError as e:
            logger.warning(f"Constraint violation creating user {email}: {e.orig}")
            raise DatabaseConstraintError(f"A user with email {email} already exists")

        if role == UserRoleEnum.MANAGER.value:
            team = await self.get_team(session, team_id)
            if team is not None:
                team.manager_id = user.id
                await session.flush()

        logger.info(f"Created {role.lower()} {user.id} in team {team_id}")
        return user

    async def get_user(self, session: AsyncSession, user_id: str) -> Optional[UserDB]:
        result = await session.execute(select(UserDB).where(UserDB.id == user_id))
        return result.scalar_one_or_none()

    async def get_employee_in_team(
        self,
        session: AsyncSession,
        employee_id: str,
        team_id: str,
    ) -> Optional[UserDB]:
        """An employee of the given team, or None (wrong team, wrong role or missing)."""
        result = await session.execute(
            select(UserDB).where(
                UserDB.id == employee_id,
                UserDB.team_id == team_id,
                UserDB.role == UserRoleEnum.EMPLOYEE.value,
            )
        )
        return result.scalar_one_or_none()

    async def list_members(self, session: AsyncSession, team_id: str) -> List[UserDB]:
        """Employees of a team with their workstations, ordered by name."""
        result = await session.execute(
            select(UserDB)
            .where(UserDB.team_id == team_id, UserDB.role == UserRoleEnum.EMPLOYEE.value)
            .options(selectinload(UserDB.memberships).selectinload(EmployeeWorkstationDB.workstation))
            .order_by(UserDB.name)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ==================== MEMBERSHIPS ====================

    async def set_memberships(
        self,
        session: AsyncSession,
        employee_id: str,
        workstation_ids: Sequence[str],
    ) -> None:
        """Replace an employee's workstation set."""
        await session.execute(
            delete(EmployeeWorkstationDB).where(EmployeeWorkstationDB.employee_id == employee_id)
        )
        for workstation_id in dict.fromkeys(workstation_ids):
            session.add(EmployeeWorkstationDB(employee_id=employee_id, workstation_id=workstation_id))
        await session.flush()
        logger.info(f"Employee {employee_id} workstations set to {list(workstation_ids)}")


# Singleton
_team_repo: Optional[TeamRepository] = None


def get_team_repository() -> TeamRepository:
    """Get the team repository singleton."""
    global _team_repo
    if _team_repo is None:
        _team_repo = TeamRepository()
    return _team_repo
