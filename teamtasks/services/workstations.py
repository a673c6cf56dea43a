"""
Workstation and employee management for a manager's team.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ..database.connection import get_database
from ..database.models import UserDB, WorkstationDB, UserRoleEnum
from ..database.exceptions import EntityNotFoundError, ValidationError
from ..database.repositories import get_team_repository, get_workstation_repository
from ..utils.audit_logger import log_audit_event, AuditAction
from ..utils.datetime_utils import get_local_today
from .access import require_manager
from .materializer import get_materializer

logger = logging.getLogger(__name__)


class WorkstationService:
    """Service for workstations, employees and memberships."""

    def __init__(self, db=None):
        self.db = db or get_database()
        self.team_repo = get_team_repository()
        self.workstation_repo = get_workstation_repository()
        self.materializer = get_materializer()

    async def _require_workstations(self, session, team_id: str, workstation_ids: Sequence[str]) -> List[str]:
        wanted = list(dict.fromkeys(workstation_ids or []))
        found = await self.workstation_repo.get_many(session, wanted, team_id)
        if len(found) != len(wanted):
            missing = set(wanted) - {w.id for w in found}
            raise EntityNotFoundError(f"Workstation {sorted(missing)[0]} not found")
        return wanted

    # ==================== WORKSTATIONS ====================

    async def list_workstations(self, actor: UserDB) -> List[Tuple[WorkstationDB, int]]:
        team_id = require_manager(actor)
        async with self.db.session() as session:
            return await self.workstation_repo.list_for_team(session, team_id)

    async def create_workstation(self, actor: UserDB, name: str) -> WorkstationDB:
        team_id = require_manager(actor)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Workstation name is required")
        async with self.db.session() as session:
            return await self.workstation_repo.create(session, team_id, name)

    async def delete_workstation(self, actor: UserDB, workstation_id: str) -> None:
        """
        Delete an empty workstation.

        Raises:
            EntityNotFoundError: not in the manager's team
            ValidationError: employees are still assigned to it
        """
        team_id = require_manager(actor)
        async with self.db.session() as session:
            workstation = await self.workstation_repo.get(session, workstation_id, team_id)
            if workstation is None:
                raise EntityNotFoundError(f"Workstation {workstation_id} not found")
            members = await self.workstation_repo.count_members(session, workstation_id)
            if members:
                raise ValidationError(
                    f"Cannot delete a workstation with {members} assigned employee(s)"
                )
            name = workstation.name
            await self.workstation_repo.delete(session, workstation)

        await log_audit_event(
            AuditAction.WORKSTATION_DELETE,
            user_id=actor.id,
            entity_type="workstation",
            entity_id=workstation_id,
            details={"name": name},
        )

    # ==================== EMPLOYEES ====================

    async def list_members(self, actor: UserDB) -> List[UserDB]:
        team_id = require_manager(actor)
        async with self.db.session() as session:
            return await self.team_repo.list_members(session, team_id)

    async def create_employee(
        self,
        actor: UserDB,
        name: str,
        email: str,
        workstation_ids: Optional[Sequence[str]] = None,
    ) -> UserDB:
        """
        Add an employee to the manager's team.

        Today's scheduled workstation templates are materialized for them
        straight away.
        """
        team_id = require_manager(actor)
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")

        async with self.db.session() as session:
            wanted = await self._require_workstations(session, team_id, workstation_ids)
            employee = await self.team_repo.create_user(
                session, name, email, team_id, role=UserRoleEnum.EMPLOYEE.value
            )
            await self.team_repo.set_memberships(session, employee.id, wanted)
            result = await self.materializer.materialize_for_employee(
                session, team_id, employee.id, wanted, get_local_today()
            )
            members = await self.team_repo.list_members(session, team_id)
            employee = next(m for m in members if m.id == employee.id)

        logger.info(f"Employee {employee.id} created with {result.created} tasks for today")
        await log_audit_event(
            AuditAction.EMPLOYEE_CREATE,
            user_id=actor.id,
            entity_type="user",
            entity_id=employee.id,
            details={"workstations": wanted, "created": result.created},
        )
        return employee

    async def set_employee_workstations(
        self,
        actor: UserDB,
        employee_id: str,
        workstation_ids: Sequence[str],
    ) -> UserDB:
        """
        Replace an employee's workstations.

        Days already prepared keep their instances; the change shows up from
        the next pass on.
        """
        team_id = require_manager(actor)
        async with self.db.session() as session:
            employee = await self.team_repo.get_employee_in_team(session, employee_id, team_id)
            if employee is None:
                raise EntityNotFoundError(f"Employee {employee_id} not found")
            wanted = await self._require_workstations(session, team_id, workstation_ids)
            await self.team_repo.set_memberships(session, employee_id, wanted)
            members = await self.team_repo.list_members(session, team_id)
            employee = next(m for m in members if m.id == employee_id)

        await log_audit_event(
            AuditAction.MEMBERSHIP_UPDATE,
            user_id=actor.id,
            entity_type="user",
            entity_id=employee_id,
            details={"workstations": wanted},
        )
        return employee


# Singleton
_workstation_service: Optional[WorkstationService] = None


def get_workstation_service() -> WorkstationService:
    """Get the workstation service singleton."""
    global _workstation_service
    if _workstation_service is None:
        _workstation_service = WorkstationService()
    return _workstation_service
