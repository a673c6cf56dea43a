"""
Task template management.

Business logic for:
- Validating template targets (exactly one of workstation / employee)
- Materializing the creation day for a new template
- Notifying assignees of new instances
- Recording an audit entry before a template and its instances are deleted
"""

import logging
from typing import Any, Dict, List, Optional

from ..database.connection import get_database
from ..database.models import TaskTemplateDB, UserDB, RecurrenceTypeEnum
from ..database.exceptions import EntityNotFoundError, ValidationError
from ..database.repositories import (
    get_team_repository,
    get_workstation_repository,
    get_template_repository,
    get_daily_task_repository,
)
from ..realtime.broker import publish_event
from ..utils.audit_logger import log_audit_event, AuditAction, AuditLevel
from ..utils.datetime_utils import get_local_today
from .access import require_manager
from .assignment import assigned_event_for
from .materializer import get_materializer

logger = logging.getLogger(__name__)

RECURRENCE_TYPES = {r.value for r in RecurrenceTypeEnum}


def normalize_recurrence_days(value: Any) -> Optional[str]:
    """
    Accept "1,3,5" or [1, 3, 5] and return the canonical CSV (or None).

    Raises:
        ValidationError: a day outside 0-6 (Sunday = 0)
    """
    if value is None:
        return None
    parts = value if isinstance(value, (list, tuple)) else str(value).split(",")
    days = set()
    for part in parts:
        text = str(part).strip()
        if not text:
            continue
        if not text.isdigit() or not 0 <= int(text) <= 6:
            raise ValidationError(f"Invalid recurrence day: {text}")
        days.add(int(text))
    return ",".join(str(d) for d in sorted(days)) or None


def _check_fields(data: Dict[str, Any]) -> None:
    if "title" in data:
        title = (data["title"] or "").strip()
        if not title:
            raise ValidationError("Title is required")
        data["title"] = title
    if "description" in data and data["description"] is not None:
        data["description"] = data["description"].strip() or None
    if "recurrence_type" in data and data["recurrence_type"] not in RECURRENCE_TYPES:
        raise ValidationError(f"Invalid recurrence type: {data['recurrence_type']}")
    if "recurrence_days" in data:
        data["recurrence_days"] = normalize_recurrence_days(data["recurrence_days"])
    target = data.get("target_per_week")
    if target is not None and not 1 <= int(target) <= 7:
        raise ValidationError("targetPerWeek must be between 1 and 7")


def _check_target(workstation_id: Optional[str], employee_id: Optional[str]) -> None:
    if bool(workstation_id) == bool(employee_id):
        raise ValidationError("Assign the template to exactly one workstation or employee")


class TemplateService:
    """Service for task template operations."""

    def __init__(self, db=None):
        self.db = db or get_database()
        self.team_repo = get_team_repository()
        self.workstation_repo = get_workstation_repository()
        self.template_repo = get_template_repository()
        self.daily_repo = get_daily_task_repository()
        self.materializer = get_materializer()

    async def _require_target_in_team(
        self,
        session,
        team_id: str,
        workstation_id: Optional[str],
        employee_id: Optional[str],
    ) -> None:
        if workstation_id:
            if await self.workstation_repo.get(session, workstation_id, team_id) is None:
                raise EntityNotFoundError(f"Workstation {workstation_id} not found")
        if employee_id:
            if await self.team_repo.get_employee_in_team(session, employee_id, team_id) is None:
                raise EntityNotFoundError(f"Employee {employee_id} not found")

    async def list_templates(self, actor: UserDB) -> List[TaskTemplateDB]:
        team_id = require_manager(actor)
        async with self.db.session() as session:
            return await self.template_repo.list_for_team(session, team_id)

    async def create_template(self, actor: UserDB, data: Dict[str, Any]) -> TaskTemplateDB:
        """
        Create a template and materialize its creation day.

        Args:
            actor: Manager creating the template
            data: title, description, workstation_id | assigned_to_employee_id,
                is_recurring, recurrence_type, recurrence_days,
                target_per_week, notify_employee

        Raises:
            ValidationError: bad title, target or schedule
            EntityNotFoundError: target not in the manager's team
        """
        team_id = require_manager(actor)
        data = dict(data)
        data.setdefault("title", "")
        _check_fields(data)
        workstation_id = data.get("workstation_id") or None
        employee_id = data.get("assigned_to_employee_id") or None
        _check_target(workstation_id, employee_id)

        data.update(
            workstation_id=workstation_id,
            assigned_to_employee_id=employee_id,
            team_id=team_id,
            created_by_id=actor.id,
        )
        events = []

        async with self.db.session() as session:
            await self._require_target_in_team(session, team_id, workstation_id, employee_id)
            template = await self.template_repo.create(session, data)

            result = await self.materializer.materialize_template_on_create(
                session, template, get_local_today()
            )
            if template.notify_employee:
                for task_id in result.created_task_ids:
                    task = await self.daily_repo.get(session, task_id)
                    events.append(assigned_event_for(task))

        logger.info(
            f"Template {template.id} created by {actor.id}: {result.created} instances for today"
        )
        for event in events:
            await publish_event(team_id, event)
        await log_audit_event(
            AuditAction.TEMPLATE_CREATE,
            user_id=actor.id,
            entity_type="template",
            entity_id=template.id,
            details={"title": template.title, "created": result.created},
        )
        return template

    async def update_template(self, actor: UserDB, template_id: str, updates: Dict[str, Any]) -> TaskTemplateDB:
        """
        Partially update a template. Existing instances are not touched.

        The target rule is checked on the merged state, so switching target
        means sending the new one and clearing the old one.
        """
        team_id = require_manager(actor)
        updates = dict(updates)
        _check_fields(updates)
        for key in ("workstation_id", "assigned_to_employee_id"):
            if key in updates:
                updates[key] = updates[key] or None

        async with self.db.session() as session:
            template = await self.template_repo.get(session, template_id, team_id)
            if template is None:
                raise EntityNotFoundError(f"Template {template_id} not found")

            workstation_id = updates.get("workstation_id", template.workstation_id)
            employee_id = updates.get("assigned_to_employee_id", template.assigned_to_employee_id)
            _check_target(workstation_id, employee_id)
            await self._require_target_in_team(
                session,
                team_id,
                updates.get("workstation_id"),
                updates.get("assigned_to_employee_id"),
            )

            template = await self.template_repo.update(session, template, updates)

        await log_audit_event(
            AuditAction.TEMPLATE_UPDATE,
            user_id=actor.id,
            entity_type="template",
            entity_id=template_id,
            details={"fields": sorted(updates.keys())},
        )
        return template

    async def delete_template(self, actor: UserDB, template_id: str) -> int:
        """
        Delete a template and every daily task derived from it.

        Returns:
            Number of daily tasks deleted
        """
        team_id = require_manager(actor)

        async with self.db.session() as session:
            template = await self.template_repo.get(session, template_id, team_id)
            if template is None:
                raise EntityNotFoundError(f"Template {template_id} not found")
            title = template.title
            instances = await self.template_repo.count_instances(session, template_id)

        # Captured before the rows disappear
        await log_audit_event(
            AuditAction.TEMPLATE_DELETE,
            user_id=actor.id,
            entity_type="template",
            entity_id=template_id,
            details={"title": title, "instances": instances},
            level=AuditLevel.WARNING,
        )

        async with self.db.session() as session:
            template = await self.template_repo.get(session, template_id, team_id)
            if template is None:
                raise EntityNotFoundError(f"Template {template_id} not found")
            deleted = await self.template_repo.delete(session, template)

        return deleted


# Singleton
_template_service: Optional[TemplateService] = None


def get_template_service() -> TemplateService:
    """Get the template service singleton."""
    global _template_service
    if _template_service is None:
        _template_service = TemplateService()
    return _template_service
