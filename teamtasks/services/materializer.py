"""
Daily task materialization.

Turns templates into per-employee instances for a team and business day.
A pass only ever inserts missing instances: running it twice, or running
two passes at once, ends with the same rows and never touches completion
state of rows that already exist.

When passes run:
- lazily, on the first read of a day that has not been prepared yet
- explicitly, when a manager prepares a day (always re-runs)
- from the operator cron trigger, once per team
- at template creation, for the creation day and that template only
- at employee creation, for the employee's workstation templates
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Set, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from ..database.connection import get_database
from ..database.models import TaskTemplateDB, DayPreparationDB, RecurrenceTypeEnum
from ..database.exceptions import EntityNotFoundError
from ..database.repositories import (
    get_team_repository,
    get_template_repository,
    get_daily_task_repository,
    get_preparation_repository,
)
from ..realtime.broker import publish_event
from ..realtime.events import TaskUpdatedEvent
from ..utils.audit_logger import log_audit_event, AuditAction
from ..utils.datetime_utils import js_weekday, format_day_key, is_past_day, get_local_now
from .assignment import get_assignment_resolver

logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    """Outcome of one pass for a team and day."""
    team_id: str
    date: date
    created: int = 0
    skipped: int = 0
    created_task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamId": self.team_id,
            "date": format_day_key(self.date),
            "created": self.created,
            "skipped": self.skipped,
        }


def parse_recurrence_days(raw: Optional[str]) -> Set[int]:
    """Weekday numbers (Sunday = 0) from a "1,3,5" style string."""
    days = set()
    for part in (raw or "").split(","):
        part = part.strip()
        if part.isdigit() and 0 <= int(part) <= 6:
            days.add(int(part))
    return days


def template_applies_on(template: TaskTemplateDB, day: date) -> bool:
    """Whether a recurring template is scheduled on a day."""
    if template.recurrence_type == RecurrenceTypeEnum.DAILY.value:
        return True
    days = parse_recurrence_days(template.recurrence_days)
    if not days:
        return True
    return js_weekday(day) in days


class Materializer:
    """Creates missing daily task instances."""

    def __init__(self, db=None):
        self.db = db or get_database()
        self.team_repo = get_team_repository()
        self.template_repo = get_template_repository()
        self.daily_repo = get_daily_task_repository()
        self.preparation_repo = get_preparation_repository()
        self.resolver = get_assignment_resolver()

    async def _materialize_templates(
        self,
        session: AsyncSession,
        team_id: str,
        day: date,
        templates: List[TaskTemplateDB],
        only_employee_id: Optional[str] = None,
    ) -> MaterializationResult:
        result = MaterializationResult(team_id=team_id, date=day)
        existing = await self.daily_repo.existing_keys(session, [t.id for t in templates], day)

        for template in templates:
            employee_ids = await self.resolver.intended_employee_ids(session, template)
            for employee_id in employee_ids:
                if only_employee_id and employee_id != only_employee_id:
                    continue
                if (template.id, employee_id) in existing:
                    result.skipped += 1
                    continue

                task = await self.daily_repo.insert_if_absent(session, template.id, employee_id, day)
                if task is None:
                    result.skipped += 1
                else:
                    result.created += 1
                    result.created_task_ids.append(task.id)
                    existing.add((template.id, employee_id))

        return result

    # ==================== DAY PASSES ====================

    async def materialize_day(
        self,
        team_id: str,
        day: date,
        prepared_by_id: Optional[str] = None,
    ) -> MaterializationResult:
        """
        Run one pass for a team and day in a single transaction.

        Recurring templates scheduled on the day get an instance for every
        intended employee who lacks one. One-shot templates are left alone.
        The day is recorded as prepared.

        Raises:
            EntityNotFoundError: unknown team
        """
        async with self.db.session() as session:
            team = await self.team_repo.get_team(session, team_id)
            if team is None:
                raise EntityNotFoundError(f"Team {team_id} not found")

            templates = [
                t for t in await self.template_repo.list_recurring_for_team(session, team_id)
                if template_applies_on(t, day)
            ]
            result = await self._materialize_templates(session, team_id, day, templates)
            await self.preparation_repo.mark_prepared(
                session, team_id, day, prepared_at=get_local_now(), prepared_by_id=prepared_by_id
            )

        logger.info(
            f"Materialized {format_day_key(day)} for team {team_id}: "
            f"{result.created} created, {result.skipped} skipped"
        )
        return result

    async def get_preparation(self, team_id: str, day: date) -> Optional[DayPreparationDB]:
        async with self.db.session() as session:
            return await self.preparation_repo.get(session, team_id, day)

    async def ensure_day(self, team_id: str, day: date) -> Optional[MaterializationResult]:
        """
        Lazy pass before a read.

        Runs only for days never prepared, and not for past days unless
        MATERIALIZE_PAST_DAYS_ON_READ is set. A prepared day keeps the
        membership snapshot it was prepared with.
        """
        if not settings.materialize_on_read:
            return None
        if is_past_day(day) and not settings.materialize_past_days_on_read:
            return None
        if await self.get_preparation(team_id, day) is not None:
            return None
        return await self.materialize_day(team_id, day)

    async def prepare_day(self, team_id: str, day: date, actor_id: Optional[str] = None) -> MaterializationResult:
        """Explicit pass for a day followed by one batch notification."""
        result = await self.materialize_day(team_id, day, prepared_by_id=actor_id)

        await publish_event(
            team_id,
            TaskUpdatedEvent(batch=True, created=result.created, task_date=format_day_key(day)),
        )
        await log_audit_event(
            AuditAction.DAY_PREPARE,
            user_id=actor_id,
            entity_type="team",
            entity_id=team_id,
            details=result.to_dict(),
        )
        return result

    async def materialize_all_teams(self, day: date) -> Dict[str, Any]:
        """
        One pass per team. A failing team is reported and the rest continue.

        Returns:
            {"date", "created", "skipped", "errors": [{"teamId", "error"}]}
        """
        async with self.db.session() as session:
            team_ids = await self.team_repo.list_team_ids(session)

        total = {"date": format_day_key(day), "created": 0, "skipped": 0, "errors": []}
        for team_id in team_ids:
            try:
                result = await self.materialize_day(team_id, day)
                total["created"] += result.created
                total["skipped"] += result.skipped
            except Exception as e:
                logger.error(f"Materialization failed for team {team_id}: {e}", exc_info=True)
                total["errors"].append({"teamId": team_id, "error": str(e)})

        logger.info(
            f"Materialized {total['date']} for {len(team_ids)} teams: "
            f"{total['created']} created, {len(total['errors'])} failures"
        )
        return total

    # ==================== TARGETED PASSES ====================

    async def materialize_template_on_create(
        self,
        session: AsyncSession,
        template: TaskTemplateDB,
        day: date,
    ) -> MaterializationResult:
        """
        Instances of a freshly created template for its creation day.

        One-shot templates are only ever materialized here. Recurring ones
        follow their schedule. Runs in the caller's transaction.
        """
        if template.is_recurring and not template_applies_on(template, day):
            return MaterializationResult(team_id=template.team_id, date=day)
        return await self._materialize_templates(session, template.team_id, day, [template])

    async def materialize_for_employee(
        self,
        session: AsyncSession,
        team_id: str,
        employee_id: str,
        workstation_ids: List[str],
        day: date,
    ) -> MaterializationResult:
        """Instances of scheduled workstation templates for one new employee."""
        templates = [
            t for t in await self.template_repo.list_recurring_for_workstations(session, workstation_ids)
            if t.team_id == team_id and template_applies_on(t, day)
        ]
        return await self._materialize_templates(
            session, team_id, day, templates, only_employee_id=employee_id
        )


# Singleton
_materializer: Optional[Materializer] = None


def get_materializer() -> Materializer:
    """Get the materializer singleton."""
    global _materializer
    if _materializer is None:
        _materializer = Materializer()
    return _materializer
