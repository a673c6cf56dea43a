"""
REST endpoints for daily tasks, templates, days, workstations and employees.

Domain errors raised by the services are turned into {"error", "code"}
responses by the handlers registered in teamtasks.main.
"""

import logging
import secrets
from datetime import date
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, Depends, Header, Query, Response
from fastapi.responses import JSONResponse

from config import settings
from ..database.models import DailyTaskDB, TaskTemplateDB, UserDB, WorkstationDB
from ..database.exceptions import ValidationError
from ..models.api_validation import (
    DailyTaskUpdate,
    TemplateCreate,
    TemplateUpdate,
    WorkstationCreate,
    EmployeeCreate,
    EmployeeWorkstationsUpdate,
)
from ..services import (
    get_daily_task_service,
    get_materializer,
    get_template_service,
    get_workstation_service,
)
from ..services.access import require_manager
from ..utils.datetime_utils import parse_day_key, format_day_key
from .auth import get_current_user, AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter()


def _day(value: Optional[str]) -> date:
    day = parse_day_key(value)
    if day is None:
        raise ValidationError(f"Invalid date: {value}. Use YYYY-MM-DD")
    return day


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================
# SERIALIZATION
# ============================================

def serialize_daily_task(task: DailyTaskDB) -> Dict[str, Any]:
    template = task.task_template
    workstation = template.workstation
    return {
        "id": task.id,
        "taskTemplateId": task.task_template_id,
        "employeeId": task.employee_id,
        "date": format_day_key(task.date),
        "isCompleted": task.is_completed,
        "completedAt": _iso(task.completed_at),
        "createdAt": _iso(task.created_at),
        "updatedAt": _iso(task.updated_at),
        "taskTemplate": {
            "id": template.id,
            "title": template.title,
            "description": template.description,
            "isRecurring": template.is_recurring,
            "workstationId": template.workstation_id,
            "assignedToEmployeeId": template.assigned_to_employee_id,
            "workstation": {"id": workstation.id, "name": workstation.name} if workstation else None,
        },
        "employee": {
            "id": task.employee.id,
            "name": task.employee.name,
            "email": task.employee.email,
        },
    }


def serialize_template(template: TaskTemplateDB) -> Dict[str, Any]:
    workstation = template.workstation
    employee = template.assigned_to_employee
    return {
        "id": template.id,
        "title": template.title,
        "description": template.description,
        "workstationId": template.workstation_id,
        "assignedToEmployeeId": template.assigned_to_employee_id,
        "isRecurring": template.is_recurring,
        "recurrenceType": template.recurrence_type,
        "recurrenceDays": template.recurrence_days,
        "targetPerWeek": template.target_per_week,
        "notifyEmployee": template.notify_employee,
        "teamId": template.team_id,
        "createdById": template.created_by_id,
        "createdAt": _iso(template.created_at),
        "updatedAt": _iso(template.updated_at),
        "workstation": {"id": workstation.id, "name": workstation.name} if workstation else None,
        "assignedToEmployee": {"id": employee.id, "name": employee.name} if employee else None,
    }


def serialize_workstation(workstation: WorkstationDB, member_count: int = 0) -> Dict[str, Any]:
    return {
        "id": workstation.id,
        "name": workstation.name,
        "teamId": workstation.team_id,
        "memberCount": member_count,
        "createdAt": _iso(workstation.created_at),
    }


def serialize_member(user: UserDB) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "teamId": user.team_id,
        "workstations": [
            {"id": m.workstation.id, "name": m.workstation.name}
            for m in sorted(user.memberships, key=lambda m: m.workstation.name)
        ],
    }


# ============================================
# DAILY TASKS
# ============================================

@router.get("/api/tasks/daily")
async def list_daily_tasks(
    date: Optional[str] = Query(None),
    employee_id: Optional[str] = Query(None, alias="employeeId"),
    workstation_id: Optional[str] = Query(None, alias="workstationId"),
    user: UserDB = Depends(get_current_user),
):
    """Daily tasks for a day (today by default); prepares the day on first read."""
    day = _day(date)
    tasks = await get_daily_task_service().list_for_day(
        user, day, employee_id=employee_id, workstation_id=workstation_id
    )
    return [serialize_daily_task(t) for t in tasks]


@router.patch("/api/tasks/daily/{task_id}")
async def update_daily_task(
    task_id: str,
    body: DailyTaskUpdate,
    user: UserDB = Depends(get_current_user),
):
    """Set completion and/or move the task to another employee, atomically."""
    task = await get_daily_task_service().update_task(
        task_id, user, is_completed=body.is_completed, employee_id=body.employee_id
    )
    return serialize_daily_task(task)


# ============================================
# MANAGER DASHBOARD & DAYS
# ============================================

@router.get("/api/manager/dashboard")
async def manager_dashboard(
    date: Optional[str] = Query(None),
    employee_id: Optional[str] = Query(None, alias="employeeId"),
    workstation_id: Optional[str] = Query(None, alias="workstationId"),
    user: UserDB = Depends(get_current_user),
):
    day = _day(date)
    data = await get_daily_task_service().manager_dashboard(
        user, day, employee_id=employee_id, workstation_id=workstation_id
    )
    preparation = data["preparation"]
    return {
        "team": {"id": data["team"].id, "name": data["team"].name} if data["team"] else None,
        "date": format_day_key(day),
        "prepared": preparation is not None,
        "preparedAt": _iso(preparation.prepared_at) if preparation else None,
        "dailyTasks": [serialize_daily_task(t) for t in data["daily_tasks"]],
        "workstations": [serialize_workstation(w, count) for w, count in data["workstations"]],
    }


@router.get("/api/days/{day}")
async def get_day_status(day: str, user: UserDB = Depends(get_current_user)):
    """Whether a day has been prepared for the manager's team."""
    team_id = require_manager(user)
    parsed = _day(day)
    preparation = await get_materializer().get_preparation(team_id, parsed)
    return {
        "date": format_day_key(parsed),
        "prepared": preparation is not None,
        "preparedAt": _iso(preparation.prepared_at) if preparation else None,
    }


@router.post("/api/days/{day}/prepare")
async def prepare_day(day: str, user: UserDB = Depends(get_current_user)):
    """Materialize a day for the manager's team. Safe to repeat."""
    team_id = require_manager(user)
    parsed = _day(day)
    result = await get_materializer().prepare_day(team_id, parsed, actor_id=user.id)
    return {
        "date": format_day_key(parsed),
        "prepared": True,
        "created": result.created,
        "skipped": result.skipped,
    }


# ============================================
# TEMPLATES
# ============================================

@router.get("/api/tasks/templates")
async def list_templates(user: UserDB = Depends(get_current_user)):
    templates = await get_template_service().list_templates(user)
    return [serialize_template(t) for t in templates]


@router.post("/api/tasks/templates", status_code=201)
async def create_template(body: TemplateCreate, user: UserDB = Depends(get_current_user)):
    template = await get_template_service().create_template(user, body.model_dump())
    return serialize_template(template)


@router.patch("/api/tasks/templates/{template_id}")
async def update_template(
    template_id: str,
    body: TemplateUpdate,
    user: UserDB = Depends(get_current_user),
):
    template = await get_template_service().update_template(user, template_id, body.to_updates())
    return serialize_template(template)


@router.delete("/api/tasks/templates/{template_id}", status_code=204)
async def delete_template(template_id: str, user: UserDB = Depends(get_current_user)):
    """Delete a template together with all of its daily tasks."""
    await get_template_service().delete_template(user, template_id)
    return Response(status_code=204)


# ============================================
# WORKSTATIONS & EMPLOYEES
# ============================================

@router.get("/api/workstations")
async def list_workstations(user: UserDB = Depends(get_current_user)):
    workstations = await get_workstation_service().list_workstations(user)
    return [serialize_workstation(w, count) for w, count in workstations]


@router.post("/api/workstations", status_code=201)
async def create_workstation(body: WorkstationCreate, user: UserDB = Depends(get_current_user)):
    workstation = await get_workstation_service().create_workstation(user, body.name)
    return serialize_workstation(workstation)


@router.delete("/api/workstations/{workstation_id}", status_code=204)
async def delete_workstation(workstation_id: str, user: UserDB = Depends(get_current_user)):
    await get_workstation_service().delete_workstation(user, workstation_id)
    return Response(status_code=204)


@router.get("/api/team/members")
async def list_team_members(user: UserDB = Depends(get_current_user)) -> List[Dict[str, Any]]:
    members = await get_workstation_service().list_members(user)
    return [serialize_member(m) for m in members]


@router.post("/api/employees", status_code=201)
async def create_employee(body: EmployeeCreate, user: UserDB = Depends(get_current_user)):
    employee = await get_workstation_service().create_employee(
        user, body.name, str(body.email), body.workstation_ids
    )
    return serialize_member(employee)


@router.patch("/api/employees/{employee_id}/workstations")
async def set_employee_workstations(
    employee_id: str,
    body: EmployeeWorkstationsUpdate,
    user: UserDB = Depends(get_current_user),
):
    employee = await get_workstation_service().set_employee_workstations(
        user, employee_id, body.workstation_ids
    )
    return serialize_member(employee)


# ============================================
# OPERATOR CRON
# ============================================

@router.post("/api/cron/daily-tasks")
async def cron_daily_tasks(
    date: Optional[str] = Query(None),
    x_cron_secret: Optional[str] = Header(default=None, alias="X-Cron-Secret"),
):
    """Materialize a day for every team. Guarded by CRON_SECRET."""
    if not settings.cron_secret:
        return JSONResponse(
            status_code=503,
            content={"error": "Cron trigger is not configured", "code": "DISABLED"},
        )
    if not x_cron_secret or not secrets.compare_digest(x_cron_secret.encode(), settings.cron_secret.encode()):
        raise AuthenticationError("Invalid cron secret")

    day = _day(date)
    summary = await get_materializer().materialize_all_teams(day)
    return {"success": not summary["errors"], **summary}
