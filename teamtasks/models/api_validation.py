"""
Pydantic models for API request bodies.

Bodies use camelCase keys on the wire (isCompleted, employeeId, ...);
snake_case names are accepted too. Rules that depend on stored state (the
template target rule, team membership of referenced ids) are checked in the
services and reported as 400/404 rather than 422.
"""

from typing import Optional, Literal, List, Union, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel


RecurrenceType = Literal["daily", "weekly", "x_per_week"]


class CamelModel(BaseModel):
    """Base for request bodies with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _no_script(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    lowered = v.lower()
    if "<script" in lowered or "<iframe" in lowered:
        raise ValueError("Text fields cannot contain script/iframe tags")
    return v


# ============================================
# DAILY TASKS
# ============================================

class DailyTaskUpdate(CamelModel):
    """PATCH /api/tasks/daily/{taskId}: completion and/or reassignment."""
    is_completed: Optional[bool] = None
    employee_id: Optional[str] = Field(None, min_length=1, max_length=64)


# ============================================
# TEMPLATES
# ============================================

class TemplateCreate(CamelModel):
    """Validation for creating task templates."""
    title: str = Field(..., max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    workstation_id: Optional[str] = Field(None, max_length=64)
    assigned_to_employee_id: Optional[str] = Field(None, max_length=64)
    is_recurring: bool = True
    recurrence_type: RecurrenceType = "daily"
    recurrence_days: Optional[Union[str, List[int]]] = None
    target_per_week: Optional[int] = Field(None, ge=1, le=7)
    notify_employee: bool = True

    @field_validator("title", "description")
    @classmethod
    def validate_no_xss(cls, v):
        return _no_script(v)


class TemplateUpdate(CamelModel):
    """Partial template update. Only fields present in the body change."""
    title: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    workstation_id: Optional[str] = Field(None, max_length=64)
    assigned_to_employee_id: Optional[str] = Field(None, max_length=64)
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_days: Optional[Union[str, List[int]]] = None
    target_per_week: Optional[int] = Field(None, ge=1, le=7)
    notify_employee: Optional[bool] = None

    @field_validator("title", "description")
    @classmethod
    def validate_no_xss(cls, v):
        return _no_script(v)

    def to_updates(self) -> Dict[str, Any]:
        """Fields the client sent. Explicit nulls only clear nullable fields."""
        updates = self.model_dump(exclude_unset=True)
        for key in ("title", "is_recurring", "recurrence_type", "notify_employee"):
            if updates.get(key, "") is None:
                del updates[key]
        return updates


# ============================================
# WORKSTATIONS & EMPLOYEES
# ============================================

class WorkstationCreate(CamelModel):
    name: str = Field(..., max_length=200)


class EmployeeCreate(CamelModel):
    """Validation for adding an employee to the manager's team."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    workstation_ids: List[str] = Field(default_factory=list, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("name cannot be blank")
        if "<" in stripped or ">" in stripped:
            raise ValueError("name cannot contain HTML/script tags")
        return stripped


class EmployeeWorkstationsUpdate(CamelModel):
    workstation_ids: List[str] = Field(..., max_length=100)
