from .api_validation import (
    DailyTaskUpdate,
    TemplateCreate,
    TemplateUpdate,
    WorkstationCreate,
    EmployeeCreate,
    EmployeeWorkstationsUpdate,
)

__all__ = [
    "DailyTaskUpdate",
    "TemplateCreate",
    "TemplateUpdate",
    "WorkstationCreate",
    "EmployeeCreate",
    "EmployeeWorkstationsUpdate",
]
