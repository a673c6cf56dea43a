"""
Services for business logic.
"""

from .assignment import AssignmentResolver, get_assignment_resolver
from .materializer import Materializer, MaterializationResult, get_materializer, template_applies_on
from .daily_tasks import DailyTaskService, get_daily_task_service
from .templates import TemplateService, get_template_service
from .workstations import WorkstationService, get_workstation_service


def reset_services() -> None:
    """Drop service singletons so they rebind to the current database."""
    from . import assignment, materializer, daily_tasks, templates, workstations

    assignment._resolver = None
    materializer._materializer = None
    daily_tasks._daily_task_service = None
    templates._template_service = None
    workstations._workstation_service = None


__all__ = [
    "AssignmentResolver",
    "get_assignment_resolver",
    "Materializer",
    "MaterializationResult",
    "get_materializer",
    "template_applies_on",
    "DailyTaskService",
    "get_daily_task_service",
    "TemplateService",
    "get_template_service",
    "WorkstationService",
    "get_workstation_service",
    "reset_services",
]
