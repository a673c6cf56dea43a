"""
Real-time event payloads.

Two kinds of event flow from the server to a team's connected clients:
- task:assigned  a daily task now belongs to an employee
- task:updated   a daily task's completion changed, or a batch of tasks
                 was materialized for a day

Payloads are camelCase on the wire and carry a "type" tag.
"""

import logging
from typing import Optional, Literal, Union, Any, Dict, Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

TASK_ASSIGNED = "task:assigned"
TASK_UPDATED = "task:updated"


class _EventModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskAssignedEvent(_EventModel):
    """A task was assigned (created for, or moved to) an employee."""
    type: Literal["task:assigned"] = TASK_ASSIGNED
    task_id: str
    employee_id: str
    employee_name: str
    task_title: str
    task_description: Optional[str] = None
    task_date: Optional[str] = None


class TaskUpdatedEvent(_EventModel):
    """Completion change of one task, or a batch notification for a day."""
    type: Literal["task:updated"] = TASK_UPDATED
    task_id: Optional[str] = None
    employee_id: Optional[str] = None
    is_completed: Optional[bool] = None
    task_title: Optional[str] = None
    task_date: Optional[str] = None
    batch: bool = False
    created: Optional[int] = None


TaskEvent = Annotated[Union[TaskAssignedEvent, TaskUpdatedEvent], Field(discriminator="type")]

_event_adapter = TypeAdapter(TaskEvent)


def event_to_wire(event: Union[TaskAssignedEvent, TaskUpdatedEvent]) -> Dict[str, Any]:
    """Serialize an event for the wire (camelCase, nulls dropped)."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_event(data: Any) -> Optional[Union[TaskAssignedEvent, TaskUpdatedEvent]]:
    """
    Parse a wire payload into an event.

    Returns:
        The event, or None for unknown kinds and malformed payloads
    """
    if not isinstance(data, dict):
        return None
    if data.get("type") not in (TASK_ASSIGNED, TASK_UPDATED):
        logger.debug(f"Ignoring unknown event kind: {data.get('type')}")
        return None
    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning(f"Malformed {data.get('type')} event: {e.error_count()} errors")
        return None
