"""
Team-scoped real-time events.
"""

from .events import (
    TaskAssignedEvent,
    TaskUpdatedEvent,
    TASK_ASSIGNED,
    TASK_UPDATED,
    parse_event,
    event_to_wire,
)
from .broker import (
    EventBroker,
    InMemoryEventBroker,
    RedisEventBroker,
    Subscription,
    get_event_broker,
    set_event_broker,
    publish_event,
)

__all__ = [
    "TaskAssignedEvent",
    "TaskUpdatedEvent",
    "TASK_ASSIGNED",
    "TASK_UPDATED",
    "parse_event",
    "event_to_wire",
    "EventBroker",
    "InMemoryEventBroker",
    "RedisEventBroker",
    "Subscription",
    "get_event_broker",
    "set_event_broker",
    "publish_event",
]
