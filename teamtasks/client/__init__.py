"""
Async client SDK for Team Tasks.

Usage:
    api = TaskApiClient("http://localhost:8000", token)
    view = EmployeeDashboard(api, employee_id)
    await view.refresh()
    channel = RealtimeChannel(api.base_url, token, view.handle_event, view.on_reconnect)
    asyncio.create_task(channel.run())
"""

from .api import (
    TaskApiClient,
    ApiError,
    ApiValidationError,
    ApiUnauthorizedError,
    ApiForbiddenError,
    ApiNotFoundError,
    ApiConflictError,
)
from .realtime import RealtimeChannel
from .reconciliation import (
    QueryCache,
    PendingTracker,
    MutationInFlightError,
    EmployeeDashboard,
    ManagerDashboard,
)

__all__ = [
    "TaskApiClient",
    "ApiError",
    "ApiValidationError",
    "ApiUnauthorizedError",
    "ApiForbiddenError",
    "ApiNotFoundError",
    "ApiConflictError",
    "RealtimeChannel",
    "QueryCache",
    "PendingTracker",
    "MutationInFlightError",
    "EmployeeDashboard",
    "ManagerDashboard",
]
