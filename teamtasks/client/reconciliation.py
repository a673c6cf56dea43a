"""
Client-side consistency for dashboard views.

- QueryCache: results keyed by their query parameters. Every fetch gets a
  generation number; only the newest fetch for a key may store its result,
  so a slow response for an old filter or date never overwrites a newer one.
- PendingTracker: at most one mutation in flight per entity. A second one is
  rejected locally; other entities stay usable.
- Views refetch the narrowest query an event can affect. Mutations never
  change local state speculatively: the server's row replaces the cached
  row on success, and nothing changes on failure.
"""

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set, Tuple

from ..realtime.events import TaskAssignedEvent, TaskUpdatedEvent
from ..utils.datetime_utils import get_local_today, format_day_key
from .api import TaskApiClient

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


class MutationInFlightError(Exception):
    """A mutation for this entity is already pending."""

    def __init__(self, entity_id: str):
        super().__init__(f"A change to {entity_id} is already in progress")
        self.entity_id = entity_id


# ==================== QUERY CACHE ====================

class QueryCache:
    """Query results keyed by parameter tuples, guarded by fetch generations."""

    def __init__(self):
        self._entries: Dict[QueryKey, Any] = {}
        self._latest: Dict[QueryKey, int] = {}
        self._counter = itertools.count(1)

    def begin(self, key: QueryKey) -> int:
        """Start a fetch for key; returns its generation."""
        generation = next(self._counter)
        self._latest[key] = generation
        return generation

    def apply(self, key: QueryKey, generation: int, data: Any) -> bool:
        """Store a fetch result unless a newer fetch for key has started."""
        if self._latest.get(key) != generation:
            logger.debug(f"Discarding superseded response for {key}")
            return False
        self._entries[key] = data
        return True

    def get(self, key: QueryKey) -> Any:
        return self._entries.get(key)

    def set(self, key: QueryKey, data: Any) -> None:
        self._entries[key] = data

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def invalidate(self, prefix: QueryKey) -> List[QueryKey]:
        """Drop every entry whose key starts with prefix. Returns the dropped keys."""
        matched = [k for k in self._entries if k[:len(prefix)] == prefix]
        for key in matched:
            del self._entries[key]
        return matched


# ==================== PENDING GATING ====================

class PendingTracker:
    """Entity ids with a mutation in flight."""

    def __init__(self):
        self._pending: Set[str] = set()

    def is_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    @property
    def pending(self) -> Set[str]:
        return set(self._pending)

    @asynccontextmanager
    async def track(self, entity_id: str):
        if entity_id in self._pending:
            raise MutationInFlightError(entity_id)
        self._pending.add(entity_id)
        try:
            yield
        finally:
            self._pending.discard(entity_id)


def replace_row(rows: Optional[List[Dict[str, Any]]], row: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Copy of rows with the row sharing row["id"] replaced."""
    if rows is None:
        return None
    return [row if r.get("id") == row.get("id") else r for r in rows]


# ==================== VIEWS ====================

class DashboardView:
    """A query-backed view that refetches on events."""

    def __init__(
        self,
        api: TaskApiClient,
        cache: Optional[QueryCache] = None,
        day: Optional[str] = None,
        debounce: float = 0.5,
    ):
        self.api = api
        self.cache = cache or QueryCache()
        self.pending = PendingTracker()
        self.date = day or format_day_key(get_local_today())
        self.debounce = debounce
        self.current_key: Optional[QueryKey] = None
        self._scheduled: Optional[asyncio.Task] = None

    def query_key(self) -> QueryKey:
        raise NotImplementedError

    async def fetch(self) -> Any:
        raise NotImplementedError

    @property
    def data(self) -> Any:
        return self.cache.get(self.current_key) if self.current_key else None

    async def refresh(self) -> bool:
        """
        Fetch the current query.

        Returns:
            False if the response was superseded and discarded
        """
        key = self.query_key()
        self.current_key = key
        generation = self.cache.begin(key)
        data = await self.fetch()
        if self.current_key != key:
            logger.debug(f"View moved from {key} to {self.current_key}, dropping response")
            return False
        return self.cache.apply(key, generation, data)

    async def set_date(self, day: str) -> bool:
        self.date = day
        return await self.refresh()

    def schedule_refresh(self, delay: float = 0.0) -> asyncio.Task:
        """Refetch after delay, replacing any refetch already scheduled."""
        if self._scheduled is not None and not self._scheduled.done():
            self._scheduled.cancel()

        async def _run():
            if delay:
                await asyncio.sleep(delay)
            try:
                await self.refresh()
            except Exception as e:
                logger.warning(f"Background refresh failed: {e}")

        self._scheduled = asyncio.create_task(_run())
        return self._scheduled

    async def on_reconnect(self) -> None:
        """Events may have been missed while disconnected."""
        await self.refresh()

    async def close(self) -> None:
        if self._scheduled is not None and not self._scheduled.done():
            self._scheduled.cancel()
            try:
                await self._scheduled
            except asyncio.CancelledError:
                pass

    async def set_completion(self, task_id: str, is_completed: bool) -> Dict[str, Any]:
        """Pending-gated completion change; the server row replaces the cached one."""
        async with self.pending.track(task_id):
            row = await self.api.set_completion(task_id, is_completed)
        self._store_row(row)
        return row

    def _store_row(self, row: Dict[str, Any]) -> None:
        raise NotImplementedError


class EmployeeDashboard(DashboardView):
    """An employee's own tasks for one day."""

    def __init__(
        self,
        api: TaskApiClient,
        employee_id: str,
        cache: Optional[QueryCache] = None,
        day: Optional[str] = None,
        debounce: float = 0.5,
    ):
        super().__init__(api, cache, day, debounce)
        self.employee_id = employee_id
        self.notifications: List[TaskAssignedEvent] = []

    def query_key(self) -> QueryKey:
        return ("tasks", "daily", self.date)

    async def fetch(self) -> List[Dict[str, Any]]:
        return await self.api.list_daily_tasks(date=self.date)

    @property
    def tasks(self) -> List[Dict[str, Any]]:
        return self.data or []

    def _store_row(self, row: Dict[str, Any]) -> None:
        key = ("tasks", "daily", row.get("date"))
        rows = self.cache.get(key)
        if rows is not None:
            self.cache.set(key, replace_row(rows, row))

    async def handle_event(self, event) -> None:
        if isinstance(event, TaskUpdatedEvent):
            if event.task_date in (None, self.date):
                self.schedule_refresh()
        elif isinstance(event, TaskAssignedEvent):
            if event.employee_id != self.employee_id:
                return
            self.notifications.append(event)
            if event.task_date in (None, self.date):
                self.schedule_refresh(self.debounce)


class ManagerDashboard(DashboardView):
    """The team dashboard for one day, optionally filtered."""

    def __init__(
        self,
        api: TaskApiClient,
        cache: Optional[QueryCache] = None,
        day: Optional[str] = None,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
        debounce: float = 0.5,
    ):
        super().__init__(api, cache, day, debounce)
        self.employee_id = employee_id
        self.workstation_id = workstation_id

    def query_key(self) -> QueryKey:
        return ("manager", "dashboard", self.date, self.employee_id, self.workstation_id)

    async def fetch(self) -> Dict[str, Any]:
        return await self.api.manager_dashboard(
            date=self.date,
            employee_id=self.employee_id,
            workstation_id=self.workstation_id,
        )

    async def set_filters(self, employee_id: Optional[str] = None, workstation_id: Optional[str] = None) -> bool:
        self.employee_id = employee_id
        self.workstation_id = workstation_id
        return await self.refresh()

    @property
    def tasks(self) -> List[Dict[str, Any]]:
        return (self.data or {}).get("dailyTasks", [])

    def _store_row(self, row: Dict[str, Any]) -> None:
        for key in self.cache.keys():
            if key[:3] != ("manager", "dashboard", row.get("date")):
                continue
            dashboard = self.cache.get(key)
            self.cache.set(key, {**dashboard, "dailyTasks": replace_row(dashboard.get("dailyTasks"), row)})

    async def reassign(self, task_id: str, employee_id: str) -> Dict[str, Any]:
        """Pending-gated move; refetches since filtered views may gain or lose the row."""
        async with self.pending.track(task_id):
            row = await self.api.reassign(task_id, employee_id)
        self._store_row(row)
        await self.refresh()
        return row

    async def prepare_day(self) -> Dict[str, Any]:
        async with self.pending.track(f"day:{self.date}"):
            result = await self.api.prepare_day(self.date)
        await self.refresh()
        return result

    async def handle_event(self, event) -> None:
        if not isinstance(event, (TaskUpdatedEvent, TaskAssignedEvent)):
            return
        if event.task_date not in (None, self.date):
            return
        self.cache.invalidate(("manager", "dashboard", self.date))
        self.schedule_refresh()
