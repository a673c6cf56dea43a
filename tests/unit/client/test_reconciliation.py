"""
Tests for teamtasks/client/reconciliation.py

The API is replaced by a fake whose responses can be held back, so the
tests can interleave slow and fast fetches deterministically.
"""

import asyncio
from typing import Any, Dict

import pytest

from teamtasks.client import (
    ApiConflictError,
    EmployeeDashboard,
    ManagerDashboard,
    MutationInFlightError,
    PendingTracker,
    QueryCache,
)
from teamtasks.realtime.events import TaskAssignedEvent, TaskUpdatedEvent


class FakeApi:
    """Records calls; a gate per date can hold a response back."""

    def __init__(self):
        self.calls = []
        self.gates: Dict[Any, asyncio.Event] = {}
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.error = None

    async def _wait(self, key):
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()

    async def list_daily_tasks(self, date=None, employee_id=None, workstation_id=None):
        self.calls.append(("list", date))
        await self._wait(date)
        return [dict(row, date=date) for row in self.rows.values()]

    async def manager_dashboard(self, date=None, employee_id=None, workstation_id=None):
        self.calls.append(("dashboard", date, employee_id))
        await self._wait(date)
        rows = [dict(row, date=date) for row in self.rows.values()]
        if employee_id:
            rows = [r for r in rows if r["employeeId"] == employee_id]
        return {"date": date, "dailyTasks": rows}

    async def set_completion(self, task_id, is_completed):
        self.calls.append(("complete", task_id))
        await self._wait(task_id)
        if self.error:
            raise self.error
        row = dict(self.rows[task_id], isCompleted=is_completed, date="2025-02-19")
        self.rows[task_id] = row
        return row

    async def reassign(self, task_id, employee_id):
        self.calls.append(("reassign", task_id))
        if self.error:
            raise self.error
        row = dict(self.rows[task_id], employeeId=employee_id, date="2025-02-19")
        self.rows[task_id] = row
        return row

    async def prepare_day(self, date):
        self.calls.append(("prepare", date))
        return {"date": date, "prepared": True, "created": 0, "skipped": 0}


@pytest.fixture
def api():
    fake = FakeApi()
    fake.rows = {
        "t1": {"id": "t1", "employeeId": "alice", "isCompleted": False},
        "t2": {"id": "t2", "employeeId": "bob", "isCompleted": False},
    }
    return fake


# ==================== CACHE & PENDING ====================

class TestQueryCache:
    """Generation guard and prefix invalidation."""

    def test_stale_generation_discarded(self):
        cache = QueryCache()
        old = cache.begin(("tasks", "daily", "2025-02-19"))
        new = cache.begin(("tasks", "daily", "2025-02-19"))

        assert cache.apply(("tasks", "daily", "2025-02-19"), new, ["new"]) is True
        assert cache.apply(("tasks", "daily", "2025-02-19"), old, ["old"]) is False
        assert cache.get(("tasks", "daily", "2025-02-19")) == ["new"]

    def test_invalidate_by_prefix(self):
        cache = QueryCache()
        cache.set(("manager", "dashboard", "2025-02-19", None, None), {})
        cache.set(("manager", "dashboard", "2025-02-19", "bob", None), {})
        cache.set(("manager", "dashboard", "2025-02-20", None, None), {})

        dropped = cache.invalidate(("manager", "dashboard", "2025-02-19"))

        assert len(dropped) == 2
        assert cache.keys() == [("manager", "dashboard", "2025-02-20", None, None)]


class TestPendingTracker:
    """One mutation in flight per entity."""

    @pytest.mark.asyncio
    async def test_second_mutation_rejected_until_first_finishes(self):
        tracker = PendingTracker()

        async with tracker.track("t1"):
            assert tracker.is_pending("t1")
            with pytest.raises(MutationInFlightError):
                async with tracker.track("t1"):
                    pass
            async with tracker.track("t2"):
                assert tracker.pending == {"t1", "t2"}

        assert tracker.pending == set()

    @pytest.mark.asyncio
    async def test_released_after_failure(self):
        tracker = PendingTracker()

        with pytest.raises(RuntimeError):
            async with tracker.track("t1"):
                raise RuntimeError("boom")

        assert not tracker.is_pending("t1")


# ==================== VIEWS ====================

class TestOutOfOrderResponses:
    """A slow response for an old query never replaces a newer one."""

    @pytest.mark.asyncio
    async def test_switching_date_discards_slow_response(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)
        api.gates["2025-02-19"] = asyncio.Event()

        slow = asyncio.create_task(view.refresh())
        await asyncio.sleep(0)
        assert await view.set_date("2025-02-20") is True

        api.gates["2025-02-19"].set()
        assert await slow is False
        assert view.data["date"] == "2025-02-20"

    @pytest.mark.asyncio
    async def test_overlapping_refreshes_keep_the_newest(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)
        api.gates["2025-02-19"] = asyncio.Event()

        first = asyncio.create_task(view.refresh())
        await asyncio.sleep(0)
        api.rows["t1"]["isCompleted"] = True
        second = asyncio.create_task(view.refresh())
        await asyncio.sleep(0)
        api.gates["2025-02-19"].set()

        assert sorted([await first, await second]) == [False, True]
        assert view.tasks[0]["isCompleted"] is True

    @pytest.mark.asyncio
    async def test_filter_change_discards_previous_filter(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)
        api.gates["2025-02-19"] = asyncio.Event()

        unfiltered = asyncio.create_task(view.refresh())
        await asyncio.sleep(0)
        filtered = asyncio.create_task(view.set_filters(employee_id="bob"))
        await asyncio.sleep(0)
        api.gates["2025-02-19"].set()

        assert await unfiltered is False
        assert await filtered is True
        assert [t["id"] for t in view.tasks] == ["t2"]


class TestPendingGatedMutations:
    """Mutations go through the server and are gated per entity."""

    @pytest.mark.asyncio
    async def test_double_toggle_rejected_locally(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)
        await view.refresh()
        api.gates["t1"] = asyncio.Event()

        in_flight = asyncio.create_task(view.set_completion("t1", True))
        await asyncio.sleep(0)
        with pytest.raises(MutationInFlightError):
            await view.set_completion("t1", True)

        api.gates["t1"].set()
        row = await in_flight

        assert row["isCompleted"] is True
        assert view.tasks[0]["isCompleted"] is True
        assert [c for c in api.calls if c[0] == "complete"] == [("complete", "t1")]

    @pytest.mark.asyncio
    async def test_failed_mutation_leaves_cache_untouched(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)
        await view.refresh()
        api.error = ApiConflictError("already assigned", 409, "CONFLICT")

        with pytest.raises(ApiConflictError):
            await view.reassign("t2", "alice")

        assert [t["employeeId"] for t in view.tasks] == ["alice", "bob"]
        assert not view.pending.is_pending("t2")

    @pytest.mark.asyncio
    async def test_reassign_refetches(self, api):
        view = ManagerDashboard(api, day="2025-02-19", employee_id="bob", debounce=0)
        await view.refresh()

        await view.reassign("t2", "alice")

        assert view.tasks == []
        assert api.calls[-1] == ("dashboard", "2025-02-19", "bob")


class TestEventHandling:
    """Real-time events trigger narrow refetches."""

    @pytest.mark.asyncio
    async def test_assignment_for_me_notifies_and_refetches(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)

        await view.handle_event(TaskAssignedEvent(
            task_id="t9",
            employee_id="alice",
            employee_name="Alice",
            task_title="Order coins",
            task_date="2025-02-19",
        ))
        await view._scheduled

        assert [n.task_title for n in view.notifications] == ["Order coins"]
        assert ("list", "2025-02-19") in api.calls

    @pytest.mark.asyncio
    async def test_assignment_for_someone_else_ignored(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)

        await view.handle_event(TaskAssignedEvent(
            task_id="t9", employee_id="bob", employee_name="Bob", task_title="Order coins"
        ))

        assert view.notifications == []
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_update_for_other_day_ignored(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)

        await view.handle_event(TaskUpdatedEvent(task_id="t1", task_date="2025-02-20"))

        assert api.calls == []

    @pytest.mark.asyncio
    async def test_burst_of_assignments_debounced(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0.05)

        for n in range(3):
            await view.handle_event(TaskAssignedEvent(
                task_id=f"t{n}", employee_id="alice", employee_name="Alice", task_title=f"Task {n}"
            ))
        await view._scheduled

        assert len(view.notifications) == 3
        assert api.calls == [("list", "2025-02-19")]

    @pytest.mark.asyncio
    async def test_manager_view_invalidates_and_refetches(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)
        await view.refresh()
        api.calls.clear()

        await view.handle_event(TaskUpdatedEvent(batch=True, created=2, task_date="2025-02-19"))
        await view._scheduled

        assert api.calls == [("dashboard", "2025-02-19", None)]
        assert view.data is not None

    @pytest.mark.asyncio
    async def test_manager_view_ignores_other_days(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)
        await view.refresh()
        api.calls.clear()

        await view.handle_event(TaskUpdatedEvent(task_id="t1", is_completed=True, task_date="2025-03-01"))
        await view.handle_event(TaskAssignedEvent(
            task_id="t9", employee_id="bob", employee_name="Bob", task_title="Order coins", task_date="2025-03-01"
        ))

        assert view._scheduled is None
        assert api.calls == []
        assert view.cache.get(view.query_key()) is not None

    @pytest.mark.asyncio
    async def test_manager_view_refetches_for_undated_assignment(self, api):
        view = ManagerDashboard(api, day="2025-02-19", debounce=0)

        await view.handle_event(TaskAssignedEvent(
            task_id="t9", employee_id="bob", employee_name="Bob", task_title="Order coins"
        ))
        await view._scheduled

        assert api.calls == [("dashboard", "2025-02-19", None)]

    @pytest.mark.asyncio
    async def test_reconnect_refetches(self, api):
        view = EmployeeDashboard(api, "alice", day="2025-02-19", debounce=0)

        await view.on_reconnect()
        await view.close()

        assert api.calls == [("list", "2025-02-19")]
