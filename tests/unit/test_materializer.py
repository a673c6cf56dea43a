"""
Tests for teamtasks/services/materializer.py

Covers idempotent passes, one-shot templates, the membership snapshot of a
prepared day, recurrence filtering and the all-teams cron pass.
"""

import asyncio

import pytest
from datetime import date, timedelta

from config import settings
from teamtasks.database.exceptions import EntityNotFoundError
from teamtasks.database.models import TaskTemplateDB
from teamtasks.database.repositories import get_daily_task_repository, get_team_repository
from teamtasks.services import (
    get_materializer,
    get_template_service,
    get_daily_task_service,
    get_workstation_service,
    template_applies_on,
)
from teamtasks.services.materializer import parse_recurrence_days
from teamtasks.utils.datetime_utils import get_local_today


def upcoming(days: int = 7) -> date:
    return get_local_today() + timedelta(days=days)


async def create_template(seeded, **overrides):
    data = {"title": "Count register", "workstation_id": seeded.checkout.id}
    data.update(overrides)
    return await get_template_service().create_template(seeded.manager, data)


async def tasks_on(database, team_id, day):
    async with database.session() as session:
        return await get_daily_task_repository().list_for_day(session, team_id, day)


# ==================== RECURRENCE ====================

class TestRecurrence:
    """Tests for recurrence filtering."""

    def test_daily_applies_every_day(self):
        template = TaskTemplateDB(recurrence_type="daily", recurrence_days="1")
        assert template_applies_on(template, date(2025, 2, 19))
        assert template_applies_on(template, date(2025, 2, 22))

    def test_weekly_uses_sunday_zero_weekdays(self):
        """2025-02-19 is a Wednesday (3)."""
        template = TaskTemplateDB(recurrence_type="weekly", recurrence_days="1,3,5")
        assert template_applies_on(template, date(2025, 2, 19))
        assert not template_applies_on(template, date(2025, 2, 20))
        assert not template_applies_on(template, date(2025, 2, 23))

    def test_weekly_without_days_applies_every_day(self):
        template = TaskTemplateDB(recurrence_type="weekly", recurrence_days=None)
        assert template_applies_on(template, date(2025, 2, 23))

    def test_parse_recurrence_days_ignores_junk(self):
        assert parse_recurrence_days("1, 3,x,9,,0") == {0, 1, 3}
        assert parse_recurrence_days(None) == set()


# ==================== DAY PASSES ====================

class TestMaterializeDay:
    """Tests for Materializer.materialize_day."""

    @pytest.mark.asyncio
    async def test_creates_one_instance_per_workstation_member(self, database, seeded):
        template = await create_template(seeded)
        day = upcoming()

        result = await get_materializer().materialize_day(seeded.ops.id, day)

        assert result.created == 2
        tasks = await tasks_on(database, seeded.ops.id, day)
        assert sorted(t.employee.name for t in tasks) == ["Alice", "Bob"]
        assert all(t.task_template_id == template.id for t in tasks)
        assert all(not t.is_completed and t.completed_at is None for t in tasks)

    @pytest.mark.asyncio
    async def test_second_pass_creates_nothing(self, database, seeded):
        await create_template(seeded)
        day = upcoming()
        materializer = get_materializer()

        await materializer.materialize_day(seeded.ops.id, day)
        first_ids = {t.id for t in await tasks_on(database, seeded.ops.id, day)}
        second = await materializer.materialize_day(seeded.ops.id, day)

        assert second.created == 0
        assert second.skipped == 2
        assert {t.id for t in await tasks_on(database, seeded.ops.id, day)} == first_ids

    @pytest.mark.asyncio
    async def test_rerun_keeps_completion_state(self, database, seeded):
        await create_template(seeded)
        day = upcoming()
        materializer = get_materializer()
        await materializer.materialize_day(seeded.ops.id, day)

        alice_task = next(t for t in await tasks_on(database, seeded.ops.id, day) if t.employee_id == seeded.alice.id)
        done = await get_daily_task_service().set_completion(alice_task.id, True, seeded.alice)

        await materializer.prepare_day(seeded.ops.id, day, actor_id=seeded.manager.id)

        tasks = {t.id: t for t in await tasks_on(database, seeded.ops.id, day)}
        assert len(tasks) == 2
        assert tasks[alice_task.id].is_completed is True
        assert tasks[alice_task.id].completed_at == done.completed_at

    @pytest.mark.asyncio
    async def test_workstation_without_members_yields_nothing(self, database, seeded):
        empty = await get_workstation_service().create_workstation(seeded.manager, "Returns")
        await create_template(seeded, workstation_id=empty.id)

        result = await get_materializer().materialize_day(seeded.ops.id, upcoming())

        assert result.created == 0
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_weekly_template_skipped_off_schedule(self, database, seeded):
        day = upcoming()
        off_day = (day.weekday() + 2) % 7  # Sunday = 0 numbering of the day after
        await create_template(seeded, recurrence_type="weekly", recurrence_days=str(off_day))

        result = await get_materializer().materialize_day(seeded.ops.id, day)

        assert result.created == 0

    @pytest.mark.asyncio
    async def test_unknown_team_raises(self, database, seeded):
        with pytest.raises(EntityNotFoundError):
            await get_materializer().materialize_day("missing-team", upcoming())

    @pytest.mark.asyncio
    async def test_pass_marks_day_prepared(self, database, seeded):
        day = upcoming()
        materializer = get_materializer()
        assert await materializer.get_preparation(seeded.ops.id, day) is None

        await materializer.materialize_day(seeded.ops.id, day, prepared_by_id=seeded.manager.id)

        preparation = await materializer.get_preparation(seeded.ops.id, day)
        assert preparation is not None
        assert preparation.prepared_by_id == seeded.manager.id


# ==================== ONE-SHOT TEMPLATES ====================

class TestOneShotTemplates:
    """Non-recurring templates materialize once, at creation."""

    @pytest.mark.asyncio
    async def test_materialized_for_creation_day_only(self, database, seeded):
        template = await create_template(
            seeded,
            title="Fix the till",
            workstation_id=None,
            assigned_to_employee_id=seeded.bob.id,
            is_recurring=False,
        )
        today = get_local_today()

        today_tasks = [t for t in await tasks_on(database, seeded.ops.id, today) if t.task_template_id == template.id]
        assert [t.employee_id for t in today_tasks] == [seeded.bob.id]

        later = await get_daily_task_service().list_for_day(seeded.manager, upcoming())
        assert all(t.task_template_id != template.id for t in later)

        await get_materializer().prepare_day(seeded.ops.id, upcoming(8))
        assert all(
            t.task_template_id != template.id
            for t in await tasks_on(database, seeded.ops.id, upcoming(8))
        )


# ==================== MEMBERSHIP SNAPSHOT ====================

class TestMembershipSnapshot:
    """A prepared day keeps the memberships it was prepared with."""

    @pytest.mark.asyncio
    async def test_removed_member_keeps_prepared_instance(self, database, seeded):
        await create_template(seeded)
        day = upcoming()
        service = get_daily_task_service()
        await service.list_for_day(seeded.manager, day)

        async with database.session() as session:
            await get_team_repository().set_memberships(session, seeded.bob.id, [])

        tasks = await service.list_for_day(seeded.manager, day)
        assert sorted(t.employee.name for t in tasks) == ["Alice", "Bob"]

        next_day_tasks = await service.list_for_day(seeded.manager, day + timedelta(days=1))
        assert [t.employee.name for t in next_day_tasks] == ["Alice"]

    @pytest.mark.asyncio
    async def test_new_member_needs_explicit_prepare(self, database, seeded):
        await create_template(seeded)
        day = upcoming()
        service = get_daily_task_service()
        await service.list_for_day(seeded.manager, day)

        await get_workstation_service().create_employee(
            seeded.manager, "Dana", "dana@ops.example.com", [seeded.checkout.id]
        )

        assert len(await service.list_for_day(seeded.manager, day)) == 2

        result = await get_materializer().prepare_day(seeded.ops.id, day, actor_id=seeded.manager.id)
        assert result.created == 1
        assert len(await service.list_for_day(seeded.manager, day)) == 3


# ==================== LAZY PASSES ====================

class TestEnsureDay:
    """Tests for the lazy pass before reads."""

    @pytest.mark.asyncio
    async def test_runs_once_for_unprepared_day(self, database, seeded):
        await create_template(seeded)
        materializer = get_materializer()

        first = await materializer.ensure_day(seeded.ops.id, upcoming())
        second = await materializer.ensure_day(seeded.ops.id, upcoming())

        assert first.created == 2
        assert second is None

    @pytest.mark.asyncio
    async def test_past_day_left_alone_by_default(self, database, seeded):
        await create_template(seeded)
        past = get_local_today() - timedelta(days=3)

        assert await get_materializer().ensure_day(seeded.ops.id, past) is None
        assert await tasks_on(database, seeded.ops.id, past) == []

    @pytest.mark.asyncio
    async def test_past_day_materialized_when_enabled(self, database, seeded, monkeypatch):
        monkeypatch.setattr(settings, "materialize_past_days_on_read", True)
        await create_template(seeded)
        past = get_local_today() - timedelta(days=3)

        result = await get_materializer().ensure_day(seeded.ops.id, past)

        assert result.created == 2

    @pytest.mark.asyncio
    async def test_disabled_on_read(self, database, seeded, monkeypatch):
        monkeypatch.setattr(settings, "materialize_on_read", False)
        await create_template(seeded)

        assert await get_materializer().ensure_day(seeded.ops.id, upcoming()) is None
        assert await tasks_on(database, seeded.ops.id, upcoming()) == []

    @pytest.mark.asyncio
    async def test_concurrent_first_reads(self, database, seeded):
        await create_template(seeded)
        day = get_local_today() + timedelta(days=1)
        service = get_daily_task_service()

        manager_view, alice_view, bob_view = await asyncio.gather(
            service.list_for_day(seeded.manager, day),
            service.list_for_day(seeded.alice, day),
            service.list_for_day(seeded.bob, day),
        )

        assert [t.employee.name for t in manager_view] == ["Alice", "Bob"]
        assert [t.employee.name for t in alice_view] == ["Alice"]
        assert [t.employee.name for t in bob_view] == ["Bob"]
        assert len(await tasks_on(database, seeded.ops.id, day)) == 2
        assert await get_materializer().get_preparation(seeded.ops.id, day) is not None

    @pytest.mark.asyncio
    async def test_concurrent_passes_create_each_instance_once(self, database, seeded):
        await create_template(seeded)
        materializer = get_materializer()

        results = await asyncio.gather(*(materializer.materialize_day(seeded.ops.id, upcoming()) for _ in range(3)))

        assert sum(r.created for r in results) == 2
        assert sum(r.skipped for r in results) == 4
        assert len(await tasks_on(database, seeded.ops.id, upcoming())) == 2


# ==================== EVENTS & CRON ====================

class TestPrepareDay:
    """Tests for the explicit prepare action."""

    @pytest.mark.asyncio
    async def test_publishes_one_batch_event_to_the_team(self, database, seeded, broker):
        await create_template(seeded)
        ops_sub = await broker.subscribe(seeded.ops.id)
        warehouse_sub = await broker.subscribe(seeded.warehouse.id)

        await get_materializer().prepare_day(seeded.ops.id, upcoming(), actor_id=seeded.manager.id)

        payload = ops_sub.queue.get_nowait()
        assert payload["type"] == "task:updated"
        assert payload["batch"] is True
        assert payload["created"] == 2
        assert ops_sub.queue.empty()
        assert warehouse_sub.queue.empty()


class TestMaterializeAllTeams:
    """Tests for the cron pass over every team."""

    @pytest.mark.asyncio
    async def test_covers_every_team(self, database, seeded):
        await create_template(seeded)
        await get_template_service().create_template(
            seeded.other_manager, {"title": "Sweep dock", "workstation_id": seeded.dock.id}
        )

        summary = await get_materializer().materialize_all_teams(upcoming())

        assert summary["created"] == 3
        assert summary["errors"] == []
        assert len(await tasks_on(database, seeded.warehouse.id, upcoming())) == 1

    @pytest.mark.asyncio
    async def test_failing_team_does_not_stop_the_rest(self, database, seeded, monkeypatch):
        await create_template(seeded)
        materializer = get_materializer()
        original = materializer.materialize_day

        async def flaky(team_id, day, prepared_by_id=None):
            if team_id == seeded.warehouse.id:
                raise RuntimeError("boom")
            return await original(team_id, day, prepared_by_id)

        monkeypatch.setattr(materializer, "materialize_day", flaky)

        summary = await materializer.materialize_all_teams(upcoming())

        assert summary["created"] == 2
        assert summary["errors"] == [{"teamId": seeded.warehouse.id, "error": "boom"}]
