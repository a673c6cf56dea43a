"""
Tests for teamtasks/services/workstations.py
"""

import pytest

from teamtasks.database.exceptions import (
    DatabaseConstraintError,
    EntityNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from teamtasks.services import get_daily_task_service, get_template_service, get_workstation_service
from teamtasks.utils.datetime_utils import get_local_today


class TestWorkstations:
    """Workstation create / list / delete."""

    @pytest.mark.asyncio
    async def test_list_includes_member_counts(self, database, seeded):
        service = get_workstation_service()
        await service.create_workstation(seeded.manager, "Returns")

        listed = await service.list_workstations(seeded.manager)

        assert [(w.name, count) for w, count in listed] == [("Checkout", 2), ("Returns", 0)]

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, database, seeded):
        with pytest.raises(ValidationError):
            await get_workstation_service().create_workstation(seeded.manager, "  ")

    @pytest.mark.asyncio
    async def test_delete_with_members_rejected(self, database, seeded):
        with pytest.raises(ValidationError):
            await get_workstation_service().delete_workstation(seeded.manager, seeded.checkout.id)

    @pytest.mark.asyncio
    async def test_delete_empty_workstation(self, database, seeded):
        service = get_workstation_service()
        returns = await service.create_workstation(seeded.manager, "Returns")

        await service.delete_workstation(seeded.manager, returns.id)

        listed = await service.list_workstations(seeded.manager)
        assert [w.name for w, _ in listed] == ["Checkout"]

    @pytest.mark.asyncio
    async def test_other_team_workstation_not_found(self, database, seeded):
        with pytest.raises(EntityNotFoundError):
            await get_workstation_service().delete_workstation(seeded.manager, seeded.dock.id)

    @pytest.mark.asyncio
    async def test_employee_cannot_manage(self, database, seeded):
        with pytest.raises(PermissionDeniedError):
            await get_workstation_service().create_workstation(seeded.alice, "Returns")


class TestEmployees:
    """Employee creation and membership changes."""

    @pytest.mark.asyncio
    async def test_create_employee_gets_todays_workstation_tasks(self, database, seeded):
        await get_template_service().create_template(
            seeded.manager, {"title": "Count register", "workstation_id": seeded.checkout.id}
        )

        dana = await get_workstation_service().create_employee(
            seeded.manager, "Dana", "Dana@Ops.example.com", [seeded.checkout.id]
        )

        assert dana.email == "dana@ops.example.com"
        assert [m.workstation.name for m in dana.memberships] == ["Checkout"]
        tasks = await get_daily_task_service().list_for_day(dana, get_local_today())
        assert [t.task_template.title for t in tasks] == ["Count register"]

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, database, seeded):
        with pytest.raises(DatabaseConstraintError):
            await get_workstation_service().create_employee(
                seeded.manager, "Alice Again", "alice@ops.example.com", []
            )

    @pytest.mark.asyncio
    async def test_invalid_input_rejected(self, database, seeded):
        service = get_workstation_service()

        with pytest.raises(ValidationError):
            await service.create_employee(seeded.manager, "", "x@ops.example.com", [])
        with pytest.raises(ValidationError):
            await service.create_employee(seeded.manager, "Dana", "not-an-email", [])
        with pytest.raises(EntityNotFoundError):
            await service.create_employee(seeded.manager, "Dana", "dana@ops.example.com", [seeded.dock.id])

    @pytest.mark.asyncio
    async def test_set_workstations_replaces_memberships(self, database, seeded):
        service = get_workstation_service()
        returns = await service.create_workstation(seeded.manager, "Returns")

        bob = await service.set_employee_workstations(seeded.manager, seeded.bob.id, [returns.id])

        assert [m.workstation.name for m in bob.memberships] == ["Returns"]
        members = {m.name: m for m in await service.list_members(seeded.manager)}
        assert sorted(members) == ["Alice", "Bob"]
        assert [m.workstation.name for m in members["Alice"].memberships] == ["Checkout"]

    @pytest.mark.asyncio
    async def test_set_workstations_for_other_team_employee_not_found(self, database, seeded):
        with pytest.raises(EntityNotFoundError):
            await get_workstation_service().set_employee_workstations(
                seeded.manager, seeded.carol.id, [seeded.checkout.id]
            )
