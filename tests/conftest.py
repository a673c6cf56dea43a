"""
Pytest configuration and shared fixtures.

Each test runs against its own SQLite file database with fresh service
singletons and an in-process event broker.
"""

from dataclasses import dataclass

import pytest
import pytest_asyncio

from teamtasks.database import Database, set_database, TeamDB, UserDB, WorkstationDB, UserRoleEnum
from teamtasks.database.repositories import get_team_repository, get_workstation_repository
from teamtasks.realtime.broker import InMemoryEventBroker, set_event_broker
from teamtasks.services import reset_services
from teamtasks.web.auth import create_access_token

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@dataclass
class SeededTeams:
    """Two teams: Ops (Checkout: Alice, Bob) and Warehouse (Dock: Carol)."""
    ops: TeamDB
    manager: UserDB
    alice: UserDB
    bob: UserDB
    checkout: WorkstationDB
    warehouse: TeamDB
    other_manager: UserDB
    carol: UserDB
    dock: WorkstationDB


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh database file per test, installed as the global database."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'teamtasks.db'}")
    assert await db.initialize()
    set_database(db)
    reset_services()

    yield db

    await db.close()
    set_database(None)
    reset_services()


@pytest.fixture
def broker():
    """In-process broker installed as the global broker."""
    broker = InMemoryEventBroker(queue_size=10)
    set_event_broker(broker)
    yield broker
    set_event_broker(None)


@pytest_asyncio.fixture
async def seeded(database, broker) -> SeededTeams:
    """Seed two teams with managers, workstations and employees."""
    team_repo = get_team_repository()
    workstation_repo = get_workstation_repository()

    async with database.session() as session:
        ops = await team_repo.create_team(session, "Ops")
        manager = await team_repo.create_user(
            session, "Maria", "maria@ops.example.com", ops.id, role=UserRoleEnum.MANAGER.value
        )
        alice = await team_repo.create_user(session, "Alice", "alice@ops.example.com", ops.id)
        bob = await team_repo.create_user(session, "Bob", "bob@ops.example.com", ops.id)
        checkout = await workstation_repo.create(session, ops.id, "Checkout")
        await team_repo.set_memberships(session, alice.id, [checkout.id])
        await team_repo.set_memberships(session, bob.id, [checkout.id])

        warehouse = await team_repo.create_team(session, "Warehouse")
        other_manager = await team_repo.create_user(
            session, "Wes", "wes@warehouse.example.com", warehouse.id, role=UserRoleEnum.MANAGER.value
        )
        carol = await team_repo.create_user(session, "Carol", "carol@warehouse.example.com", warehouse.id)
        dock = await workstation_repo.create(session, warehouse.id, "Dock")
        await team_repo.set_memberships(session, carol.id, [dock.id])

    return SeededTeams(
        ops=ops,
        manager=manager,
        alice=alice,
        bob=bob,
        checkout=checkout,
        warehouse=warehouse,
        other_manager=other_manager,
        carol=carol,
        dock=dock,
    )


@pytest.fixture
def tokens(seeded):
    """Bearer tokens for every seeded user, keyed by first name."""
    return {
        "maria": create_access_token(seeded.manager.id),
        "alice": create_access_token(seeded.alice.id),
        "bob": create_access_token(seeded.bob.id),
        "wes": create_access_token(seeded.other_manager.id),
        "carol": create_access_token(seeded.carol.id),
    }


@pytest.fixture
def headers(tokens):
    """Authorization headers for every seeded user."""
    return {name: {"Authorization": f"Bearer {token}"} for name, token in tokens.items()}
