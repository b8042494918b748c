import pytest
import pytest_asyncio

from ticketflow.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from ticketflow.workflow.application import (
    GraphLockRegistry,
    StatusRegistryService,
    WorkflowGraphService,
)

from tests.factories import (
    InMemoryGraphRepository,
    InMemoryStatusRepository,
    standard_statuses,
)


@pytest.fixture
def statuses():
    return standard_statuses()


@pytest.fixture
def status_repo(statuses):
    return InMemoryStatusRepository(statuses)


@pytest.fixture
def graph_repo():
    return InMemoryGraphRepository()


@pytest.fixture
def registry_service(status_repo, graph_repo):
    return StatusRegistryService(status_repo, graph_repo)


@pytest.fixture
def graph_service(status_repo, graph_repo):
    return WorkflowGraphService(graph_repo, status_repo, locks=GraphLockRegistry())


@pytest_asyncio.fixture
async def db_session():
    init_database("sqlite+aiosqlite:///:memory:")
    await create_tables()
    async with get_session_maker()() as session:
        yield session
        await session.rollback()
    await close_database()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # File-backed so each session gets its own connection and transaction
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'ticketflow.db'}")
    await create_tables()
    yield get_session_maker()
    await close_database()
