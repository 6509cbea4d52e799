"""
Pytest configuration and shared fixtures.

Repository and service tests run against a fresh in-memory sqlite database
per test. Repositories and services are built with that database passed in
explicitly so no module singleton leaks between tests.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from src.database.connection import Database, set_database
from src.database.repositories import (
    EpicRepository,
    FeatureRepository,
    MilestoneLinkRepository,
    MilestoneRepository,
    ProfileRepository,
    ProjectRepository,
    RoadmapRepository,
    ShareRepository,
    TaskRepository,
)

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with all tables created."""
    database = Database("sqlite+aiosqlite:///:memory:")
    assert await database.initialize()
    set_database(database)
    yield database
    set_database(None)
    await database.close()


@pytest.fixture
def repos(db):
    """Repositories bound to the test database."""
    return SimpleNamespace(
        profiles=ProfileRepository(db),
        projects=ProjectRepository(db),
        roadmaps=RoadmapRepository(db),
        milestones=MilestoneRepository(db),
        epics=EpicRepository(db),
        features=FeatureRepository(db),
        links=MilestoneLinkRepository(db),
        tasks=TaskRepository(db),
        shares=ShareRepository(db),
    )


@pytest_asyncio.fixture
async def owner(repos):
    """An authenticated profile."""
    return await repos.profiles.create(
        email="Owner@Example.com",
        display_name="Olivia Owner",
        first_name="Olivia",
        last_name="Owner",
    )


@pytest_asyncio.fixture
async def roadmap(repos, owner):
    """An empty roadmap owned by `owner`."""
    return await repos.roadmaps.create(owner_id=owner.id, name="Launch Plan")


@pytest.fixture
def sample_roadmap_data():
    """Sample roadmap payload for API tests."""
    return {
        "name": "Launch Plan",
        "description": "Everything needed for the public launch",
        "status": "active",
    }
