"""Shared test fixtures."""

import pytest
import pytest_asyncio

from sql_tutorial.models.config import ConnectionConfig, Driver
from sql_tutorial.runner import TutorialRunner
from sql_tutorial.tutorial import create_schema, seed


@pytest.fixture
def memory_config():
    """Config for a private in-memory SQLite database."""
    return ConnectionConfig(driver=Driver.SQLITE, database=":memory:")


@pytest.fixture
def file_config(tmp_path):
    """Config for a SQLite file that outlives a single connection."""
    return ConnectionConfig(
        driver=Driver.SQLITE, database=str(tmp_path / "tutorial.db"), connect_timeout=1.0
    )


@pytest_asyncio.fixture
async def runner(memory_config):
    """Runner over an empty in-memory database."""
    r = await TutorialRunner.connect(memory_config)
    yield r
    await r.disconnect()


@pytest_asyncio.fixture
async def tutorial_runner(runner):
    """Runner with the player/team/player_team tables created."""
    await create_schema(runner)
    return runner


@pytest_asyncio.fixture
async def seeded_runner(tutorial_runner):
    """Runner with the tutorial tables created and seeded."""
    await seed(tutorial_runner)
    return tutorial_runner
