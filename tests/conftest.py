"""Shared pytest fixtures."""

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from autocount.config import Config
from autocount.core.core import Core


@pytest.fixture
def config():
    """Create a config that ignores any local .env file."""
    return Config(database_url="mongodb://localhost:27017/autocount_test", _env_file=None)


@pytest.fixture
def database():
    """Create an in-memory MongoDB database."""
    client = AsyncMongoMockClient()
    return client["autocount_test"]


@pytest_asyncio.fixture
async def core(config, database):
    """Create a started Core on top of the in-memory database."""
    core = Core(config, database)
    await core.on_start()
    yield core
    await core.on_stop()


@pytest.fixture
def counter_service(core):
    return core.services.counter


@pytest.fixture
def binding_service(core):
    return core.services.binding
