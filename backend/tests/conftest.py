"""Shared fixtures: in-memory database, fake Redis, fake tool collaborators."""

import fakeredis.aioredis
import pytest

from fakes import create_sqlite_factory, make_collaborators


@pytest.fixture
async def session_factory():
    engine, factory = await create_sqlite_factory()
    yield factory
    await engine.dispose()


@pytest.fixture
def fake_redis():
    """Provide fakeredis instance with decode_responses=True."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def collaborators():
    return make_collaborators()
