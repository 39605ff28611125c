"""Fixtures for route tests.

``make_client`` builds the real app from ``create_app()`` but swaps its
lifespan for one that wires the agent runtime to in-memory SQLite, fakeredis
and a ScriptedGateway. Everything runs on the TestClient's own event loop.
"""

from contextlib import asynccontextmanager

import fakeredis.aioredis
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from charis.api.deps import get_app_settings
from charis.db.redis import get_redis
from charis.main import create_app
from fakes import ScriptedGateway, build_runtime, create_sqlite_factory, make_collaborators, make_settings


@pytest.fixture
def make_client():
    clients: list[TestClient] = []

    def _make(turns=(), settings=None, collaborators=None, raise_server_exceptions=True):
        settings = settings or make_settings()
        gateway = ScriptedGateway(list(turns))
        collaborators = collaborators or make_collaborators()

        @asynccontextmanager
        async def lifespan(app):
            engine, factory = await create_sqlite_factory()
            app.state.shutting_down = False
            app.state.redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
            app.state.agent = build_runtime(factory, gateway, collaborators, settings=settings, redis=app.state.redis)
            yield
            await app.state.agent.registry.shutdown(grace_seconds=1)
            await engine.dispose()

        app = create_app()
        app.router.lifespan_context = lifespan

        def override_redis(request: Request):
            return request.app.state.redis

        app.dependency_overrides[get_redis] = override_redis
        app.dependency_overrides[get_app_settings] = lambda: settings

        client = TestClient(app, raise_server_exceptions=raise_server_exceptions)
        client.__enter__()
        clients.append(client)
        return client, gateway

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
