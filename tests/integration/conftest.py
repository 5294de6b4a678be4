"""
Integration test configuration and fixtures.

Integration tests run the full FastAPI application, lifespan included,
against the in-memory DynamoDB client from the top-level conftest. Set
TEST_DYNAMODB_ENDPOINT (e.g. http://localhost:8000 for DynamoDB Local) to
run the tests marked ``dynamodb_local`` against a real endpoint instead.
"""
import base64
import os
from typing import Callable, Optional

import pytest
from fastapi import Depends, FastAPI, Request, Response

from config.settings import Environment, Settings
from main import create_app, get_session_store
from session.codec import generate_random_key

VISITS_COOKIE = "visits"


def _encode_key(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


@pytest.fixture
def test_settings() -> Settings:
    """Settings for a development app with one hash/block key pair."""
    return Settings(
        environment=Environment.DEVELOPMENT,
        session_table_name="sessions-test",
        session_key_pairs=[
            _encode_key(generate_random_key()),
            _encode_key(generate_random_key()),
        ],
        session_table_ready_initial_delay=0,
    )


def add_session_routes(app: FastAPI) -> FastAPI:
    """Mount a visit counter and a logout route that use the session store."""

    @app.get("/visits")
    async def visits(request: Request, response: Response, store=Depends(get_session_store)):
        session = await store.get(request, VISITS_COOKIE)
        session.values["count"] = session.values.get("count", 0) + 1
        await session.save(request, response)
        return {
            "count": session.values["count"],
            "is_new": session.is_new,
            "source": session.source.value,
        }

    @app.post("/logout")
    async def logout(request: Request, response: Response, store=Depends(get_session_store)):
        session = await store.get(request, VISITS_COOKIE)
        session.options.max_age = -1
        await session.save(request, response)
        return {"logged_out": True}

    @app.post("/upload")
    async def upload(request: Request, response: Response, store=Depends(get_session_store)):
        session = await store.get(request, VISITS_COOKIE)
        session.values["blob"] = "x" * 10_000
        await session.save(request, response)
        return {"stored": True}

    return app


@pytest.fixture
def make_app(test_settings, fake_dynamodb) -> Callable[..., FastAPI]:
    """Factory for applications wired to the in-memory DynamoDB client."""
    def _make(settings: Optional[Settings] = None, in_memory: bool = True) -> FastAPI:
        client = fake_dynamodb if in_memory else None
        return add_session_routes(create_app(settings or test_settings, client=client))
    return _make


@pytest.fixture
def dynamodb_local_endpoint() -> str:
    """Endpoint of a DynamoDB Local instance, or skip."""
    endpoint = os.getenv("TEST_DYNAMODB_ENDPOINT", "")
    if not endpoint:
        pytest.skip("TEST_DYNAMODB_ENDPOINT is not set")
    return endpoint
