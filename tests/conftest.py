"""Shared test fixtures for pytest.

Environment defaults are set before any application module is imported so
settings resolve to the test profile and the database engine is bound to
SQLite instead of a local Postgres.
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from pydantic_ai import models


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Block any real model requests in tests
models.ALLOW_MODEL_REQUESTS = False

from core.config import Settings, get_settings
from dependencies.generation import (
    get_outline_backend,
    get_presentation_store,
    get_slides_backend,
)
from fakes import FakeBackend, InMemoryPresentationStore, make_settings
from main import app


@pytest.fixture
def store() -> InMemoryPresentationStore:
    return InMemoryPresentationStore()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def async_client(
    store: InMemoryPresentationStore, backend: FakeBackend, test_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """Async client wired to the in-memory store and the scripted backend."""
    app.dependency_overrides[get_presentation_store] = lambda: store
    app.dependency_overrides[get_slides_backend] = lambda: backend
    app.dependency_overrides[get_outline_backend] = lambda: backend
    app.dependency_overrides[get_settings] = lambda: test_settings
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
