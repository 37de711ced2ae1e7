"""Pytest configuration: expose the ``app`` package and shared fixtures."""

from __future__ import annotations

import pathlib
import sys
from collections.abc import Iterator

import pytest

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fastapi import testclient  # noqa: E402

from app import main  # noqa: E402
from app.api import disasters as api_disasters  # noqa: E402
from app.core import errors  # noqa: E402
from app.db import database  # noqa: E402


class FailingRepository(database.InMemoryDisasterRepository):
    """Repository whose store calls fail the way a broken database would."""

    async def find(self, skip=0, limit=20, filter=None):  # type: ignore  # noqa: A002
        raise RuntimeError("connection pool exhausted")

    async def bulk_insert(self, items):  # type: ignore[no-untyped-def]
        raise errors.StoreError("duplicate key value violates unique constraint")

    async def bulk_update(self, updates):  # type: ignore[no-untyped-def]
        raise errors.StoreError("deadlock detected")

    async def ping(self) -> bool:
        return False


def _client_for(
    repo: database.DisasterRepositoryProtocol,
) -> Iterator[testclient.TestClient]:
    app = main.create_app()
    app.dependency_overrides[api_disasters._get_repo] = lambda: repo
    try:
        yield testclient.TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def repo() -> database.InMemoryDisasterRepository:
    """Fresh in-memory repository for one test."""
    return database.InMemoryDisasterRepository()


@pytest.fixture
def client(
    repo: database.InMemoryDisasterRepository,
) -> Iterator[testclient.TestClient]:
    """Test client whose REST and GraphQL routes use the in-memory repository.

    The client is not entered as a context manager, so the lifespan (and
    the PostgreSQL pool) never starts.
    """
    yield from _client_for(repo)


@pytest.fixture
def failing_client() -> Iterator[testclient.TestClient]:
    """Test client backed by a repository whose store calls fail."""
    yield from _client_for(FailingRepository())
