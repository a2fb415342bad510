"""
tests/conftest.py -- Shared test fixtures for jwt-users tests.

This module provides:
  - settings:      Settings with no .env file, secrets under tmp_path, cheap bcrypt
  - collection:    SqlUserCollection on an isolated shared-memory SQLite DB
  - secret_store:  FileSecretStore under tmp_path
  - client:        TestClient over create_app() with the above injected

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. A uuid in the name keeps every test's DB separate.

TestClient is always used as a context manager so the application lifespan
runs and app.state.collection / namespace / secret_store are populated.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.secrets_store import FileSecretStore
from auth.store import SqlUserCollection
from core.config import Settings

ALICE = {"username": "alice_1", "password": "Abcdef1!"}
BOB = {"username": "bob_2", "password": "Zyxwvu9?"}


def _memory_db_url() -> str:
    return f"sqlite:///file:test_users_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        secrets_dir=tmp_path / "secrets",
        users_db_url=_memory_db_url(),
        bcrypt_rounds=4,
    )


@pytest.fixture
def collection() -> Generator[SqlUserCollection, None, None]:
    users = SqlUserCollection(_memory_db_url(), name="users", bcrypt_rounds=4)
    yield users
    users.close()


@pytest.fixture
def secret_store(tmp_path) -> FileSecretStore:
    return FileSecretStore(tmp_path / "secrets")


@pytest.fixture
def client(collection, secret_store, settings) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an isolated collection and secret dir."""
    app = create_app(collection=collection, secret_store=secret_store, settings=settings)
    with TestClient(app) as c:
        yield c


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_and_authorize(client: TestClient, credentials: dict) -> str:
    """Register credentials and return a freshly issued token."""
    assert client.post("/users", json=credentials).status_code == 200
    resp = client.post("/users/authorize", json=credentials)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]
