import os
import uuid

import pytest
from fastapi.testclient import TestClient

# Memory backend and a fixed signing key, set before the app is imported
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret")

from todoapp.api.main import app  # noqa: E402
from todoapp.api.repositories import (  # noqa: E402
    InMemoryRepository,
    InMemoryUserRepository,
    get_repository,
    get_user_repository,
)


@pytest.fixture
def fresh_backend():
    """Point the app at empty in-memory stores for the duration of one test."""
    todos = InMemoryRepository()
    users = InMemoryUserRepository()
    app.dependency_overrides[get_repository] = lambda: todos
    app.dependency_overrides[get_user_repository] = lambda: users
    yield todos, users
    app.dependency_overrides.clear()


@pytest.fixture
def client(fresh_backend):
    return TestClient(app)


def register_and_login(client: TestClient, email: str = None, password: str = "s3cret-pass") -> dict:
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    res = client.post("/api/auth/register", json={"username": "tester", "email": email, "password": password})
    assert res.status_code == 201, res.text
    res = client.post("/api/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)
