"""Shared fixtures: a fresh SQLite file per test and helpers for signed-in users."""

import os

# Settings are read at import time; the secret must exist before l2r is imported
os.environ["JWT_SECRET"] = "test-secret-for-the-l2r-suite-0123456789abcdef"
os.environ["ELEVENLABS_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from l2r.config import settings


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_path", str(tmp_path / "l2r-test.db"))
    from l2r.server import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Factory: register a user and return (user, auth headers)."""
    counter = {"n": 0}

    def _register(email=None, password="correct-horse", name="Parent"):
        counter["n"] += 1
        email = email or f"parent{counter['n']}@example.com"
        res = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert res.status_code == 201, res.text
        body = res.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _register


@pytest.fixture
def auth_headers(register):
    _, headers = register()
    return headers


@pytest.fixture
def make_child(client):
    def _make_child(headers, **fields):
        payload = {"name": "Mia", "age": 6, **fields}
        res = client.post("/api/children", json=payload, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["child"]

    return _make_child


@pytest.fixture
def make_lesson(client):
    def _make_lesson(headers, **fields):
        payload = {"title": "Short Vowels", "subject": "phonics", **fields}
        res = client.post("/api/lessons", json=payload, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["lesson"]

    return _make_lesson
