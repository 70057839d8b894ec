"""
Shared fixtures: an in-memory MongoDB, an API client wired to it, a pinned
clock and a few registered accounts.
"""
from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
from database import get_db
from main import app
from schemas import RegisterRequest
from timeutils import default_time_provider

# Wednesday
NOW = datetime(2026, 10, 21, 10, 0)


@pytest.fixture
def db():
    return mongomock.MongoClient()["study_tracker_test"]


@pytest.fixture
def frozen_now(monkeypatch):
    monkeypatch.setattr(default_time_provider, "now", lambda: NOW)
    return NOW


@pytest.fixture
def client(db, frozen_now):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def student(db):
    return auth.register(db, RegisterRequest(name="Hana", password="pass1234", grade=11))


@pytest.fixture
def other_student(db):
    return auth.register(db, RegisterRequest(name="Ren", password="pass1234", grade=8))


@pytest.fixture
def kid(db):
    return auth.register(db, RegisterRequest(name="Sora", password="pass1234", grade=3))


@pytest.fixture
def teacher(db):
    return auth.register(db, RegisterRequest(name="Sensei", password="master-pass", grade=12, role="teacher"))
