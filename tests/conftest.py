import os
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture(scope="session", autouse=True)
def set_test_env(tmp_path_factory):
    db_file = tmp_path_factory.mktemp("data") / "test.db"
    os.environ["DB_PATH"] = str(db_file)


@pytest.fixture(scope="session")
def client(set_test_env):
    from fastapi.testclient import TestClient
    from app.main import app
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def db(tmp_path):
    """Point the core at a fresh, empty database for one test."""
    from brewmaestro.db.database import init_db, override_db_path
    with override_db_path(tmp_path / "brew.db"):
        init_db()
        yield


class FakeClock:
    """Stand-in for clock.now() that only moves when a test advances it."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def frozen_clock(monkeypatch):
    from brewmaestro.core import clock
    fake = FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(clock, "now", fake)
    return fake


@pytest.fixture
def recipe(db):
    from brewmaestro.core import recipes
    from brewmaestro.db.models import Recipe
    r = Recipe(id=None, name="American IPA", style="IPA", boil_time=60)
    recipes.add(r)
    return r
