"""
Shared pytest fixtures for Qi Ascension tests.

Provides:
  - In-memory SQLite DB with migrations applied
  - FastAPI TestClient on a per-test database, plus a logged-in variant
  - In-memory remote save store and a write-counting local cache
  - Manual clocks for the scheduler and passive production
  - Helpers for building game states
"""

import copy
import os
import sqlite3
import sys
import time
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so we can import app modules
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Saves are per-user, so the suite runs with real cookie auth.
os.environ["DEV_SKIP_AUTH"] = "0"

TEST_PASSWORD = "lotus123"


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_conn() -> Generator[sqlite3.Connection, None, None]:
    """Yield an in-memory SQLite connection with all migrations applied."""
    from db_migrations import apply_migrations

    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    apply_migrations(conn)

    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# FastAPI TestClient
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(tmp_path, monkeypatch):
    """Return a Starlette TestClient backed by a fresh database file."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "saves.db"))
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_client(client):
    """`client` with a registered user whose session cookie is set."""
    r = client.post("/api/auth/register", json={"username": "wei_ying", "password": TEST_PASSWORD})
    assert r.status_code == 201, r.text
    return client


# ---------------------------------------------------------------------------
# Save store doubles
# ---------------------------------------------------------------------------

class FakeRemoteStore:
    """In-memory stand-in for RemoteSaveStore."""

    def __init__(self, payload: Optional[Dict[str, Any]] = None) -> None:
        self.payload = copy.deepcopy(payload)
        self.fetch_error: Optional[Exception] = None
        self.push_error: Optional[Exception] = None
        self.push_delay_s = 0.0
        self.fetch_calls = 0
        self.pushes: List[Dict[str, Any]] = []

    def fetch_latest(self) -> Optional[Dict[str, Any]]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return copy.deepcopy(self.payload)

    def push(self, payload: Dict[str, Any], *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        if self.push_delay_s:
            time.sleep(self.push_delay_s)
        if self.push_error is not None:
            raise self.push_error
        self.pushes.append(copy.deepcopy(payload))
        self.payload = copy.deepcopy(payload)
        return {"success": True, "timestamp": payload.get("lastSaveTime")}


@pytest.fixture()
def remote_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def local_cache(tmp_path):
    from local_cache import LocalSaveCache

    class CountingCache(LocalSaveCache):
        def __init__(self, path: Path) -> None:
            super().__init__(path)
            self.writes: List[Dict[str, Any]] = []

        def write(self, payload: Dict[str, Any]) -> bool:
            self.writes.append(copy.deepcopy(payload))
            return super().write(payload)

    return CountingCache(tmp_path / "cultivation_save.json")


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------

class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def monotonic() -> ManualClock:
    return ManualClock(1000.0)


@pytest.fixture()
def wall_ms() -> ManualClock:
    return ManualClock(1_700_000_000_000)


@pytest.fixture()
def make_scheduler(local_cache, remote_store, monotonic, wall_ms):
    """Build a SaveScheduler that pushes inline and runs on the manual clocks."""
    from save_scheduler import SaveScheduler

    def _make(**kwargs):
        kwargs.setdefault("dispatch", lambda fn: fn())
        kwargs.setdefault("wall_clock_ms", lambda: int(wall_ms()))
        kwargs.setdefault("monotonic", monotonic)
        kwargs.setdefault("local_interval_s", 5.0)
        kwargs.setdefault("remote_interval_s", 60.0)
        return SaveScheduler(local_cache, remote_store, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Test data helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    """Stateless helper methods for building game states and payloads."""

    @staticmethod
    def build_state(
        *,
        qi: float = 0.0,
        total_qi: Optional[float] = None,
        generators: Optional[Dict[str, int]] = None,
        realm_id: int = 1,
        stage: int = 1,
        faction: Optional[str] = None,
        theme: str = "dark",
        upgrades: Optional[List[str]] = None,
        last_save_time: int = 0,
    ):
        from game_models import GameState, Resources, Settings
        from progression_service import realm_snapshot
        from save_sanitizer import with_derived_fields

        state = GameState(
            resources=Resources(qi=qi, total_qi=qi if total_qi is None else total_qi),
            generators=generators or {},
            realm=realm_snapshot(realm_id, stage),
            faction=faction,
            upgrades=upgrades or [],
            settings=Settings(theme=theme),
            last_save_time=last_save_time,
        )
        return with_derived_fields(state)

    @classmethod
    def build_payload(cls, **kwargs) -> Dict[str, Any]:
        from game_models import dump_payload

        return dump_payload(cls.build_state(**kwargs))


@pytest.fixture()
def helpers() -> TestHelpers:
    return TestHelpers()
