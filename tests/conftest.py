# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from app.api import create_app
from task_time.config import Config
from task_time.schema import Task, TaskStatus
from task_time.store import TaskStore, UserStore

from .helpers import T0, FixedClock, bearer, hours, signup


@pytest.fixture()
def make_task() -> Callable[..., Task]:
    """
    Build an unsaved Task.

    `duration` is the window length in hours, starting at `start`.
    """

    def _make(
        *,
        duration: float = 2.0,
        start=T0,
        status: TaskStatus = TaskStatus.PENDING,
        priority: int = 3,
        owner_id: int = 1,
        title: str = "task",
    ) -> Task:
        return Task(
            id=None,
            title=title,
            start_time=start,
            end_time=start + hours(duration),
            priority=priority,
            owner_id=owner_id,
            status=status,
        )

    return _make


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tasks.sqlite3"


@pytest.fixture()
def task_store(db_path: Path) -> TaskStore:
    return TaskStore(db_path)


@pytest.fixture()
def user_store(db_path: Path) -> UserStore:
    return UserStore(db_path)


@pytest.fixture()
def config(db_path: Path) -> Config:
    return Config(database_path=str(db_path), jwt_secret="test-secret")


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(T0 + hours(1))


@pytest.fixture()
def client(config: Config, clock: FixedClock):
    app = create_app(config, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(client: TestClient) -> dict:
    """Headers for a freshly signed-up user."""
    return bearer(signup(client)["token"])
