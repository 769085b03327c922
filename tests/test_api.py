# tests/test_api.py

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api import create_app
from task_time.config import Config
from task_time.errors import StoreError

from .helpers import T0, bearer, hours, iso, signup


def _create(client: TestClient, headers: dict, **overrides) -> dict:
    body = {
        "title": "Write report",
        "startTime": iso(T0),
        "endTime": iso(T0 + hours(2)),
        "priority": 3,
    }
    body.update(overrides)
    resp = client.post("/api/tasks", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_app_requires_jwt_secret(tmp_path) -> None:
    with pytest.raises(RuntimeError, match="jwt_secret"):
        create_app(Config(database_path=str(tmp_path / "x.sqlite3"), jwt_secret=None))


# --- auth ---------------------------------------------------------------------


def test_signup_returns_token_and_user(client: TestClient) -> None:
    body = signup(client, email="Ada@Example.com")

    assert body["token"]
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["id"]


def test_signup_validation(client: TestClient) -> None:
    resp = client.post(
        "/api/auth/signup",
        json={"email": "ada@example.com", "password": "secret1", "confirmPassword": "nope"},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"

    resp = client.post(
        "/api/auth/signup",
        json={"email": "not-an-email", "password": "secret1", "confirmPassword": "secret1"},
    )
    assert resp.status_code == 400


def test_signup_duplicate_email(client: TestClient) -> None:
    signup(client)
    resp = client.post(
        "/api/auth/signup",
        json={"email": "ada@example.com", "password": "secret1", "confirmPassword": "secret1"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"message": "User already exists"}


def test_login(client: TestClient) -> None:
    signup(client)

    ok = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "secret1"})
    bad = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "nope12"})

    assert ok.status_code == 200
    assert ok.json()["token"]
    assert bad.status_code == 401
    assert bad.json() == {"message": "Invalid credentials"}


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/tasks"),
        ("post", "/api/tasks"),
        ("patch", "/api/tasks/1"),
        ("delete", "/api/tasks/1"),
        ("get", "/api/tasks/stats"),
    ],
)
def test_task_routes_require_token(client: TestClient, method: str, path: str) -> None:
    resp = client.request(method, path)

    assert resp.status_code == 401
    assert resp.json() == {"message": "Not authorized"}


def test_garbage_token_is_rejected(client: TestClient) -> None:
    resp = client.get("/api/tasks", headers=bearer("not.a.token"))

    assert resp.status_code == 401


# --- CRUD ---------------------------------------------------------------------


def test_create_task(client: TestClient, auth_headers: dict) -> None:
    task = _create(client, auth_headers, priority=5)

    assert task["title"] == "Write report"
    assert task["priority"] == 5
    assert task["status"] == "pending"
    assert task["id"]
    assert task["ownerId"]


def test_create_task_rejects_bad_time_order(client: TestClient, auth_headers: dict) -> None:
    resp = client.post(
        "/api/tasks",
        json={
            "title": "Backwards",
            "startTime": iso(T0),
            "endTime": iso(T0 - hours(1)),
            "priority": 3,
        },
        headers=auth_headers,
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


@pytest.mark.parametrize("priority", [0, 6])
def test_create_task_rejects_bad_priority(client: TestClient, auth_headers: dict, priority: int) -> None:
    resp = client.post(
        "/api/tasks",
        json={
            "title": "x",
            "startTime": iso(T0),
            "endTime": iso(T0 + hours(1)),
            "priority": priority,
        },
        headers=auth_headers,
    )

    assert resp.status_code == 400


def test_list_tasks_filters_and_paginates(client: TestClient, auth_headers: dict) -> None:
    for i in range(5):
        _create(client, auth_headers, title=f"t{i}", priority=1 + i % 2)

    resp = client.get(
        "/api/tasks",
        params={"priority": 1, "field": "title", "order": "desc", "page": 1, "limit": 2},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert body["page"] == 1
    assert body["limit"] == 2
    assert [t["title"] for t in body["tasks"]] == ["t4", "t2"]


def test_list_tasks_unknown_order_sorts_ascending(client: TestClient, auth_headers: dict) -> None:
    for title in ("b", "c", "a"):
        _create(client, auth_headers, title=title)

    resp = client.get(
        "/api/tasks", params={"field": "title", "order": "sideways"}, headers=auth_headers
    )

    assert resp.status_code == 200
    assert [t["title"] for t in resp.json()["tasks"]] == ["a", "b", "c"]


def test_list_tasks_non_positive_paging_falls_back(client: TestClient, auth_headers: dict) -> None:
    body = client.get(
        "/api/tasks", params={"page": 0, "limit": -3}, headers=auth_headers
    ).json()

    assert body["page"] == 1
    assert body["limit"] == 10


def test_list_tasks_defaults(client: TestClient, auth_headers: dict) -> None:
    body = client.get("/api/tasks", headers=auth_headers).json()

    assert body == {"tasks": [], "total": 0, "page": 1, "limit": 10}


def test_users_only_see_their_own_tasks(client: TestClient, auth_headers: dict) -> None:
    task = _create(client, auth_headers)
    other = bearer(signup(client, email="bob@example.com")["token"])

    assert client.get("/api/tasks", headers=other).json()["total"] == 0
    resp = client.patch(f"/api/tasks/{task['id']}", json={"title": "stolen"}, headers=other)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Task not found"}
    assert client.delete(f"/api/tasks/{task['id']}", headers=other).status_code == 404


def test_patch_updates_fields(client: TestClient, auth_headers: dict) -> None:
    task = _create(client, auth_headers)

    resp = client.patch(
        f"/api/tasks/{task['id']}",
        json={"title": "Renamed", "priority": 1},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["title"] == "Renamed"
    assert resp.json()["priority"] == 1


def test_patch_finished_sets_end_time_to_server_now(client: TestClient, auth_headers: dict, clock) -> None:
    task = _create(client, auth_headers, endTime=iso(T0 + hours(8)))
    clock.now = T0 + hours(3)

    resp = client.patch(
        f"/api/tasks/{task['id']}", json={"status": "finished"}, headers=auth_headers
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "finished"
    assert body["endTime"].startswith("2024-05-01T12:00:00")


def test_patch_rejects_bad_time_order(client: TestClient, auth_headers: dict) -> None:
    task = _create(client, auth_headers)

    resp = client.patch(
        f"/api/tasks/{task['id']}",
        json={"startTime": iso(T0 + hours(3)), "endTime": iso(T0 + hours(1))},
        headers=auth_headers,
    )

    assert resp.status_code == 400


def test_patch_finish_with_start_after_now_is_rejected(client: TestClient, auth_headers: dict, clock) -> None:
    task = _create(client, auth_headers)
    clock.now = T0 + hours(1)

    resp = client.patch(
        f"/api/tasks/{task['id']}",
        json={"status": "finished", "startTime": iso(T0 + hours(10))},
        headers=auth_headers,
    )

    assert resp.status_code == 400
    assert resp.json() == {"message": "End time must be after start time"}
    (stored,) = client.get("/api/tasks", headers=auth_headers).json()["tasks"]
    assert stored["status"] == "pending"


def test_patch_missing_task(client: TestClient, auth_headers: dict) -> None:
    resp = client.patch("/api/tasks/999", json={"title": "x"}, headers=auth_headers)

    assert resp.status_code == 404


def test_delete_task(client: TestClient, auth_headers: dict) -> None:
    task = _create(client, auth_headers)

    resp = client.delete(f"/api/tasks/{task['id']}", headers=auth_headers)

    assert resp.status_code == 204
    assert client.get("/api/tasks", headers=auth_headers).json()["total"] == 0
    assert client.delete(f"/api/tasks/{task['id']}", headers=auth_headers).status_code == 404


# --- stats --------------------------------------------------------------------


def test_stats_for_new_user_are_zero(client: TestClient, auth_headers: dict) -> None:
    body = client.get("/api/tasks/stats", headers=auth_headers).json()

    assert body == {
        "totalTasks": 0,
        "completedTasks": 0,
        "pendingTasks": 0,
        "completedPercentage": 0,
        "pendingPercentage": 0,
        "averageCompletionTimeHours": 0.0,
        "totalTimeElapsedHours": 0.0,
        "totalTimeToFinishHours": 0.0,
        "perPriorityBreakdown": [],
    }


def test_stats_summary(client: TestClient, auth_headers: dict, clock) -> None:
    # Two pending priority-3 tasks with 1h and 2h elapsed at T0+1h.
    _create(client, auth_headers, startTime=iso(T0), endTime=iso(T0 + hours(4)))
    _create(client, auth_headers, startTime=iso(T0 - hours(1)), endTime=iso(T0 + hours(3)))
    _create(client, auth_headers, startTime=iso(T0), endTime=iso(T0 + hours(2)), priority=5)
    done = _create(client, auth_headers, startTime=iso(T0 - hours(6)), endTime=iso(T0 + hours(9)))

    clock.now = T0 - hours(1)
    client.patch(f"/api/tasks/{done['id']}", json={"status": "finished"}, headers=auth_headers)
    clock.now = T0 + hours(1)

    body = client.get("/api/tasks/stats", headers=auth_headers).json()

    assert body["totalTasks"] == 4
    assert body["completedTasks"] == 1
    assert body["pendingTasks"] == 3
    assert body["completedPercentage"] == 25
    assert body["pendingPercentage"] == 75
    assert body["averageCompletionTimeHours"] == 5.0
    assert body["perPriorityBreakdown"] == [
        {"priority": 5, "count": 1, "timeElapsedHours": 1.0, "estimatedTimeLeftHours": 1.0},
        {"priority": 3, "count": 2, "timeElapsedHours": 3.0, "estimatedTimeLeftHours": 5.0},
    ]
    assert body["totalTimeElapsedHours"] == 4.0
    assert body["totalTimeToFinishHours"] == 6.0


def test_stats_store_failure_is_a_single_500(client: TestClient, auth_headers: dict, monkeypatch) -> None:
    def _boom(owner_id):
        raise StoreError("database is locked")

    monkeypatch.setattr(client.app.state.task_store, "list_by_owner", _boom)

    resp = client.get("/api/tasks/stats", headers=auth_headers)

    assert resp.status_code == 500
    assert resp.json() == {"message": "Server error"}


def test_cors_allows_local_frontend(client: TestClient) -> None:
    resp = client.options(
        "/api/tasks",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
