"""
FastAPI app for the task-time system.

Endpoints:
- POST   /api/auth/signup
- POST   /api/auth/login
- GET    /api/tasks
- POST   /api/tasks
- PATCH  /api/tasks/{task_id}
- DELETE /api/tasks/{task_id}
- GET    /api/tasks/stats
- GET    /health

Every /api/tasks route requires `Authorization: Bearer <token>`.

Run locally with:
    uvicorn app.api:create_app --factory --reload
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

# --- Make src/ importable ----------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, field_validator, model_validator

from task_time.auth import AuthService
from task_time.config import Config, get_config
from task_time.errors import TaskTimeError
from task_time.schema import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    PriorityBucket,
    StatsSummary,
    Task,
    TaskStatus,
    User,
)
from task_time.stats import compute_stats
from task_time.store import TaskStore, UserStore, normalize_page

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# --- Request / Response schemas ----------------------------------------------


class SignupPayload(BaseModel):
    email: str
    password: str = Field(min_length=6)
    confirmPassword: str

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "SignupPayload":
        if self.confirmPassword != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginPayload(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email")
        return value


class UserOut(BaseModel):
    id: str
    email: str


class AuthResponse(BaseModel):
    token: str
    user: UserOut

    @classmethod
    def build(cls, token: str, user: User) -> "AuthResponse":
        return cls(token=token, user=UserOut(id=str(user.id), email=user.email))


class TaskCreatePayload(BaseModel):
    """
    Body of POST /api/tasks.

    Example:
    {
      "title": "Write report",
      "startTime": "2024-05-01T09:00:00Z",
      "endTime": "2024-05-01T11:00:00Z",
      "priority": 3
    }
    """

    title: str
    startTime: datetime
    endTime: datetime
    priority: int = Field(ge=MIN_PRIORITY, le=MAX_PRIORITY)

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("startTime", "endTime")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _window(self) -> "TaskCreatePayload":
        if self.endTime <= self.startTime:
            raise ValueError("End time must be after start time")
        return self


class TaskUpdatePayload(BaseModel):
    """
    Body of PATCH /api/tasks/{task_id}. Every field is optional.

    Setting status to "finished" stamps endTime with the server time.
    """

    title: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    status: Optional[TaskStatus] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            value = value.strip()
            if not value:
                raise ValueError("Title cannot be empty")
        return value

    @field_validator("startTime", "endTime")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def _window(self) -> "TaskUpdatePayload":
        if self.startTime and self.endTime and self.endTime <= self.startTime:
            raise ValueError("End time must be after start time")
        return self

    def to_fields(self) -> dict:
        fields = {
            "title": self.title,
            "priority": self.priority,
            "status": self.status,
            "start_time": self.startTime,
            "end_time": self.endTime,
        }
        return {k: v for k, v in fields.items() if v is not None}


class TaskOut(BaseModel):
    id: int
    title: str
    startTime: datetime
    endTime: datetime
    priority: int
    status: TaskStatus
    ownerId: int
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskOut":
        return cls(
            id=task.id,
            title=task.title,
            startTime=task.start_time,
            endTime=task.end_time,
            priority=task.priority,
            status=task.status,
            ownerId=task.owner_id,
            createdAt=task.created_at,
            updatedAt=task.updated_at,
        )


class TaskListResponse(BaseModel):
    tasks: List[TaskOut]
    total: int
    page: int
    limit: int


class PriorityBucketOut(BaseModel):
    priority: int
    count: int
    timeElapsedHours: float
    estimatedTimeLeftHours: float

    @classmethod
    def from_bucket(cls, bucket: PriorityBucket) -> "PriorityBucketOut":
        return cls(
            priority=bucket.priority,
            count=bucket.count,
            timeElapsedHours=bucket.time_elapsed_hours,
            estimatedTimeLeftHours=bucket.estimated_time_left_hours,
        )


class StatsResponse(BaseModel):
    totalTasks: int
    completedTasks: int
    pendingTasks: int
    completedPercentage: int
    pendingPercentage: int
    averageCompletionTimeHours: float
    totalTimeElapsedHours: float
    totalTimeToFinishHours: float
    perPriorityBreakdown: List[PriorityBucketOut]

    @classmethod
    def from_summary(cls, summary: StatsSummary) -> "StatsResponse":
        return cls(
            totalTasks=summary.total_tasks,
            completedTasks=summary.completed_tasks,
            pendingTasks=summary.pending_tasks,
            completedPercentage=summary.completed_percentage,
            pendingPercentage=summary.pending_percentage,
            averageCompletionTimeHours=summary.average_completion_time_hours,
            totalTimeElapsedHours=summary.total_time_elapsed_hours,
            totalTimeToFinishHours=summary.total_time_to_finish_hours,
            perPriorityBreakdown=[
                PriorityBucketOut.from_bucket(b)
                for b in summary.per_priority_breakdown
            ],
        )


# --- Dependencies ------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.task_store


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    token = credentials.credentials if credentials else None
    return auth.authenticate(token)


# --- Auth endpoints ----------------------------------------------------------

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/signup", response_model=AuthResponse, status_code=201)
def signup(
    payload: SignupPayload,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    token, user = auth.signup(payload.email, payload.password)
    return AuthResponse.build(token, user)


@auth_router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginPayload,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    token, user = auth.login(payload.email, payload.password)
    return AuthResponse.build(token, user)


# --- Task endpoints ----------------------------------------------------------

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@tasks_router.get("", response_model=TaskListResponse)
def list_tasks(
    priority: Optional[int] = Query(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY),
    status: Optional[TaskStatus] = None,
    field: Optional[str] = None,
    order: str = "asc",
    page: Optional[int] = None,
    limit: Optional[int] = None,
    user: User = Depends(current_user),
    store: TaskStore = Depends(get_task_store),
) -> TaskListResponse:
    """
    List the caller's tasks.

    Query: priority, status, field (sort field), order ("desc", anything
    else sorts ascending), page, limit. Missing or non-positive page/limit fall back to 1/10.
    """
    page, limit = normalize_page(page, limit)

    tasks, total = store.find_by_owner(
        user.id,
        priority=priority,
        status=status,
        sort_field=field,
        sort_order=order,
        page=page,
        limit=limit,
    )
    return TaskListResponse(
        tasks=[TaskOut.from_task(t) for t in tasks],
        total=total,
        page=page,
        limit=limit,
    )


@tasks_router.post("", response_model=TaskOut, status_code=201)
def create_task(
    payload: TaskCreatePayload,
    user: User = Depends(current_user),
    store: TaskStore = Depends(get_task_store),
) -> TaskOut:
    task = store.insert(
        title=payload.title,
        start_time=payload.startTime,
        end_time=payload.endTime,
        priority=payload.priority,
        owner_id=user.id,
    )
    return TaskOut.from_task(task)


@tasks_router.get("/stats", response_model=StatsResponse)
def task_stats(
    user: User = Depends(current_user),
    store: TaskStore = Depends(get_task_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> StatsResponse:
    """
    Summary statistics over all of the caller's tasks.

    `now` is read once, before the store query, and used for every
    time-dependent figure in the response.
    """
    now = clock()
    tasks = store.list_by_owner(user.id)
    return StatsResponse.from_summary(compute_stats(tasks, now))


@tasks_router.patch("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    payload: TaskUpdatePayload,
    user: User = Depends(current_user),
    store: TaskStore = Depends(get_task_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TaskOut:
    task = store.update_fields(task_id, user.id, payload.to_fields(), now=clock())
    return TaskOut.from_task(task)


@tasks_router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: int,
    user: User = Depends(current_user),
    store: TaskStore = Depends(get_task_store),
) -> Response:
    store.delete(task_id, user.id)
    return Response(status_code=204)


# --- Error handling ----------------------------------------------------------


def _task_time_error_handler(request: Request, exc: TaskTimeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"message": "Server error"})
    if exc.status_code == 401:
        logger.info("Unauthorized %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Validation failed", "errors": errors},
    )


def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Something went wrong!"})


# --- App factory -------------------------------------------------------------


def create_app(
    config: Optional[Config] = None,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> FastAPI:
    """
    Build the FastAPI app.

    Fails fast with RuntimeError when JWT_SECRET is not configured.
    """
    cfg = config or get_config()
    cfg.require("jwt_secret", "database_path")

    app = FastAPI(title="Task Time API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    app.state.config = cfg
    app.state.clock = clock
    app.state.task_store = TaskStore(cfg.database_path)
    app.state.auth = AuthService(
        UserStore(cfg.database_path),
        secret=cfg.jwt_secret,
        expires_days=cfg.jwt_expires_days,
    )

    app.add_exception_handler(TaskTimeError, _task_time_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(auth_router)
    app.include_router(tasks_router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    logger.info("Task Time API configured db=%s", cfg.database_path)
    return app


# Convenience for local dev:
# uvicorn app.api:create_app --factory --reload
if __name__ == "__main__":
    import uvicorn

    from task_time.logging_setup import setup_logging

    cfg = get_config()
    setup_logging(cfg.log_level, cfg.log_dir)
    uvicorn.run(
        "app.api:create_app", factory=True, host="0.0.0.0", port=cfg.port, reload=True
    )
