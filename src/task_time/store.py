"""
SQLite persistence for users and tasks.

Both stores live in the same database file. Every method opens its own
connection, so a store instance can be shared across request threads.
Times are stored as UTC epoch seconds (REAL).

Any sqlite3 failure is surfaced as StoreError.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import NotFoundError, StoreError, ValidationError
from .schema import MAX_PRIORITY, MIN_PRIORITY, Task, TaskStatus, User

logger = logging.getLogger(__name__)

# Wire name -> column name. Anything else is rejected for sorting.
SORT_FIELDS = {
    "title": "title",
    "startTime": "start_time",
    "endTime": "end_time",
    "priority": "priority",
    "status": "status",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


def _to_ts(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_ts(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Missing or non-positive page / limit fall back to 1 / 10."""
    page = page if page and page > 0 else DEFAULT_PAGE
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    return page, limit


def check_time_window(start_time: datetime, end_time: datetime) -> None:
    if _to_ts(end_time) <= _to_ts(start_time):
        raise ValidationError("End time must be after start time")


def check_priority(priority: int) -> None:
    if not MIN_PRIORITY <= int(priority) <= MAX_PRIORITY:
        raise ValidationError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
        )


class _SQLiteStore:
    def __init__(self, db_path: Union[str, Path]) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            self._ensure_schema(conn)
        logger.info("%s ready db=%s", type(self).__name__, self._db_path)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection; commit on success, roll back on error.

        sqlite3 errors are re-raised as StoreError.
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            logger.exception("Cannot open database %s", self._db_path)
            raise StoreError(f"Cannot open database: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception("Database error on %s", self._db_path)
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        raise NotImplementedError


class UserStore(_SQLiteStore):
    """Accounts keyed by a unique, lower-cased email."""

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    def create_user(self, email: str, password_hash: str) -> User:
        email = email.strip().lower()
        now = _to_ts(_utcnow())
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO users(email, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (email, password_hash, now, now),
                )
                user_id = int(cur.lastrowid)
        except sqlite3.IntegrityError as e:
            raise ValidationError("User already exists") from e

        logger.info("User created id=%s", user_id)
        user = self.get_by_id(user_id)
        if user is None:
            raise StoreError(f"User {user_id} vanished after insert")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?", (int(user_id),)
            ).fetchone()
        return self._row_to_user(row) if row else None


class TaskStore(_SQLiteStore):
    """
    Owner-scoped task records.

    Every read and write takes the owner id; a task belonging to someone
    else behaves exactly like a missing one.
    """

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                start_time REAL NOT NULL,
                end_time REAL NOT NULL,
                priority INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                owner_id INTEGER NOT NULL,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_owner_status "
            "ON tasks(owner_id, status, priority)"
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"]),
            start_time=_from_ts(row["start_time"]),
            end_time=_from_ts(row["end_time"]),
            priority=int(row["priority"]),
            status=TaskStatus(row["status"]),
            owner_id=int(row["owner_id"]),
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    @staticmethod
    def _get_owned(
        conn: sqlite3.Connection, task_id: int, owner_id: int
    ) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND owner_id = ?",
            (int(task_id), int(owner_id)),
        ).fetchone()
        if row is None:
            raise NotFoundError("Task not found")
        return row

    # ---- reads ----

    def find_by_owner(
        self,
        owner_id: int,
        *,
        priority: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        sort_field: Optional[str] = None,
        sort_order: str = "asc",
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Task], int]:
        """
        One page of an owner's tasks plus the total matching count.

        Sorting applies only when sort_field is a known wire name
        (see SORT_FIELDS); otherwise insertion order is kept.
        Non-positive page / limit fall back to 1 / 10.
        """
        page, limit = normalize_page(page, limit)

        where = ["owner_id = ?"]
        params: List[Any] = [int(owner_id)]
        if priority is not None:
            where.append("priority = ?")
            params.append(int(priority))
        if status is not None:
            where.append("status = ?")
            params.append(TaskStatus(status).value)
        where_sql = " AND ".join(where)

        order_sql = "id ASC"
        if sort_field:
            column = SORT_FIELDS.get(sort_field)
            if column is None:
                raise ValidationError(f"Cannot sort by {sort_field!r}")
            direction = "DESC" if sort_order == "desc" else "ASC"
            order_sql = f"{column} {direction}, id ASC"

        with self._connect() as conn:
            (total,) = conn.execute(
                f"SELECT COUNT(*) FROM tasks WHERE {where_sql}", params
            ).fetchone()
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE {where_sql} "
                f"ORDER BY {order_sql} LIMIT ? OFFSET ?",
                (*params, limit, (page - 1) * limit),
            ).fetchall()

        return [self._row_to_task(r) for r in rows], int(total)

    def list_by_owner(self, owner_id: int) -> List[Task]:
        """Every task of one owner, in insertion order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? ORDER BY id ASC",
                (int(owner_id),),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def get(self, task_id: int, owner_id: int) -> Task:
        with self._connect() as conn:
            row = self._get_owned(conn, task_id, owner_id)
        return self._row_to_task(row)

    # ---- writes ----

    def insert(
        self,
        *,
        title: str,
        start_time: datetime,
        end_time: datetime,
        priority: int,
        owner_id: int,
        status: TaskStatus = TaskStatus.PENDING,
    ) -> Task:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        check_time_window(start_time, end_time)
        check_priority(priority)

        now = _to_ts(_utcnow())
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks(
                    title, start_time, end_time, priority, status,
                    owner_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    _to_ts(start_time),
                    _to_ts(end_time),
                    int(priority),
                    TaskStatus(status).value,
                    int(owner_id),
                    now,
                    now,
                ),
            )
            task_id = int(cur.lastrowid)
            row = self._get_owned(conn, task_id, owner_id)

        logger.debug(
            "Task added id=%s owner=%s priority=%s", task_id, owner_id, priority
        )
        return self._row_to_task(row)

    def update_fields(
        self,
        task_id: int,
        owner_id: int,
        fields: Dict[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Partially update an owned task.

        Accepted keys: title, priority, status, start_time, end_time.

        Status transitions:
        - pending -> finished: end_time becomes `now`, overriding any
          end_time in `fields`.
        - finished -> finished: window stays frozen.
        - finished -> pending: rejected, finished is terminal.

        Whenever both start_time and end_time end up written (including
        the completion stamp), end must follow start.
        """
        now = now or _utcnow()
        unknown = set(fields) - {"title", "priority", "status", "start_time", "end_time"}
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        updates: Dict[str, Any] = {}

        if fields.get("title") is not None:
            title = str(fields["title"]).strip()
            if not title:
                raise ValidationError("Title cannot be empty")
            updates["title"] = title
        if fields.get("priority") is not None:
            check_priority(fields["priority"])
            updates["priority"] = int(fields["priority"])
        if fields.get("start_time") is not None and fields.get("end_time") is not None:
            check_time_window(fields["start_time"], fields["end_time"])
        if fields.get("start_time") is not None:
            updates["start_time"] = _to_ts(fields["start_time"])
        if fields.get("end_time") is not None:
            updates["end_time"] = _to_ts(fields["end_time"])

        with self._connect() as conn:
            current = self._row_to_task(self._get_owned(conn, task_id, owner_id))

            if fields.get("status") is not None:
                new_status = TaskStatus(fields["status"])
                if current.status is TaskStatus.FINISHED:
                    if new_status is TaskStatus.PENDING:
                        raise ValidationError("Finished tasks cannot be reopened")
                    # Completion window is frozen.
                    updates.pop("start_time", None)
                    updates.pop("end_time", None)
                elif new_status is TaskStatus.FINISHED:
                    updates["status"] = new_status.value
                    updates["end_time"] = _to_ts(now)
            elif current.status is TaskStatus.FINISHED:
                updates.pop("start_time", None)
                updates.pop("end_time", None)

            if "start_time" in updates and "end_time" in updates:
                check_time_window(
                    _from_ts(updates["start_time"]), _from_ts(updates["end_time"])
                )

            if updates:
                updates["updated_at"] = _to_ts(_utcnow())
                assignments = ", ".join(f"{col} = ?" for col in updates)
                conn.execute(
                    f"UPDATE tasks SET {assignments} WHERE id = ? AND owner_id = ?",
                    (*updates.values(), int(task_id), int(owner_id)),
                )
            row = self._get_owned(conn, task_id, owner_id)

        logger.debug("Task updated id=%s fields=%s", task_id, sorted(updates))
        return self._row_to_task(row)

    def delete(self, task_id: int, owner_id: int) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND owner_id = ?",
                (int(task_id), int(owner_id)),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Task not found")
        logger.debug("Task deleted id=%s owner=%s", task_id, owner_id)

