"""
Pure time math for a single task.

No I/O, no clock reads. Just:
- Conversions between datetime spans and hours
- Elapsed / remaining / total hours for a task at a given instant

The reference instant `now` is always passed in by the caller.
"""

from __future__ import annotations

from datetime import datetime

from .schema import Task, TaskStatus, TimeAccounting

SECONDS_PER_HOUR = 3600.0


def hours_between(start: datetime, end: datetime) -> float:
    """
    Hours from start to end, clamped at zero.

    If end precedes start the span is treated as empty.
    """
    seconds = (end - start).total_seconds()
    if seconds <= 0.0:
        return 0.0
    return seconds / SECONDS_PER_HOUR


def account_for_window(
    start_time: datetime,
    end_time: datetime,
    status: TaskStatus,
    now: datetime,
) -> TimeAccounting:
    """
    Compute total / elapsed / remaining hours for a time window.

    finished:
        total = elapsed = end - start, remaining = 0
        (end_time is already the completion instant, `now` is ignored)

    pending:
        elapsed   = now - start
        remaining = end - now
        total     = end - start

    Every duration clamps at zero. `status` may also be the plain string
    value ("pending" / "finished").
    """
    status = TaskStatus(status)
    total = hours_between(start_time, end_time)

    if status is TaskStatus.FINISHED:
        return TimeAccounting(
            total_hours=total,
            elapsed_hours=total,
            remaining_hours=0.0,
        )
    if status is TaskStatus.PENDING:
        return TimeAccounting(
            total_hours=total,
            elapsed_hours=hours_between(start_time, now),
            remaining_hours=hours_between(now, end_time),
        )
    raise ValueError(f"Unknown task status: {status!r}")


def account_for_task(task: Task, now: datetime) -> TimeAccounting:
    """Time accounting for a Task at the reference instant `now`."""
    return account_for_window(task.start_time, task.end_time, task.status, now)
