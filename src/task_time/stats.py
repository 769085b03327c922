"""
Aggregate statistics over one owner's task set.

Responsibilities:
- Count finished / pending tasks and their percentages.
- Average completion time of finished tasks.
- Per-priority time load of pending tasks (group-by, then fold).

Everything time-dependent is computed from the single `now` passed in,
so buckets and totals always agree with each other.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, TypeVar

from .schema import PriorityBucket, StatsSummary, Task, TaskStatus
from .time_accounting import account_for_task

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def group_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, List[T]]:
    """
    Group items by key, keeping first-seen key order and item order.
    """
    groups: Dict[K, List[T]] = OrderedDict()
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(round(part / whole * 100))


def fold_priority_bucket(
    priority: int,
    tasks: Sequence[Task],
    now: datetime,
) -> PriorityBucket:
    """
    Reduce the pending tasks of one priority level into a PriorityBucket.

    Sums are rounded to 1 decimal after summing.
    """
    elapsed = 0.0
    remaining = 0.0
    for task in tasks:
        acct = account_for_task(task, now)
        elapsed += acct.elapsed_hours
        remaining += acct.remaining_hours

    return PriorityBucket(
        priority=priority,
        count=len(tasks),
        time_elapsed_hours=round(elapsed, 1),
        estimated_time_left_hours=round(remaining, 1),
    )


def priority_breakdown(
    tasks: Iterable[Task],
    now: datetime,
) -> List[PriorityBucket]:
    """Buckets for pending tasks, highest priority first."""
    pending = [t for t in tasks if t.status is TaskStatus.PENDING]
    groups = group_by(pending, key=lambda t: t.priority)
    buckets = [
        fold_priority_bucket(priority, members, now)
        for priority, members in groups.items()
    ]
    buckets.sort(key=lambda b: b.priority, reverse=True)
    return buckets


def average_completion_hours(tasks: Iterable[Task], now: datetime) -> float:
    """
    Mean total time of finished tasks in hours, rounded to 1 decimal.

    Returns 0.0 when there are no finished tasks.
    """
    totals = [
        account_for_task(t, now).total_hours
        for t in tasks
        if t.status is TaskStatus.FINISHED
    ]
    if not totals:
        return 0.0
    return round(sum(totals) / len(totals), 1)


def compute_stats(tasks: Sequence[Task], now: datetime) -> StatsSummary:
    """
    Build the StatsSummary for a task set at the reference instant `now`.

    Returns:
        StatsSummary with counts, percentages, average completion time,
        the per-priority breakdown and its totals. An empty task set
        yields an all-zero summary.
    """
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status is TaskStatus.FINISHED)
    pending = sum(1 for t in tasks if t.status is TaskStatus.PENDING)

    buckets = priority_breakdown(tasks, now)

    return StatsSummary(
        total_tasks=total,
        completed_tasks=completed,
        pending_tasks=pending,
        completed_percentage=_percentage(completed, total),
        pending_percentage=_percentage(pending, total),
        average_completion_time_hours=average_completion_hours(tasks, now),
        total_time_elapsed_hours=round(
            sum(b.time_elapsed_hours for b in buckets), 1
        ),
        total_time_to_finish_hours=round(
            sum(b.estimated_time_left_hours for b in buckets), 1
        ),
        per_priority_breakdown=buckets,
    )
