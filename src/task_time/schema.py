"""
Data schemas for the task-time system.

Defines:
- TaskStatus: closed lifecycle enum (pending / finished)
- Task: a single owned work item with a planned time window
- User: an account that owns tasks
- TimeAccounting, PriorityBucket, StatsSummary: derived, never persisted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


MIN_PRIORITY = 1
MAX_PRIORITY = 5


class TaskStatus(str, Enum):
    PENDING = "pending"
    FINISHED = "finished"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            value = value.strip().lower()
            for member in cls:
                if member.value == value:
                    return member
        return None


@dataclass
class Task:
    """
    Represents a single task owned by one user.

    start_time / end_time are timezone-aware UTC datetimes. For a finished
    task, end_time is the actual completion instant, not the planned end.
    """

    id: Optional[int]
    title: str
    start_time: datetime
    end_time: datetime
    priority: int
    owner_id: int
    status: TaskStatus = TaskStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = TaskStatus(self.status)
        self.priority = int(self.priority)


@dataclass
class User:
    id: int
    email: str
    password_hash: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TimeAccounting:
    """Hours spent, left and planned for one task at a reference instant."""

    total_hours: float
    elapsed_hours: float
    remaining_hours: float


@dataclass
class PriorityBucket:
    """Time load of all pending tasks sharing one priority level."""

    priority: int
    count: int = 0
    time_elapsed_hours: float = 0.0
    estimated_time_left_hours: float = 0.0


@dataclass
class StatsSummary:
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    completed_percentage: int = 0
    pending_percentage: int = 0
    average_completion_time_hours: float = 0.0
    total_time_elapsed_hours: float = 0.0
    total_time_to_finish_hours: float = 0.0
    per_priority_breakdown: List[PriorityBucket] = field(default_factory=list)
