"""
Error taxonomy for the task-time system.

Each error carries the HTTP status the API answers with.
"""

from __future__ import annotations


class TaskTimeError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TaskTimeError):
    """Bad input shape or invalid time ordering."""

    status_code = 400


class AuthError(TaskTimeError):
    """Missing / invalid / expired token, unknown user, bad credentials."""

    status_code = 401


class NotFoundError(TaskTimeError):
    """Task absent or not owned by the caller."""

    status_code = 404


class StoreError(TaskTimeError):
    """Persistence failure."""

    status_code = 500
