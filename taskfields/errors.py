"""Exception types raised by the task fields package.

Naming problems and structural integrity issues are reported as result
structures by the core modules. Exceptions are reserved for schema errors at
the write boundary and for lookups of ids that do not exist.
"""

from __future__ import annotations


class TaskFieldsError(Exception):
    """Base error for task and custom field operations."""


class CustomFieldsError(TaskFieldsError, ValueError):
    """Raised when a customFields payload fails schema or naming checks."""


class TaskNotFoundError(TaskFieldsError, LookupError):
    """Raised when a task or subtask id cannot be located."""

    def __init__(self, task_id: object, message: str | None = None):
        self.task_id = task_id
        super().__init__(message or f"Task {task_id} not found")

    def __str__(self) -> str:
        return self.args[0]
