"""Task Fields - custom fields, queries and fuzzy search for task files."""

from .errors import CustomFieldsError, TaskFieldsError, TaskNotFoundError
from .manager import TaskManager
from .models import Subtask, Task
from .taskfields_logging import setup_logging
from .workspace import Workspace

__all__ = [
    "CustomFieldsError",
    "Subtask",
    "Task",
    "TaskFieldsError",
    "TaskManager",
    "TaskNotFoundError",
    "Workspace",
    "setup_logging",
]
