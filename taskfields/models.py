"""Data models for tasks, subtasks and their custom fields.

Tasks are persisted as camelCase JSON. The dataclasses here give the query
and search layers a typed view with a fixed set of core attributes plus one
explicit ``custom_fields`` mapping. Reading and repairing the raw JSON is the
job of :mod:`taskfields.compatibility`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from .fields import TASK_PRIORITIES, TASK_STATUSES
from .validation import coerce_custom_fields, validate_custom_field_names

TaskId = Union[int, str]

SET = "set"
MERGE = "merge"
UNSET = "unset"
CUSTOM_FIELD_OPERATIONS = (SET, MERGE, UNSET)


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class Subtask:
    """A unit of work nested under a :class:`Task`."""

    id: TaskId
    title: str
    status: str = "pending"
    description: str = ""
    details: Optional[str] = None
    dependencies: List[TaskId] = field(default_factory=list)
    parent_task_id: Optional[TaskId] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dictionary shape."""
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "dependencies": list(self.dependencies),
            "parentTaskId": self.parent_task_id,
            "customFields": dict(self.custom_fields),
        }
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Subtask":
        """Create from the persisted dictionary shape."""
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            status=data.get("status") or "pending",
            description=data.get("description") or "",
            details=data.get("details"),
            dependencies=list(data.get("dependencies") or []),
            parent_task_id=data.get("parentTaskId"),
            custom_fields=coerce_custom_fields(data.get("customFields")),
        )

    def display_id(self, parent_id: Optional[TaskId] = None) -> str:
        """Dotted ``"<parent>.<subtask>"`` identifier used for display."""
        parent = parent_id if parent_id is not None else self.parent_task_id
        return f"{parent}.{self.id}"

    def validate(self) -> List[str]:
        """Validate subtask data and return any issues."""
        issues = []
        if self.id is None or self.id == "":
            issues.append("Subtask ID is required")
        if not self.title:
            issues.append("Subtask title is required")
        if self.status not in TASK_STATUSES:
            issues.append(f"Invalid status: {self.status}")
        names = validate_custom_field_names(self.custom_fields, for_subtask=True)
        if not names.is_valid:
            issues.append(names.error_message)
        return issues


@dataclass(slots=True)
class Task:
    """A tracked task with optional subtasks and user-defined custom fields."""

    id: int
    title: str
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    status: str = "pending"
    priority: Optional[str] = None
    dependencies: List[TaskId] = field(default_factory=list)
    subtasks: List[Subtask] = field(default_factory=list)
    custom_fields: Dict[str, str] = field(default_factory=dict)

    def to_dict(self, with_subtasks: bool = True) -> Dict[str, Any]:
        """Convert to the persisted dictionary shape."""
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "details": self.details,
            "testStrategy": self.test_strategy,
            "status": self.status,
            "dependencies": list(self.dependencies),
            "customFields": dict(self.custom_fields),
        }
        if self.priority is not None:
            data["priority"] = self.priority
        if with_subtasks:
            data["subtasks"] = [subtask.to_dict() for subtask in self.subtasks]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        """Create from the persisted dictionary shape.

        Subtask entries that are not objects are skipped in the typed view.
        """
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            description=data.get("description") or "",
            details=data.get("details") or "",
            test_strategy=data.get("testStrategy") or "",
            status=data.get("status") or "pending",
            priority=data.get("priority"),
            dependencies=list(data.get("dependencies") or []),
            subtasks=[
                Subtask.from_dict(subtask)
                for subtask in data.get("subtasks") or []
                if isinstance(subtask, Mapping)
            ],
            custom_fields=coerce_custom_fields(data.get("customFields")),
        )

    def find_subtask(self, subtask_id: TaskId) -> Optional[Subtask]:
        """Look up a subtask by id, accepting ``"3"`` for ``3``."""
        for subtask in self.subtasks:
            if subtask.id == subtask_id or str(subtask.id) == str(subtask_id):
                return subtask
        return None

    def validate(self) -> List[str]:
        """Validate task data and return any issues."""
        issues = []
        if self.id is None:
            issues.append("Task ID is required")
        if not self.title:
            issues.append("Title is required")
        if self.status not in TASK_STATUSES:
            issues.append(f"Invalid status: {self.status}")
        if self.priority is not None and self.priority not in TASK_PRIORITIES:
            issues.append(f"Invalid priority: {self.priority}")
        names = validate_custom_field_names(self.custom_fields)
        if not names.is_valid:
            issues.append(names.error_message)
        for subtask in self.subtasks:
            issues.extend(
                f"Subtask {subtask.display_id(self.id)}: {issue}" for issue in subtask.validate()
            )
        return issues


def apply_custom_field_operation(
    current: Optional[Mapping[str, str]], changes: Mapping[str, str], operation: str = MERGE
) -> Dict[str, str]:
    """Return the customFields map produced by a set, merge or unset update."""
    if operation not in CUSTOM_FIELD_OPERATIONS:
        raise ValueError(f"operation must be one of {', '.join(CUSTOM_FIELD_OPERATIONS)}")

    existing = dict(current or {})
    if operation == SET:
        return dict(changes)
    if operation == MERGE:
        existing.update(changes)
        return existing
    for name in changes:
        existing.pop(name, None)
    return existing
