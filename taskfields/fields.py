"""Core and reserved field names shared by every task fields consumer.

The validator, the query translator, the search key generator and the MCP
server all import their field lists from here so the lists cannot drift
apart.
"""

from __future__ import annotations

import re
from typing import Tuple

# Persisted task attributes. None of these may be used as a custom field name.
RESERVED_FIELD_NAMES: Tuple[str, ...] = (
    "id",
    "title",
    "description",
    "details",
    "testStrategy",
    "status",
    "priority",
    "dependencies",
    "subtasks",
    "customFields",
)

# Subtasks additionally carry a back-reference to their parent.
SUBTASK_RESERVED_FIELD_NAMES: Tuple[str, ...] = RESERVED_FIELD_NAMES + ("parentTaskId",)

# Parameters accepted by list/search entry points that never appear on a task.
QUERY_ONLY_FIELDS: Tuple[str, ...] = (
    "file",
    "projectRoot",
    "tag",
    "withSubtasks",
    "complexityReport",
)

CORE_FIELDS: Tuple[str, ...] = RESERVED_FIELD_NAMES + QUERY_ONLY_FIELDS

FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_-][A-Za-z0-9_-]*$")

TASK_STATUSES: Tuple[str, ...] = (
    "pending",
    "in-progress",
    "done",
    "review",
    "deferred",
    "cancelled",
)

TASK_PRIORITIES: Tuple[str, ...] = ("high", "medium", "low")

CORE = "core"
CUSTOM = "custom"

_CORE_FIELD_SET = frozenset(CORE_FIELDS)
_QUERY_ONLY_SET = frozenset(QUERY_ONLY_FIELDS)


def is_core_field(name: str) -> bool:
    """Return True when ``name`` is a core or query-only field (case-sensitive)."""
    return name in _CORE_FIELD_SET


def is_query_only_field(name: str) -> bool:
    return name in _QUERY_ONLY_SET


def classify_field(name: str) -> str:
    """Classify a parameter name as ``"core"`` or ``"custom"``."""
    return CORE if is_core_field(name) else CUSTOM


def reserved_names(for_subtask: bool = False) -> Tuple[str, ...]:
    """Names that may not be used for custom fields on a task or subtask."""
    return SUBTASK_RESERVED_FIELD_NAMES if for_subtask else RESERVED_FIELD_NAMES
