"""Guarantee a ``customFields`` map on every task and subtask.

These helpers run on raw, JSON-shaped dictionaries as they come off disk.
They return shallow copies and never mutate their input.
"""

from __future__ import annotations

from typing import Any, Dict, List


def has_custom_fields(obj: Any) -> bool:
    """True when ``obj`` is a dict carrying a ``customFields`` mapping."""
    return isinstance(obj, dict) and isinstance(obj.get("customFields"), dict)


def ensure_custom_fields(item: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``item`` whose ``customFields`` defaults to ``{}``.

    A missing or falsy value (``None``, ``False``, ``""``, ``0``) is replaced;
    a non-empty value is kept.
    """
    normalized = dict(item)
    if not normalized.get("customFields"):
        normalized["customFields"] = {}
    return normalized


def _ensure_on_subtask(subtask: Any) -> Any:
    # malformed entries stay in place untouched
    if isinstance(subtask, dict):
        return ensure_custom_fields(subtask)
    return subtask


def ensure_custom_fields_on_tasks(tasks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Apply :func:`ensure_custom_fields` to each task and its subtasks.

    ``subtasks: None`` becomes ``[]``; a task without a ``subtasks`` key keeps
    it absent.
    """
    normalized_tasks = []
    for task in tasks:
        if not isinstance(task, dict):
            normalized_tasks.append(task)
            continue

        normalized = ensure_custom_fields(task)
        if "subtasks" in task:
            subtasks = task["subtasks"]
            if subtasks is None:
                normalized["subtasks"] = []
            elif isinstance(subtasks, list):
                normalized["subtasks"] = [_ensure_on_subtask(s) for s in subtasks]
        normalized_tasks.append(normalized)
    return normalized_tasks
