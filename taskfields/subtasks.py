"""Subtask integrity: parent back-references, structure checks and reports.

Every subtask carries a ``parentTaskId`` that must equal the id of the task
whose ``subtasks`` list contains it. Legacy files may lack it or carry a
stale value, so the read path repairs it with
:func:`ensure_subtask_parent_ids`. Problems are collected, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger("taskfields.migration")


@dataclass(slots=True)
class SubtaskValidation:
    """Result of :func:`validate_subtask_structure`."""

    tasks: Any
    issues: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {"tasks": self.tasks, "issues": list(self.issues), "isValid": self.is_valid}


def _subtask_list(task: Any) -> List[Any]:
    if isinstance(task, dict) and isinstance(task.get("subtasks"), list):
        return task["subtasks"]
    return []


def _needs_parent_fix(subtask: Dict[str, Any], parent_id: Any) -> bool:
    parent_ref = subtask.get("parentTaskId")
    return not parent_ref or parent_ref != parent_id


def ensure_subtask_parent_ids(tasks: Any, log_migrations: bool = False) -> Any:
    """Point every subtask's ``parentTaskId`` at the task that contains it.

    Non-list input is returned unchanged. Malformed subtask entries are kept in
    place as they are. With ``log_migrations`` each correction is traced at
    DEBUG level on the ``taskfields.migration`` logger.
    """
    if not isinstance(tasks, list):
        return tasks

    migrations = 0
    validated = []
    for task in tasks:
        subtasks = _subtask_list(task)
        if not subtasks:
            validated.append(task)
            continue

        parent_id = task.get("id")
        fixed_subtasks = []
        for subtask in subtasks:
            if isinstance(subtask, dict) and _needs_parent_fix(subtask, parent_id):
                migrations += 1
                if log_migrations:
                    logger.debug(
                        "Auto-assigned parentTaskId %s to subtask %s.%s",
                        parent_id,
                        parent_id,
                        subtask.get("id"),
                    )
                subtask = {**subtask, "parentTaskId": parent_id}
            fixed_subtasks.append(subtask)

        validated.append({**task, "subtasks": fixed_subtasks})

    if migrations and log_migrations:
        logger.debug("Subtask validation: Auto-assigned parentTaskId to %d subtasks", migrations)

    return validated


def validate_subtask_structure(
    tasks: Any, *, fix_issues: bool = True, log_migrations: bool = False
) -> SubtaskValidation:
    """Check subtask ids, titles and parent references.

    With ``fix_issues`` the parent references are repaired first and the
    repaired list is scanned; otherwise the input is scanned as-is.
    """
    if not isinstance(tasks, list):
        return SubtaskValidation(tasks=tasks, issues=["Tasks must be an array"])

    validated = ensure_subtask_parent_ids(tasks, log_migrations) if fix_issues else tasks
    issues: List[str] = []

    for task in validated:
        if not isinstance(task, dict) or not isinstance(task.get("subtasks"), list):
            continue

        task_id = task.get("id")
        seen_ids = set()
        for index, subtask in enumerate(task["subtasks"]):
            if not isinstance(subtask, dict):
                issues.append(f"Task {task_id}: Subtask at index {index} missing id")
                continue

            subtask_id = subtask.get("id")
            if not subtask_id:
                issues.append(f"Task {task_id}: Subtask at index {index} missing id")

            parent_ref = subtask.get("parentTaskId")
            if not parent_ref:
                issues.append(f"Task {task_id}: Subtask {subtask_id} missing parentTaskId")
            elif parent_ref != task_id:
                issues.append(
                    f"Task {task_id}: Subtask {subtask_id} has incorrect parentTaskId ({parent_ref})"
                )

            if subtask_id:
                if subtask_id in seen_ids:
                    issues.append(f"Task {task_id}: Duplicate subtask ID {subtask_id}")
                else:
                    seen_ids.add(subtask_id)

            if not subtask.get("title"):
                issues.append(f"Task {task_id}: Subtask {subtask_id} missing title")

    return SubtaskValidation(tasks=validated, issues=issues)


def find_orphaned_subtasks(tasks: Any) -> List[Dict[str, Any]]:
    """Subtasks whose ``parentTaskId`` names a task absent from ``tasks``."""
    if not isinstance(tasks, list):
        return []

    task_ids = {task.get("id") for task in tasks if isinstance(task, dict)}
    orphaned = []
    for task in tasks:
        for subtask in _subtask_list(task):
            if not isinstance(subtask, dict):
                continue
            parent_ref = subtask.get("parentTaskId")
            if parent_ref and parent_ref not in task_ids:
                orphaned.append(
                    {
                        **subtask,
                        "actualParentId": task.get("id"),
                        "invalidParentId": parent_ref,
                        "context": (
                            f"Found in task {task.get('id')} but references "
                            f"non-existent parent {parent_ref}"
                        ),
                    }
                )
    return orphaned


def _integrity_score(total: int, with_issues: int) -> str:
    if total == 0:
        return "100%"
    return f"{(total - with_issues) / total * 100:.1f}%"


def create_subtask_integrity_report(tasks: Any) -> Dict[str, Any]:
    """Summarize subtask health across a task collection."""
    validation = validate_subtask_structure(tasks, fix_issues=False)
    orphaned = find_orphaned_subtasks(tasks)
    task_list = tasks if isinstance(tasks, list) else []

    total_subtasks = 0
    tasks_with_subtasks = 0
    subtasks_with_issues = 0
    for task in task_list:
        subtasks = _subtask_list(task)
        if not subtasks:
            continue
        tasks_with_subtasks += 1
        total_subtasks += len(subtasks)
        for subtask in subtasks:
            if not isinstance(subtask, dict) or _needs_parent_fix(subtask, task.get("id")):
                subtasks_with_issues += 1

    return {
        "summary": {
            "totalTasks": len(task_list),
            "tasksWithSubtasks": tasks_with_subtasks,
            "totalSubtasks": total_subtasks,
            "subtasksWithIssues": subtasks_with_issues,
            "orphanedSubtasks": len(orphaned),
            "integrityScore": _integrity_score(total_subtasks, subtasks_with_issues),
        },
        "issues": validation.issues,
        "orphanedSubtasks": orphaned,
        "isHealthy": validation.is_valid and not orphaned,
    }
