"""MCP server exposing task tools with user-defined custom fields."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from taskfields import TaskManager, Workspace, setup_logging

mcp = FastMCP("taskfields")


PROJECT_ROOT_ENV = "TASKFIELDS_PROJECT_ROOT"
SERVER_ROOT = Path(__file__).resolve().parent


def _storage_marker() -> str:
    return os.getenv(Workspace.STORAGE_DIR_ENV) or Workspace.DEFAULT_STORAGE_DIR


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    for parent in SERVER_ROOT.parents:
        if parent not in bases:
            bases.append(parent)
    return bases


def _locate_workspace_root() -> Optional[Path]:
    marker = _storage_marker()
    for base in _candidate_bases():
        if (base / marker).is_dir():
            return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _manager(root: Optional[str]) -> TaskManager:
    return TaskManager(_resolve_root(root))


@mcp.tool()
def get_tasks(
    status: Optional[str] = None,
    custom_fields: Optional[Dict[str, str]] = None,
    with_subtasks: bool = True,
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List tasks, optionally filtered by status and custom fields.

    ``status`` accepts a comma-separated list ("pending,in-progress"). Each
    custom field filter matches by equality or substring; a comma-separated
    value matches any of the listed values exactly.
    """

    filters: Dict[str, Any] = dict(custom_fields or {})
    if status:
        filters["status"] = status
    return _manager(root).get_tasks(filters, with_subtasks=with_subtasks, tag=tag)


@mcp.tool()
def add_task(
    title: str,
    description: str = "",
    details: str = "",
    test_strategy: str = "",
    priority: str = "medium",
    dependencies: Optional[List[int]] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a task. Custom field values may be strings, numbers or booleans."""

    return _manager(root).add_task(
        title,
        description,
        details=details,
        test_strategy=test_strategy,
        priority=priority,
        dependencies=dependencies,
        custom_fields=custom_fields,
        tag=tag,
    )


@mcp.tool()
def add_subtask(
    parent_id: str,
    title: str,
    description: str = "",
    details: Optional[str] = None,
    dependencies: Optional[List[int]] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a subtask to an existing task; its parentTaskId is set automatically."""

    return _manager(root).add_subtask(
        parent_id,
        title,
        description,
        details=details,
        dependencies=dependencies,
        custom_fields=custom_fields,
        tag=tag,
    )


@mcp.tool()
def update_task(
    task_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    details: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    custom_fields_operation: str = "merge",
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Update a task's core fields and custom fields.

    ``custom_fields_operation`` is ``set`` (replace all), ``merge`` (add or
    overwrite the given keys) or ``unset`` (remove the given keys).
    """

    updates = {
        "title": title,
        "description": description,
        "details": details,
        "status": status,
        "priority": priority,
    }
    return _manager(root).update_task(
        task_id,
        {key: value for key, value in updates.items() if value is not None},
        custom_fields=custom_fields,
        operation=custom_fields_operation,
        tag=tag,
    )


@mcp.tool()
def update_subtask(
    subtask_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    details: Optional[str] = None,
    status: Optional[str] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    custom_fields_operation: str = "merge",
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Update a subtask addressed as "<parentId>.<subtaskId>", e.g. "5.2"."""

    if "." not in subtask_id:
        return {
            "error": f"Subtask id '{subtask_id}' must look like '<parentId>.<subtaskId>'",
            "suggestion": "Use update_task for top-level tasks",
            "next_suggested_action": "update_task",
        }
    updates = {"title": title, "description": description, "details": details, "status": status}
    return _manager(root).update_task(
        subtask_id,
        {key: value for key, value in updates.items() if value is not None},
        custom_fields=custom_fields,
        operation=custom_fields_operation,
        tag=tag,
    )


@mcp.tool()
def search_tasks(
    query: str,
    threshold: float = 0.3,
    limit: Optional[int] = None,
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Fuzzy search across titles, descriptions, details and every custom field."""

    return _manager(root).search_tasks(query, threshold=threshold, limit=limit, tag=tag)


@mcp.tool()
def find_relevant_tasks(
    prompt: str,
    search_type: str = "default",
    max_results: int = 8,
    include_subtasks: bool = False,
    tag: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Find tasks relevant to a free-text prompt (search_type: default, addTask, research)."""

    return _manager(root).find_relevant_tasks(
        prompt,
        search_type=search_type,
        max_results=max_results,
        include_subtasks=include_subtasks,
        tag=tag,
    )


@mcp.tool()
def subtask_integrity_report(tag: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Report missing or stale parentTaskId values, duplicates and orphans."""

    return _manager(root).subtask_integrity_report(tag)


@mcp.tool()
def list_custom_fields(tag: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """List custom field names in use, their usage counts and the reserved names."""

    return _manager(root).list_custom_fields(tag)


@mcp.resource("taskfields://custom-fields")
def resource_custom_fields() -> str:
    """Resource view of the custom fields used in the detected project."""

    try:
        manager = _manager(None)
    except ValueError:
        return f"No project root detected. Launch tools with a 'root' argument or set {PROJECT_ROOT_ENV}."

    result = manager.list_custom_fields()
    if "error" in result:
        return f"Could not read custom fields: {result['error']}"
    return json.dumps(result, indent=2)


def main() -> None:
    setup_logging(os.getenv("TASKFIELDS_LOG_LEVEL", "INFO"))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
