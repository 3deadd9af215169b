"""Task management facade used by the MCP server.

Every method returns a JSON-ready dictionary. Failures are logged with
context and returned as ``{"error", "suggestion", "next_suggested_action"}``
responses instead of being raised to the transport.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from .errors import CustomFieldsError, TaskNotFoundError
from .fields import QUERY_ONLY_FIELDS, RESERVED_FIELD_NAMES
from .models import MERGE
from .query import validate_query_parameters
from .search import DEFAULT_SEARCH_THRESHOLD, FuzzyTaskSearch
from .taskfields_logging import log_error_with_context, log_performance
from .workspace import Workspace

logger = logging.getLogger("taskfields.manager")


def _suggestion_for(error: Exception) -> str:
    if isinstance(error, TaskNotFoundError):
        return "Use get_tasks to list the available task ids"
    if isinstance(error, CustomFieldsError):
        return (
            "Custom field names must not be reserved task fields and values must be "
            "strings, numbers or booleans"
        )
    return "Check that the project root exists and the tasks file is valid JSON"


def _error_response(
    operation: str, error: Exception, next_action: str, **context: Any
) -> Dict[str, Any]:
    logger.error(f"Failed to {operation.replace('_', ' ')}: {error}")
    log_error_with_context(error, {"operation": operation, **context})
    return {
        "error": str(error),
        "suggestion": _suggestion_for(error),
        "next_suggested_action": next_action,
    }


class TaskManager:
    """Task operations for a single project root."""

    def __init__(self, root: Path | str):
        self.workspace = Workspace(root)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @log_performance("get_tasks")
    def get_tasks(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        with_subtasks: bool = True,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List tasks, filtered by any mix of core and custom fields."""
        filters = {k: v for k, v in (filters or {}).items() if k not in QUERY_ONLY_FIELDS}
        try:
            available = self.workspace.available_custom_fields(tag)
            validation = validate_query_parameters(filters, available)
            if not validation.valid:
                return {
                    "error": "; ".join(validation.errors),
                    "suggestion": "Rename the custom field filters listed in the error",
                    "next_suggested_action": "list_custom_fields",
                    "validation": validation.to_dict(),
                }

            tasks = self.workspace.list_tasks(filters, tag)
            response: Dict[str, Any] = {
                "tasks": [task.to_dict(with_subtasks=with_subtasks) for task in tasks],
                "count": len(tasks),
                "filters": filters,
            }
            if validation.warnings:
                response["warnings"] = validation.warnings
            if validation.suggestions:
                response["suggestions"] = validation.suggestions
            return response
        except Exception as e:
            return _error_response("get_tasks", e, "get_tasks", filters=filters)

    def get_task(self, task_id: str, tag: Optional[str] = None) -> Dict[str, Any]:
        try:
            return {"task": self.workspace.get_task(task_id, tag).to_dict()}
        except Exception as e:
            return _error_response("get_task", e, "get_tasks", task_id=task_id)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def add_task(
        self,
        title: str,
        description: str = "",
        details: str = "",
        test_strategy: str = "",
        priority: str = "medium",
        dependencies: Optional[Sequence[Any]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            task = self.workspace.add_task(
                title,
                description,
                details=details,
                test_strategy=test_strategy,
                priority=priority,
                dependencies=dependencies,
                custom_fields=custom_fields,
                tag=tag,
            )
            return {
                "task": task.to_dict(),
                "message": f"Created task {task.id}: {task.title}",
                "next_suggested_action": "add_subtask",
            }
        except Exception as e:
            return _error_response("add_task", e, "add_task", title=title)

    def add_subtask(
        self,
        parent_id: Any,
        title: str,
        description: str = "",
        details: Optional[str] = None,
        dependencies: Optional[Sequence[Any]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            subtask = self.workspace.add_subtask(
                parent_id,
                title,
                description,
                details=details,
                dependencies=dependencies,
                custom_fields=custom_fields,
                tag=tag,
            )
            return {
                "subtask": subtask.to_dict(),
                "message": f"Created subtask {subtask.display_id()}: {subtask.title}",
                "next_suggested_action": "get_tasks",
            }
        except Exception as e:
            return _error_response("add_subtask", e, "get_tasks", parent_id=parent_id)

    def update_task(
        self,
        task_id: str,
        updates: Optional[Mapping[str, Any]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        operation: str = MERGE,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update a task (``"5"``) or subtask (``"5.2"``)."""
        try:
            item = self.workspace.update_task(
                task_id, updates, custom_fields=custom_fields, operation=operation, tag=tag
            )
            return {"task": item, "message": f"Updated {task_id}"}
        except Exception as e:
            return _error_response(
                "update_task", e, "get_tasks", task_id=task_id, operation=operation
            )

    def update_custom_fields(
        self,
        task_id: str,
        fields: Any,
        operation: str = MERGE,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            updated = self.workspace.update_custom_fields(task_id, fields, operation, tag)
            return {"task_id": str(task_id), "operation": operation, "customFields": updated}
        except Exception as e:
            return _error_response(
                "update_custom_fields", e, "list_custom_fields", task_id=task_id, operation=operation
            )

    # ------------------------------------------------------------------
    # Search and reports
    # ------------------------------------------------------------------

    @log_performance("search")
    def search_tasks(
        self,
        query: str,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
        limit: Optional[int] = None,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            if not query or not query.strip():
                raise ValueError("Search query cannot be empty")
            results = self.workspace.search_tasks(query, threshold=threshold, limit=limit, tag=tag)
            return {
                "query": query,
                "results": [result.to_dict() for result in results],
                "count": len(results),
            }
        except Exception as e:
            return _error_response("search_tasks", e, "get_tasks", query=query)

    def find_relevant_tasks(
        self,
        prompt: str,
        search_type: str = "default",
        max_results: int = 8,
        include_subtasks: bool = False,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            results = self.workspace.find_relevant_tasks(
                prompt, search_type=search_type, max_results=max_results, tag=tag
            )
            response = results.to_dict()
            response["taskIds"] = FuzzyTaskSearch.get_task_ids_with_subtasks(
                results, include_subtasks=include_subtasks
            )
            response["summary"] = FuzzyTaskSearch.format_search_summary(
                results, include_breakdown=True
            )
            return response
        except Exception as e:
            return _error_response("find_relevant_tasks", e, "search_tasks", prompt=prompt)

    def subtask_integrity_report(self, tag: Optional[str] = None) -> Dict[str, Any]:
        try:
            return self.workspace.subtask_integrity_report(tag)
        except Exception as e:
            return _error_response("subtask_integrity_report", e, "get_tasks")

    def list_custom_fields(self, tag: Optional[str] = None) -> Dict[str, Any]:
        try:
            summary = self.workspace.custom_fields_summary(tag)
            return {
                "customFields": self.workspace.available_custom_fields(tag),
                "summary": summary,
                "reservedFields": list(RESERVED_FIELD_NAMES),
            }
        except Exception as e:
            return _error_response("list_custom_fields", e, "get_tasks")

