"""Workspace management for task files with custom fields.

This module owns the on-disk tasks file. Every read runs the backward
compatibility pass so callers only ever see the canonical shape, and every
write normalizes tasks before persisting them.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .compatibility import (
    MASTER_TAG,
    RAW_TAGGED_DATA_KEY,
    create_backward_compatible_result,
    create_master_fallback_result,
    default_master_metadata,
    ensure_data_backward_compatibility,
    ensure_tasks_backward_compatibility,
    is_legacy_format,
    migrate_legacy_format_with_custom_fields,
)
from .errors import TaskFieldsError, TaskNotFoundError
from .fields import TASK_PRIORITIES, TASK_STATUSES
from .models import (
    MERGE,
    UNSET,
    Subtask,
    Task,
    TaskId,
    apply_custom_field_operation,
    utc_timestamp,
)
from .query import extract_custom_field_names, query_tasks
from .search import FuzzyTaskSearch, RelevanceResults, SearchResult, search_tasks
from .subtasks import create_subtask_integrity_report
from .taskfields_logging import (
    log_custom_fields_update,
    log_data_migration,
    log_error_with_context,
    log_operation,
    log_performance,
    log_query,
    log_subtask_created,
    log_task_created,
    observability_hooks,
)
from .validation import create_custom_fields_summary, validate_custom_fields

logger = logging.getLogger("taskfields.workspace")

UPDATABLE_FIELDS = (
    "title",
    "description",
    "details",
    "testStrategy",
    "status",
    "priority",
    "dependencies",
)


def parse_task_id(task_id: Union[TaskId, str]) -> Tuple[str, Optional[str]]:
    """Split ``"5"`` into ``("5", None)`` and ``"5.2"`` into ``("5", "2")``."""
    text = str(task_id).strip()
    if not text:
        raise TaskFieldsError("Task id is required")
    parent, sep, child = text.partition(".")
    if not parent or (sep and not child):
        raise TaskFieldsError(f"Invalid task id: {task_id}")
    return parent, child or None


def _same_id(left: Any, right: Any) -> bool:
    return left == right or str(left) == str(right)


def _raise_for_issues(issues: List[str]) -> None:
    if issues:
        raise TaskFieldsError("; ".join(issues))


def _next_id(items: Iterable[Any]) -> int:
    numbers = [
        int(item["id"])
        for item in items
        if isinstance(item, dict) and str(item.get("id", "")).isdigit()
    ]
    return max(numbers, default=0) + 1


class Workspace:
    """Read and write a project's tasks file."""

    STORAGE_DIR_ENV = "TASKFIELDS_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".taskmaster"

    def __init__(self, root: Path | str):
        """Initialize workspace with given root directory."""
        try:
            self.root = Path(root).resolve()
            self.base_dir = self.root / (os.getenv(self.STORAGE_DIR_ENV) or self.DEFAULT_STORAGE_DIR)
            self.tasks_dir = self.base_dir / "tasks"
            self.tasks_path = self.tasks_dir / "tasks.json"
            self.state_path = self.base_dir / "state.json"

            try:
                self.tasks_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise TaskFieldsError(f"Could not initialize workspace at {self.root}: {e}") from e

            logger.debug(f"Workspace initialized at {self.root}")
            observability_hooks.log_task_event("workspace_initialized", root=str(self.root))

        except Exception as e:
            log_error_with_context(e, {"operation": "workspace_init", "root": str(root)})
            raise

    # ------------------------------------------------------------------
    # Raw file access
    # ------------------------------------------------------------------

    def _load_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TaskFieldsError(f"Could not parse {path}: {e}") from e

    def current_tag(self) -> str:
        """Active tag from ``state.json``, defaulting to ``master``."""
        state = self._load_json(self.state_path)
        if isinstance(state, dict) and state.get("currentTag"):
            return str(state["currentTag"])
        return MASTER_TAG

    def _load_tagged_data(self) -> Dict[str, Any]:
        raw = self._load_json(self.tasks_path)
        if not raw:
            return {}
        if not isinstance(raw, dict):
            raise TaskFieldsError(f"Tasks file {self.tasks_path} must contain a JSON object")
        if is_legacy_format(raw):
            data = migrate_legacy_format_with_custom_fields(raw)
            log_data_migration("legacy", len(data[MASTER_TAG]["tasks"]), path=str(self.tasks_path))
            return data
        return ensure_data_backward_compatibility(raw)

    # ------------------------------------------------------------------
    # Reading and writing
    # ------------------------------------------------------------------

    @log_performance("read_tasks")
    def read_tasks(self, tag: Optional[str] = None) -> Dict[str, Any]:
        """Return one tag's data in canonical form.

        The result holds ``tasks``, ``metadata``, the resolved ``tag`` and the
        whole tagged file under ``_rawTaggedData``. Unknown tags fall back to
        ``master``.
        """
        data = self._load_tagged_data()
        resolved = tag or self.current_tag()

        tag_data = data.get(resolved)
        if isinstance(tag_data, dict) and isinstance(tag_data.get("tasks"), list):
            return create_backward_compatible_result(tag_data, resolved, data)

        master = data.get(MASTER_TAG)
        if isinstance(master, dict) and isinstance(master.get("tasks"), list):
            if tag:
                logger.warning(f"Tag '{tag}' not found, falling back to '{MASTER_TAG}'")
            return create_master_fallback_result(master, data)

        return {"tasks": [], "metadata": {}, "tag": resolved, RAW_TAGGED_DATA_KEY: data}

    def load_tasks(self, tag: Optional[str] = None) -> List[Task]:
        """Typed view of one tag's tasks; entries without an id are skipped."""
        return [
            Task.from_dict(task)
            for task in self.read_tasks(tag)["tasks"]
            if isinstance(task, dict) and task.get("id") is not None
        ]

    @log_performance("write_tasks")
    def write_tasks(self, tasks: Sequence[Union[Task, Dict[str, Any]]], tag: Optional[str] = None) -> Path:
        """Persist ``tasks`` under ``tag``, leaving other tags untouched."""
        resolved = tag or self.current_tag()
        raw_tasks = [task.to_dict() if isinstance(task, Task) else dict(task) for task in tasks]

        with log_operation("write_tasks", tag=resolved, task_count=len(raw_tasks)):
            data = self._load_tagged_data()
            previous = data.get(resolved) if isinstance(data.get(resolved), dict) else {}
            metadata = dict(previous.get("metadata") or default_master_metadata())
            if resolved != MASTER_TAG and not previous:
                metadata["description"] = f"Tasks for {resolved} context"
            metadata["updated"] = utc_timestamp()

            data[resolved] = {
                **previous,
                "tasks": ensure_tasks_backward_compatibility(raw_tasks),
                "metadata": metadata,
            }
            self.tasks_path.parent.mkdir(parents=True, exist_ok=True)
            self.tasks_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

        return self.tasks_path

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def add_task(
        self,
        title: str,
        description: str = "",
        *,
        details: str = "",
        test_strategy: str = "",
        priority: str = "medium",
        dependencies: Optional[Sequence[TaskId]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        tag: Optional[str] = None,
    ) -> Task:
        """Append a new pending task and return it."""
        fields = validate_custom_fields(custom_fields)

        data = self.read_tasks(tag)
        tasks = data["tasks"]
        task = Task(
            id=_next_id(tasks),
            title=(title or "").strip(),
            description=description,
            details=details,
            test_strategy=test_strategy,
            priority=priority,
            dependencies=list(dependencies or []),
            custom_fields=fields,
        )
        _raise_for_issues(task.validate())
        tasks.append(task.to_dict())
        self.write_tasks(tasks, data["tag"])

        logger.info(f"Created task {task.id}: {task.title}")
        log_task_created(task.id, task.title, custom_fields=list(fields))
        return task

    def add_subtask(
        self,
        parent_id: TaskId,
        title: str,
        description: str = "",
        *,
        details: Optional[str] = None,
        dependencies: Optional[Sequence[TaskId]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        tag: Optional[str] = None,
    ) -> Subtask:
        """Append a subtask to ``parent_id`` with its ``parentTaskId`` set."""
        fields = validate_custom_fields(custom_fields, for_subtask=True)

        data = self.read_tasks(tag)
        parent = self._find_raw_task(data["tasks"], parent_id)
        subtasks = parent.get("subtasks")
        if not isinstance(subtasks, list):
            subtasks = []
            parent["subtasks"] = subtasks

        subtask = Subtask(
            id=_next_id(subtasks),
            title=(title or "").strip(),
            description=description,
            details=details,
            dependencies=list(dependencies or []),
            parent_task_id=parent["id"],
            custom_fields=fields,
        )
        _raise_for_issues(subtask.validate())
        subtasks.append(subtask.to_dict())
        self.write_tasks(data["tasks"], data["tag"])

        logger.info(f"Created subtask {subtask.display_id()}: {subtask.title}")
        log_subtask_created(parent["id"], subtask.id, custom_fields=list(fields))
        return subtask

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def _find_raw_task(self, tasks: List[Any], task_id: TaskId) -> Dict[str, Any]:
        for task in tasks:
            if isinstance(task, dict) and _same_id(task.get("id"), task_id):
                return task
        raise TaskNotFoundError(task_id)

    def _find_raw_item(self, tasks: List[Any], task_id: TaskId) -> Tuple[Dict[str, Any], bool]:
        parent_key, child_key = parse_task_id(task_id)
        parent = self._find_raw_task(tasks, parent_key)
        if child_key is None:
            return parent, False
        for subtask in parent.get("subtasks") or []:
            if isinstance(subtask, dict) and _same_id(subtask.get("id"), child_key):
                return subtask, True
        raise TaskNotFoundError(task_id, f"Subtask {task_id} not found")

    def update_custom_fields(
        self,
        task_id: Union[TaskId, str],
        fields: Union[Mapping[str, Any], Sequence[str]],
        operation: str = MERGE,
        tag: Optional[str] = None,
    ) -> Dict[str, str]:
        """Set, merge or unset custom fields on a task (``"5"``) or subtask (``"5.2"``).

        For ``unset`` only the field names matter, so a list of names is
        accepted. Returns the resulting customFields map.
        """
        data = self.read_tasks(tag)
        item, is_subtask = self._find_raw_item(data["tasks"], task_id)

        if operation == UNSET:
            changes: Dict[str, str] = dict.fromkeys(fields, "")
        else:
            changes = validate_custom_fields(fields, for_subtask=is_subtask)

        updated = apply_custom_field_operation(item.get("customFields"), changes, operation)
        item["customFields"] = updated
        self.write_tasks(data["tasks"], data["tag"])

        log_custom_fields_update(task_id, operation, list(changes))
        return updated

    def update_task(
        self,
        task_id: Union[TaskId, str],
        updates: Optional[Mapping[str, Any]] = None,
        *,
        custom_fields: Optional[Mapping[str, Any]] = None,
        operation: str = MERGE,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update core attributes and custom fields of a task or subtask.

        Returns the stored item as a dictionary.
        """
        updates = dict(updates or {})
        unknown = [name for name in updates if name not in UPDATABLE_FIELDS]
        if unknown:
            raise TaskFieldsError(
                f"Cannot update field(s): {', '.join(unknown)}. "
                f"Custom fields go in customFields"
            )
        if "status" in updates and updates["status"] not in TASK_STATUSES:
            raise TaskFieldsError(f"Invalid status: {updates['status']}")
        if updates.get("priority") is not None and updates["priority"] not in TASK_PRIORITIES:
            raise TaskFieldsError(f"Invalid priority: {updates['priority']}")

        data = self.read_tasks(tag)
        item, is_subtask = self._find_raw_item(data["tasks"], task_id)

        if custom_fields is not None:
            changes = validate_custom_fields(custom_fields, for_subtask=is_subtask)
            item["customFields"] = apply_custom_field_operation(
                item.get("customFields"), changes, operation
            )
            log_custom_fields_update(task_id, operation, list(changes))

        for name, value in updates.items():
            if value is not None:
                item[name] = list(value) if name == "dependencies" else value

        if is_subtask:
            _raise_for_issues(Subtask.from_dict(item).validate())
        else:
            _raise_for_issues(Task.from_dict({**item, "subtasks": []}).validate())

        self.write_tasks(data["tasks"], data["tag"])
        observability_hooks.log_task_event(
            "task_updated", task_id=str(task_id), fields=list(updates)
        )
        return dict(item)

    # ------------------------------------------------------------------
    # Queries and reports
    # ------------------------------------------------------------------

    def get_task(self, task_id: Union[TaskId, str], tag: Optional[str] = None) -> Union[Task, Subtask]:
        parent_key, child_key = parse_task_id(task_id)
        for task in self.load_tasks(tag):
            if _same_id(task.id, parent_key):
                if child_key is None:
                    return task
                subtask = task.find_subtask(child_key)
                if subtask is not None:
                    return subtask
                break
        raise TaskNotFoundError(task_id)

    @log_performance("list_tasks")
    def list_tasks(
        self, filters: Optional[Mapping[str, Any]] = None, tag: Optional[str] = None
    ) -> List[Task]:
        """Tasks matching every filter; core and custom fields mix freely."""
        tasks = self.load_tasks(tag)
        if not filters:
            return tasks
        results = query_tasks(tasks, filters)
        log_query(dict(filters), len(results))
        return results

    def available_custom_fields(self, tag: Optional[str] = None) -> List[str]:
        return extract_custom_field_names(self.load_tasks(tag))

    @log_performance("search_tasks")
    def search_tasks(
        self,
        query: str,
        threshold: float = 0.3,
        limit: Optional[int] = None,
        tag: Optional[str] = None,
    ) -> List[SearchResult]:
        results = search_tasks(self.load_tasks(tag), query, threshold=threshold, limit=limit)
        log_query({"query": query, "threshold": threshold}, len(results))
        return results

    def find_relevant_tasks(
        self,
        prompt: str,
        search_type: str = "default",
        max_results: int = 8,
        tag: Optional[str] = None,
    ) -> RelevanceResults:
        search = FuzzyTaskSearch(self.load_tasks(tag), search_type)
        return search.find_relevant_tasks(prompt, max_results=max_results)

    def subtask_integrity_report(self, tag: Optional[str] = None) -> Dict[str, Any]:
        """Integrity report over the stored data as written on disk."""
        data = self._load_json(self.tasks_path)
        if not isinstance(data, dict):
            tasks = []
        elif is_legacy_format(data):
            tasks = data["tasks"]
        else:
            resolved = tag or self.current_tag()
            tag_data = data.get(resolved) or data.get(MASTER_TAG) or {}
            tasks = tag_data.get("tasks") if isinstance(tag_data, dict) else []
        return create_subtask_integrity_report(tasks if isinstance(tasks, list) else [])

    def custom_fields_summary(self, tag: Optional[str] = None) -> Dict[str, Any]:
        return create_custom_fields_summary(self.read_tasks(tag)["tasks"])
