"""Translate flat query parameters into core and custom field filters.

Any parameter whose name is a core field filters on that attribute; every
other name is treated as a custom field. A comma-separated value asks for
any of the listed values within one field, and distinct fields are ANDed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .fields import is_core_field
from .models import Task
from .validation import RESERVED, suggest_field_name, validate_field_name

logger = logging.getLogger("taskfields.query")


@dataclass(slots=True)
class TranslatedQuery:
    """Query parameters split by field classification."""

    core_fields: Dict[str, Any] = field(default_factory=dict)
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.core_fields and not self.custom_fields

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {"coreFields": dict(self.core_fields), "customFields": dict(self.custom_fields)}


@dataclass(slots=True)
class QueryValidation:
    """Errors reject a query; warnings and suggestions are advisory."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
        }


# One accessor per persisted core attribute. Query-only parameters such as
# ``projectRoot`` have no entry and never filter tasks.
CORE_FIELD_ACCESSORS: Dict[str, Callable[[Task], Any]] = {
    "id": lambda task: task.id,
    "title": lambda task: task.title,
    "description": lambda task: task.description,
    "details": lambda task: task.details,
    "testStrategy": lambda task: task.test_strategy,
    "status": lambda task: task.status,
    "priority": lambda task: task.priority,
    "dependencies": lambda task: task.dependencies,
    "subtasks": lambda task: [subtask.id for subtask in task.subtasks],
    "customFields": lambda task: task.custom_fields,
}


def core_field_value(field_name: str, task: Task) -> Any:
    """Resolve a core attribute of ``task`` by its persisted name."""
    return CORE_FIELD_ACCESSORS[field_name](task)


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(item) for item in value)
    if isinstance(value, Mapping):
        return ",".join(f"{key}={_as_text(item)}" for key, item in value.items())
    return str(value)


def _split_values(text: str) -> List[str]:
    return [part.strip() for part in text.split(",")]


def translate_query_parameters(params: Mapping[str, Any]) -> TranslatedQuery:
    """Route each parameter to ``core_fields`` or ``custom_fields`` untouched."""
    translated = TranslatedQuery()
    for key, value in params.items():
        if is_core_field(key):
            translated.core_fields[key] = value
        else:
            translated.custom_fields[key] = value
    return translated


def _matches_status(task: Task, expected: Any) -> bool:
    if not task.status:
        return False
    actual = task.status.lower()
    text = _as_text(expected)
    if "," in text:
        return actual in {part.lower() for part in _split_values(text)}
    return actual == text.lower()


def _matches_core(task: Task, field_name: str, expected: Any) -> bool:
    if field_name == "status":
        return _matches_status(task, expected)
    actual = core_field_value(field_name, task)
    if actual == expected:
        return True
    if not actual:
        return False
    return _as_text(expected) in _as_text(actual)


def _matches_custom(task: Task, field_name: str, expected: Any) -> bool:
    actual = task.custom_fields.get(field_name) if task.custom_fields else None
    # an empty string counts as absent
    if not actual:
        return False
    text = _as_text(expected)
    if "," in text:
        return actual in _split_values(text)
    return actual == text or text in actual


def filter_tasks(tasks: Iterable[Task], translated: TranslatedQuery) -> List[Task]:
    """Keep the tasks matching every supplied filter, in input order."""
    core_filters = [
        (name, value)
        for name, value in translated.core_fields.items()
        if value is not None and name in CORE_FIELD_ACCESSORS
    ]
    custom_filters = [
        (name, value) for name, value in translated.custom_fields.items() if value is not None
    ]

    results = []
    for task in tasks:
        if all(_matches_core(task, name, value) for name, value in core_filters) and all(
            _matches_custom(task, name, value) for name, value in custom_filters
        ):
            results.append(task)
    return results


def extract_custom_field_names(tasks: Iterable[Task]) -> List[str]:
    """Unique custom field names across tasks and subtasks, first seen first."""
    names: Dict[str, None] = {}
    for task in tasks:
        for name in task.custom_fields:
            names.setdefault(name, None)
        for subtask in task.subtasks:
            for name in subtask.custom_fields:
                names.setdefault(name, None)
    return list(names)


def query_tasks(tasks: Sequence[Task], params: Mapping[str, Any]) -> List[Task]:
    """Translate ``params`` and filter ``tasks`` with them."""
    translated = translate_query_parameters(params)
    results = filter_tasks(tasks, translated)
    logger.debug(
        "Query %s matched %d of %d tasks", translated.to_dict(), len(results), len(tasks)
    )
    return results


def validate_query_parameters(
    params: Mapping[str, Any], available_custom_fields: Optional[Sequence[str]] = None
) -> QueryValidation:
    """Check custom field parameter names before a query is applied."""
    available = list(available_custom_fields or [])
    validation = QueryValidation()

    for name in translate_query_parameters(params).custom_fields:
        result = validate_field_name(name)
        if not result.valid:
            if result.reason == RESERVED:
                validation.errors.append(
                    f"Field '{name}' is reserved and cannot be used as a custom field"
                )
            else:
                validation.errors.append(f"Invalid field name format: '{name}'. {result.message}")
        elif name not in available:
            suggestion = suggest_field_name(name, available)
            if suggestion:
                validation.warnings.append(f"Custom field '{name}' not found")
                validation.suggestions.append(f"Did you mean '{suggestion}'?")
            else:
                validation.warnings.append(f"Custom field '{name}' not found in any tasks")

    return validation
