"""Custom field name validation, suggestions and schema coercion.

Naming failures are returned as :class:`FieldValidation` results so callers
can render a message (and optionally a suggestion) instead of handling an
exception. Schema failures at the write boundary raise
:class:`~taskfields.errors.CustomFieldsError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import CustomFieldsError
from .fields import FIELD_NAME_PATTERN, reserved_names

RESERVED = "reserved"
FORMAT = "format"

FORMAT_RULE = (
    "Field names must start with a letter, underscore, or hyphen, "
    "and contain only letters, numbers, underscores, and hyphens"
)

MAX_SUGGESTION_DISTANCE = 2


@dataclass(slots=True)
class FieldValidation:
    """Outcome of validating a single custom field name."""

    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {"valid": self.valid}
        if self.reason is not None:
            result["reason"] = self.reason
        if self.message is not None:
            result["message"] = self.message
        return result


@dataclass(slots=True)
class CustomFieldNameReport:
    """Name validation across every key of a customFields mapping."""

    reserved_errors: List[str] = field(default_factory=list)
    format_errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.reserved_errors and not self.format_errors

    @property
    def error_message(self) -> str:
        errors = []
        if self.reserved_errors:
            errors.append(
                f"Invalid custom field names (reserved): {', '.join(self.reserved_errors)}"
            )
        if self.format_errors:
            errors.append(
                f"Invalid custom field name format: {', '.join(self.format_errors)}. {FORMAT_RULE}."
            )
        return "; ".join(errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "reservedErrors": list(self.reserved_errors),
            "formatErrors": list(self.format_errors),
            "errorMessage": self.error_message,
        }


def validate_field_name(name: str, *, for_subtask: bool = False) -> FieldValidation:
    """Check a candidate custom field name against reserved names and format."""
    if name in reserved_names(for_subtask):
        return FieldValidation(
            valid=False,
            reason=RESERVED,
            message=f"Use a different name, '{name}' is a reserved field",
        )
    if not isinstance(name, str) or not FIELD_NAME_PATTERN.fullmatch(name):
        return FieldValidation(valid=False, reason=FORMAT, message=FORMAT_RULE)
    return FieldValidation(valid=True)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def suggest_field_name(value: str, available_fields: Sequence[str]) -> Optional[str]:
    """Suggest the closest known field name, or None.

    Exact, prefix and substring matches (all case-insensitive) are tried in
    that order before falling back to edit distance.
    """
    needle = value.lower()
    lowered = [(candidate, candidate.lower()) for candidate in available_fields]

    for candidate, low in lowered:
        if low == needle:
            return candidate
    for candidate, low in lowered:
        if low.startswith(needle):
            return candidate
    for candidate, low in lowered:
        if needle in low:
            return candidate

    best: Optional[str] = None
    best_distance = MAX_SUGGESTION_DISTANCE + 1
    for candidate, low in lowered:
        distance = levenshtein_distance(needle, low)
        # strict comparison keeps the first candidate on ties
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def validate_custom_field_names(
    custom_fields: Mapping[str, Any], *, for_subtask: bool = False
) -> CustomFieldNameReport:
    """Validate every key of ``custom_fields``; a name may fail both checks."""
    report = CustomFieldNameReport()
    reserved = reserved_names(for_subtask)
    for name in custom_fields:
        if name in reserved:
            report.reserved_errors.append(name)
        if not FIELD_NAME_PATTERN.fullmatch(name):
            report.format_errors.append(name)
    return report


def _coerce_value(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise CustomFieldsError(
        f"Custom fields schema validation failed: value for '{name}' must be a string, "
        f"got {type(value).__name__}"
    )


def coerce_custom_fields(value: Any) -> Dict[str, str]:
    """Return a string-only copy of a customFields payload.

    ``None`` becomes ``{}``, scalar values are stringified and ``None`` values
    are dropped. Anything else that is not a string-keyed mapping of scalars
    raises :class:`CustomFieldsError`.
    """
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise CustomFieldsError(
            f"Custom fields schema validation failed: expected an object, got {type(value).__name__}"
        )

    coerced: Dict[str, str] = {}
    for name, raw in value.items():
        if not isinstance(name, str):
            raise CustomFieldsError(
                f"Custom fields schema validation failed: field names must be strings, got {name!r}"
            )
        text = _coerce_value(name, raw)
        if text is not None:
            coerced[name] = text
    return coerced


def validate_custom_fields(custom_fields: Any, *, for_subtask: bool = False) -> Dict[str, str]:
    """Coerce and name-check a customFields payload, raising on failure."""
    coerced = coerce_custom_fields(custom_fields)
    report = validate_custom_field_names(coerced, for_subtask=for_subtask)
    if not report.is_valid:
        raise CustomFieldsError(report.error_message)
    return coerced


def _custom_field_keys(item: Any) -> List[str]:
    if isinstance(item, Mapping) and isinstance(item.get("customFields"), Mapping):
        return list(item["customFields"].keys())
    return []


def create_custom_fields_summary(tasks: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Summarize how custom fields are used across tasks and subtasks."""
    field_counts: Dict[str, int] = {}
    total_tasks = 0
    tasks_with_custom_fields = 0
    subtasks_with_custom_fields = 0

    def count(keys: List[str]) -> None:
        for key in keys:
            field_counts[key] = field_counts.get(key, 0) + 1

    for task in tasks:
        total_tasks += 1
        keys = _custom_field_keys(task)
        if keys:
            tasks_with_custom_fields += 1
            count(keys)
        subtasks = task.get("subtasks") if isinstance(task, Mapping) else None
        for subtask in subtasks or []:
            keys = _custom_field_keys(subtask)
            if keys:
                subtasks_with_custom_fields += 1
                count(keys)

    most_used = None
    for name, usage in field_counts.items():
        if most_used is None or usage > field_counts[most_used]:
            most_used = name

    return {
        "totalTasks": total_tasks,
        "tasksWithCustomFields": tasks_with_custom_fields,
        "subtasksWithCustomFields": subtasks_with_custom_fields,
        "uniqueFieldNames": list(field_counts.keys()),
        "fieldUsageCounts": dict(field_counts),
        "mostUsedField": most_used,
    }
