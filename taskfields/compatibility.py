"""Backward compatibility pass applied to every tasks file on read.

Older files may be in the legacy (untagged) layout, may lack ``customFields``
on tasks and subtasks, and may carry missing or stale ``parentTaskId``
values. The functions here bring any of those shapes to the canonical tagged
form. They are idempotent and preserve task and subtask order.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import utc_timestamp
from .normalization import ensure_custom_fields_on_tasks
from .subtasks import ensure_subtask_parent_ids

MASTER_TAG = "master"
RAW_TAGGED_DATA_KEY = "_rawTaggedData"


def ensure_tasks_backward_compatibility(tasks: Any, log_migrations: bool = False) -> Any:
    """Normalize ``customFields`` and repair ``parentTaskId`` in one pass."""
    if not isinstance(tasks, list):
        return tasks
    return ensure_subtask_parent_ids(ensure_custom_fields_on_tasks(tasks), log_migrations)


def ensure_tag_data_backward_compatibility(tag_data: Any) -> Any:
    """Apply the compatibility pass to ``tag_data["tasks"]`` when present."""
    if not tag_data or not isinstance(tag_data, dict) or not tag_data.get("tasks"):
        return tag_data
    return {**tag_data, "tasks": ensure_tasks_backward_compatibility(tag_data["tasks"])}


def default_master_metadata() -> Dict[str, str]:
    now = utc_timestamp()
    return {"created": now, "updated": now, "description": "Tasks for master context"}


def migrate_legacy_format_with_custom_fields(legacy_data: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a legacy ``{"tasks": [...]}`` object into the tagged layout."""
    metadata = legacy_data.get("metadata")
    return {
        MASTER_TAG: {
            "tasks": ensure_tasks_backward_compatibility(legacy_data.get("tasks")),
            "metadata": metadata if metadata is not None else default_master_metadata(),
        }
    }


def _is_tag_entry(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("tasks"), list)


def ensure_data_backward_compatibility(data: Any, is_legacy_format: bool = False) -> Any:
    """Bring a whole tasks file to the canonical shape.

    In tagged form every top-level value holding a ``tasks`` list is processed;
    any other top-level key is passed through as-is.
    """
    if not data:
        return data
    if is_legacy_format:
        return migrate_legacy_format_with_custom_fields(data)

    processed = {}
    for tag_name, value in data.items():
        if _is_tag_entry(value):
            processed[tag_name] = ensure_tag_data_backward_compatibility(value)
        else:
            processed[tag_name] = value
    return processed


def has_tagged_structure(data: Any) -> bool:
    """True when any top-level value looks like a tag (``{"tasks": [...]}``)."""
    if not isinstance(data, dict):
        return False
    return any(_is_tag_entry(value) for value in data.values())


def is_legacy_format(data: Any) -> bool:
    """Detect the untagged layout: a root ``tasks`` list and no nested tags."""
    return (
        isinstance(data, dict)
        and isinstance(data.get("tasks"), list)
        and RAW_TAGGED_DATA_KEY not in data
        and not has_tagged_structure(data)
    )


def create_backward_compatible_result(
    tag_data: Dict[str, Any], resolved_tag: str, original_tagged_data: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Shape a single tag's data as returned by the read path."""
    compatible = ensure_tag_data_backward_compatibility(tag_data)
    return {**compatible, "tag": resolved_tag, RAW_TAGGED_DATA_KEY: original_tagged_data}


def create_master_fallback_result(
    master_data: Dict[str, Any], original_tagged_data: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Read-path result used when the requested tag does not exist."""
    return create_backward_compatible_result(master_data, MASTER_TAG, original_tagged_data)
