"""Unit tests for the on-disk task store.

This module tests reading, migrating, writing and updating the tasks
file through :class:`Workspace`.
"""

import json
import tempfile
from pathlib import Path

import pytest

from taskfields.errors import CustomFieldsError, TaskFieldsError, TaskNotFoundError
from taskfields.workspace import Workspace, parse_task_id


def write_raw(workspace, data):
    workspace.tasks_path.write_text(json.dumps(data), encoding="utf-8")


def read_raw(workspace):
    return json.loads(workspace.tasks_path.read_text(encoding="utf-8"))


class TestWorkspaceInitialization:
    """Test cases for workspace initialization."""

    def test_workspace_creation(self, tmp_path):
        """Test creating a new workspace."""
        workspace = Workspace(tmp_path)

        assert workspace.root == tmp_path.resolve()
        assert workspace.base_dir == tmp_path / ".taskmaster"
        assert workspace.tasks_path == tmp_path / ".taskmaster" / "tasks" / "tasks.json"
        assert workspace.state_path == tmp_path / ".taskmaster" / "state.json"
        assert workspace.tasks_dir.exists()

    def test_workspace_with_custom_storage_dir(self, tmp_path, monkeypatch):
        """Test workspace with custom storage directory."""
        monkeypatch.setenv("TASKFIELDS_STORAGE_DIR", ".custom-tasks")
        workspace = Workspace(tmp_path)

        assert workspace.base_dir == tmp_path / ".custom-tasks"
        assert workspace.tasks_dir.exists()

    def test_workspace_with_string_path(self):
        """Test workspace creation with string path."""
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Workspace(temp_dir)
            assert workspace.root == Path(temp_dir).resolve()


class TestParseTaskId:
    """Test cases for dotted id parsing."""

    def test_task_and_subtask_ids(self):
        assert parse_task_id(5) == ("5", None)
        assert parse_task_id("5.2") == ("5", "2")

    @pytest.mark.parametrize("value", ["", "5.", ".2"])
    def test_invalid(self, value):
        with pytest.raises(TaskFieldsError):
            parse_task_id(value)


class TestReadTasks:
    """Test cases for the read path."""

    def test_missing_file_reads_empty(self, tmp_path):
        data = Workspace(tmp_path).read_tasks()
        assert data["tasks"] == []
        assert data["tag"] == "master"

    def test_legacy_file_migrated_on_read(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(
            workspace,
            {"tasks": [{"id": 1, "title": "T1", "subtasks": [{"id": 1, "title": "S1", "parentTaskId": 9}]}]},
        )

        data = workspace.read_tasks()

        task = data["tasks"][0]
        assert data["tag"] == "master"
        assert task["customFields"] == {}
        assert task["subtasks"][0]["parentTaskId"] == 1
        assert data["metadata"]["description"] == "Tasks for master context"

    def test_tagged_file_reads_requested_tag(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(
            workspace,
            {"master": {"tasks": [{"id": 1, "title": "M"}]}, "dev": {"tasks": [{"id": 7, "title": "D"}]}},
        )

        assert workspace.read_tasks("dev")["tasks"][0]["id"] == 7
        assert workspace.read_tasks()["tasks"][0]["id"] == 1

    def test_unknown_tag_falls_back_to_master(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(workspace, {"master": {"tasks": [{"id": 1, "title": "M"}]}})

        data = workspace.read_tasks("missing")

        assert data["tag"] == "master"
        assert data["tasks"][0]["id"] == 1

    def test_current_tag_from_state(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.state_path.write_text(json.dumps({"currentTag": "dev"}))
        write_raw(workspace, {"master": {"tasks": []}, "dev": {"tasks": [{"id": 2, "title": "D"}]}})

        assert workspace.current_tag() == "dev"
        assert workspace.read_tasks()["tasks"][0]["id"] == 2

    def test_invalid_json_raises(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.tasks_path.write_text("{not json")

        with pytest.raises(TaskFieldsError, match="Could not parse"):
            workspace.read_tasks()

    def test_load_tasks_skips_entries_without_id(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(workspace, {"master": {"tasks": [{"id": 1, "title": "A"}, {"title": "no id"}, None]}})

        assert [task.id for task in workspace.load_tasks()] == [1]


class TestWriteTasks:
    """Test cases for the write path."""

    def test_write_normalizes(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.write_tasks([{"id": 1, "title": "A", "subtasks": [{"id": 1, "title": "S"}]}])

        stored = read_raw(workspace)["master"]["tasks"][0]
        assert stored["customFields"] == {}
        assert stored["subtasks"][0]["customFields"] == {}
        assert stored["subtasks"][0]["parentTaskId"] == 1

    def test_write_keeps_other_tags(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(workspace, {"master": {"tasks": []}, "dev": {"tasks": [{"id": 9, "title": "D"}]}})

        workspace.write_tasks([{"id": 1, "title": "A"}])

        raw = read_raw(workspace)
        assert raw["dev"]["tasks"][0]["id"] == 9
        assert raw["master"]["tasks"][0]["id"] == 1
        assert raw["master"]["metadata"]["updated"].endswith("Z")

    def test_write_converts_legacy_file(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(workspace, {"tasks": [{"id": 1, "title": "Old"}]})

        workspace.write_tasks(workspace.read_tasks()["tasks"])

        assert "tasks" not in read_raw(workspace)
        assert read_raw(workspace)["master"]["tasks"][0]["title"] == "Old"


class TestCreation:
    """Test cases for adding tasks and subtasks."""

    def test_add_task_assigns_next_id(self, tmp_path):
        workspace = Workspace(tmp_path)
        first = workspace.add_task("First")
        second = workspace.add_task("Second", custom_fields={"epic": "E-1", "points": 3})

        assert (first.id, second.id) == (1, 2)
        stored = read_raw(workspace)["master"]["tasks"][1]
        assert stored["customFields"] == {"epic": "E-1", "points": "3"}
        assert stored["status"] == "pending"
        assert stored["priority"] == "medium"

    def test_add_task_rejects_reserved_custom_field(self, tmp_path):
        workspace = Workspace(tmp_path)

        with pytest.raises(CustomFieldsError):
            workspace.add_task("Bad", custom_fields={"status": "done"})
        assert not workspace.tasks_path.exists()

    def test_add_task_requires_title(self, tmp_path):
        with pytest.raises(TaskFieldsError):
            Workspace(tmp_path).add_task("   ")

    def test_add_task_rejects_bad_priority(self, tmp_path):
        workspace = Workspace(tmp_path)

        with pytest.raises(TaskFieldsError, match="Invalid priority: urgent"):
            workspace.add_task("Login", priority="urgent")
        assert workspace.read_tasks()["tasks"] == []

    def test_add_subtask_requires_title(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.add_task("Parent")

        with pytest.raises(TaskFieldsError, match="Subtask title is required"):
            workspace.add_subtask(1, "  ")

    def test_add_subtask_sets_parent(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.add_task("Parent")

        subtask = workspace.add_subtask("1", "Child", custom_fields={"qa": "kim"})

        assert subtask.id == 1
        assert subtask.parent_task_id == 1
        stored = read_raw(workspace)["master"]["tasks"][0]["subtasks"][0]
        assert stored["parentTaskId"] == 1
        assert stored["customFields"] == {"qa": "kim"}

    def test_add_subtask_rejects_parent_task_id_field(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.add_task("Parent")

        with pytest.raises(CustomFieldsError):
            workspace.add_subtask(1, "Child", custom_fields={"parentTaskId": "2"})

    def test_add_subtask_missing_parent(self, tmp_path):
        with pytest.raises(TaskNotFoundError, match="Task 42 not found"):
            Workspace(tmp_path).add_subtask(42, "Child")


class TestUpdates:
    """Test cases for custom field and core updates."""

    @pytest.fixture
    def workspace(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.add_task("Login", custom_fields={"epic": "E-1", "sprint": "S1"})
        workspace.add_subtask(1, "Form", custom_fields={"qa": "kim"})
        return workspace

    def test_merge(self, workspace):
        result = workspace.update_custom_fields("1", {"sprint": "S2", "component": "auth"})
        assert result == {"epic": "E-1", "sprint": "S2", "component": "auth"}

    def test_set(self, workspace):
        assert workspace.update_custom_fields("1", {"risk": "high"}, "set") == {"risk": "high"}

    def test_unset_with_names(self, workspace):
        assert workspace.update_custom_fields("1", ["sprint"], "unset") == {"epic": "E-1"}

    def test_subtask_dotted_id(self, workspace):
        result = workspace.update_custom_fields("1.1", {"qa": "lee"})
        assert result == {"qa": "lee"}
        assert read_raw(workspace)["master"]["tasks"][0]["subtasks"][0]["customFields"] == {"qa": "lee"}

    def test_missing_task(self, workspace):
        with pytest.raises(TaskNotFoundError) as excinfo:
            workspace.update_custom_fields("9", {"a": "b"})
        assert excinfo.value.task_id == "9"

    def test_missing_subtask(self, workspace):
        with pytest.raises(TaskNotFoundError, match="Subtask 1.7 not found"):
            workspace.update_custom_fields("1.7", {"a": "b"})

    def test_invalid_operation(self, workspace):
        with pytest.raises(ValueError):
            workspace.update_custom_fields("1", {"a": "b"}, "replace")

    def test_update_task_core_and_custom(self, workspace):
        item = workspace.update_task("1", {"status": "done"}, custom_fields={"sprint": "S3"})
        assert item["status"] == "done"
        assert item["customFields"]["sprint"] == "S3"

    def test_update_task_rejects_unknown_field(self, workspace):
        with pytest.raises(TaskFieldsError, match="customFields"):
            workspace.update_task("1", {"epic": "E-2"})

    def test_update_task_rejects_bad_status(self, workspace):
        with pytest.raises(TaskFieldsError, match="Invalid status"):
            workspace.update_task("1.1", {"status": "finished"})

    def test_update_task_rejects_blank_title(self, workspace):
        with pytest.raises(TaskFieldsError, match="Title is required"):
            workspace.update_task("1", {"title": ""})
        assert read_raw(workspace)["master"]["tasks"][0]["title"] == "Login"

    def test_update_subtask_rejects_blank_title(self, workspace):
        with pytest.raises(TaskFieldsError, match="Subtask title is required"):
            workspace.update_task("1.1", {"title": ""})

    def test_get_task(self, workspace):
        assert workspace.get_task("1").title == "Login"
        assert workspace.get_task("1.1").title == "Form"
        with pytest.raises(TaskNotFoundError):
            workspace.get_task("1.5")


class TestQueries:
    """Test cases for listing, search and reports."""

    @pytest.fixture
    def workspace(self, tmp_path):
        workspace = Workspace(tmp_path)
        workspace.add_task("Login", custom_fields={"epic": "EPIC-1234", "component": "auth"})
        workspace.add_task("Dashboard", custom_fields={"epic": "EPIC-5678", "component": "ui"})
        workspace.add_task("Sessions", custom_fields={"epic": "EPIC-1234", "component": "backend"})
        return workspace

    def test_list_tasks_filters(self, workspace):
        assert [t.id for t in workspace.list_tasks({"epic": "EPIC-1234"})] == [1, 3]
        assert [t.id for t in workspace.list_tasks()] == [1, 2, 3]

    def test_available_custom_fields(self, workspace):
        assert workspace.available_custom_fields() == ["epic", "component"]

    def test_search(self, workspace):
        assert [r.item.id for r in workspace.search_tasks("EPIC-5678")] == [2]

    def test_find_relevant_tasks(self, workspace):
        results = workspace.find_relevant_tasks("Dashboard widgets", max_results=3)
        assert results.results[0].id == 2

    def test_custom_fields_summary(self, workspace):
        summary = workspace.custom_fields_summary()
        assert summary["fieldUsageCounts"] == {"epic": 3, "component": 3}

    def test_integrity_report_reads_raw_file(self, tmp_path):
        workspace = Workspace(tmp_path)
        write_raw(workspace, {"tasks": [{"id": 1, "subtasks": [{"id": 1, "title": "S"}]}]})

        report = workspace.subtask_integrity_report()

        assert report["summary"]["subtasksWithIssues"] == 1
        assert report["summary"]["integrityScore"] == "0.0%"
        assert report["isHealthy"] is False

    def test_integrity_report_empty(self, tmp_path):
        report = Workspace(tmp_path).subtask_integrity_report()
        assert report["summary"]["integrityScore"] == "100%"
