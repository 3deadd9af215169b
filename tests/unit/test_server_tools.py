"""Unit tests for the MCP server's root resolution and tool wiring."""

import json

import pytest

import main


@pytest.fixture(autouse=True)
def clear_root_env(monkeypatch):
    monkeypatch.delenv("TASKFIELDS_PROJECT_ROOT", raising=False)
    monkeypatch.delenv("TASKFIELDS_STORAGE_DIR", raising=False)


class TestResolveRoot:
    """Test cases for project root resolution."""

    def test_explicit_root(self, tmp_path):
        assert main._resolve_root(str(tmp_path)) == tmp_path.resolve()

    def test_explicit_root_must_exist(self, tmp_path):
        with pytest.raises(ValueError, match="does not exist"):
            main._resolve_root(str(tmp_path / "missing"))

    def test_environment_root(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKFIELDS_PROJECT_ROOT", str(tmp_path))
        assert main._resolve_root(None) == tmp_path.resolve()

    def test_environment_root_must_exist(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKFIELDS_PROJECT_ROOT", str(tmp_path / "nope"))
        with pytest.raises(ValueError, match="TASKFIELDS_PROJECT_ROOT"):
            main._resolve_root(None)

    def test_detects_nearest_storage_dir(self, tmp_path, monkeypatch):
        (tmp_path / ".taskmaster").mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert main._resolve_root(None) == tmp_path.resolve()


class TestTools:
    """Test cases for the tool functions."""

    def test_add_and_get_tasks(self, tmp_path):
        root = str(tmp_path)
        main.add_task("Login", custom_fields={"epic": "EPIC-1"}, root=root)
        main.add_task("Dashboard", custom_fields={"epic": "EPIC-2"}, root=root)

        result = main.get_tasks(custom_fields={"epic": "EPIC-1"}, root=root)

        assert [task["title"] for task in result["tasks"]] == ["Login"]

    def test_status_filter(self, tmp_path):
        root = str(tmp_path)
        main.add_task("Login", root=root)
        main.add_task("Dashboard", root=root)
        main.update_task("2", status="done", root=root)

        result = main.get_tasks(status="pending,review", root=root)

        assert [task["id"] for task in result["tasks"]] == [1]

    def test_update_subtask_requires_dotted_id(self, tmp_path):
        result = main.update_subtask("3", status="done", root=str(tmp_path))
        assert result["next_suggested_action"] == "update_task"

    def test_update_subtask_custom_fields(self, tmp_path):
        root = str(tmp_path)
        main.add_task("Login", root=root)
        main.add_subtask("1", "Form", custom_fields={"qa": "kim"}, root=root)

        result = main.update_subtask(
            "1.1", custom_fields={"qa": ""}, custom_fields_operation="unset", root=root
        )

        assert result["task"]["customFields"] == {}

    def test_search_and_reports(self, tmp_path):
        root = str(tmp_path)
        main.add_task("Login", custom_fields={"component": "auth"}, root=root)

        assert main.search_tasks("auth", root=root)["count"] == 1
        assert main.find_relevant_tasks("login", root=root)["metadata"]["totalSearched"] == 1
        assert main.subtask_integrity_report(root=root)["isHealthy"] is True
        assert main.list_custom_fields(root=root)["customFields"] == ["component"]

    def test_custom_fields_resource(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TASKFIELDS_PROJECT_ROOT", str(tmp_path))
        main.add_task("Login", custom_fields={"component": "auth"}, root=str(tmp_path))

        payload = json.loads(main.resource_custom_fields())

        assert payload["customFields"] == ["component"]
