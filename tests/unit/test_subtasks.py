"""Unit tests for subtask parent references, validation and integrity reports."""

import logging

from taskfields.subtasks import (
    create_subtask_integrity_report,
    ensure_subtask_parent_ids,
    find_orphaned_subtasks,
    validate_subtask_structure,
)


class TestEnsureSubtaskParentIds:
    """Test cases for parentTaskId repair."""

    def test_non_list_returned_unchanged(self):
        assert ensure_subtask_parent_ids(None) is None
        assert ensure_subtask_parent_ids("tasks") == "tasks"
        assert ensure_subtask_parent_ids({"tasks": []}) == {"tasks": []}

    def test_missing_and_stale_ids_fixed(self):
        tasks = [
            {
                "id": 1,
                "title": "T1",
                "subtasks": [{"id": 1, "title": "S1"}, {"id": 2, "title": "S2", "parentTaskId": 999}],
            }
        ]
        result = ensure_subtask_parent_ids(tasks)
        assert [s["parentTaskId"] for s in result[0]["subtasks"]] == [1, 1]
        # input untouched
        assert "parentTaskId" not in tasks[0]["subtasks"][0]

    def test_every_subtask_points_at_container(self):
        tasks = [
            {"id": task_id, "subtasks": [{"id": n, "parentTaskId": 42} for n in range(1, 4)]}
            for task_id in (3, 7, 11)
        ]
        for task in ensure_subtask_parent_ids(tasks):
            assert all(s["parentTaskId"] == task["id"] for s in task["subtasks"])

    def test_malformed_entries_left_in_place(self):
        tasks = [{"id": 1, "subtasks": [None, 5, {"title": "no id"}]}]
        result = ensure_subtask_parent_ids(tasks)
        assert result[0]["subtasks"][0] is None
        assert result[0]["subtasks"][1] == 5
        assert result[0]["subtasks"][2]["parentTaskId"] == 1

    def test_order_preserved(self):
        tasks = [{"id": 2, "subtasks": [{"id": 3}, {"id": 1}, {"id": 2}]}, {"id": 1}]
        result = ensure_subtask_parent_ids(tasks)
        assert [t["id"] for t in result] == [2, 1]
        assert [s["id"] for s in result[0]["subtasks"]] == [3, 1, 2]

    def test_migration_logging(self, caplog):
        tasks = [{"id": 4, "subtasks": [{"id": 1}, {"id": 2}]}]
        with caplog.at_level(logging.DEBUG, logger="taskfields.migration"):
            ensure_subtask_parent_ids(tasks, log_migrations=True)
        messages = [record.getMessage() for record in caplog.records]
        assert "Auto-assigned parentTaskId 4 to subtask 4.1" in messages
        assert "Subtask validation: Auto-assigned parentTaskId to 2 subtasks" in messages

    def test_no_logging_by_default(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="taskfields.migration"):
            ensure_subtask_parent_ids([{"id": 4, "subtasks": [{"id": 1}]}])
        assert not caplog.records


class TestValidateSubtaskStructure:
    """Test cases for structural validation."""

    def test_non_list(self):
        result = validate_subtask_structure(None)
        assert result.issues == ["Tasks must be an array"]
        assert result.is_valid is False

    def test_fix_issues_repairs_first(self):
        tasks = [{"id": 1, "subtasks": [{"id": 1, "title": "S1"}]}]
        result = validate_subtask_structure(tasks)
        assert result.is_valid
        assert result.tasks[0]["subtasks"][0]["parentTaskId"] == 1

    def test_reports_each_problem_without_fixing(self):
        tasks = [
            {
                "id": 1,
                "subtasks": [
                    {"title": "no id", "parentTaskId": 1},
                    {"id": 2, "title": "no parent"},
                    {"id": 3, "title": "wrong parent", "parentTaskId": 5},
                    {"id": 3, "title": "dup", "parentTaskId": 1},
                    {"id": 4, "parentTaskId": 1},
                ],
            }
        ]
        result = validate_subtask_structure(tasks, fix_issues=False)
        assert result.issues == [
            "Task 1: Subtask at index 0 missing id",
            "Task 1: Subtask 2 missing parentTaskId",
            "Task 1: Subtask 3 has incorrect parentTaskId (5)",
            "Task 1: Duplicate subtask ID 3",
            "Task 1: Subtask 4 missing title",
        ]
        assert result.to_dict()["isValid"] is False

    def test_duplicates_scoped_per_parent(self):
        tasks = [
            {"id": 1, "subtasks": [{"id": 1, "title": "a", "parentTaskId": 1}]},
            {"id": 2, "subtasks": [{"id": 1, "title": "b", "parentTaskId": 2}]},
        ]
        assert validate_subtask_structure(tasks, fix_issues=False).is_valid


class TestFindOrphanedSubtasks:
    """Test cases for orphan detection."""

    def test_orphan_reported_with_context(self):
        tasks = [
            {"id": 1, "subtasks": []},
            {"id": 2, "subtasks": [{"id": 1, "title": "lost", "parentTaskId": 999}]},
        ]
        orphaned = find_orphaned_subtasks(tasks)
        assert len(orphaned) == 1
        assert orphaned[0]["invalidParentId"] == 999
        assert orphaned[0]["actualParentId"] == 2
        assert orphaned[0]["context"] == "Found in task 2 but references non-existent parent 999"
        assert orphaned[0]["title"] == "lost"

    def test_reference_to_other_existing_task_is_not_orphan(self):
        tasks = [{"id": 1}, {"id": 2, "subtasks": [{"id": 1, "parentTaskId": 1}]}]
        assert find_orphaned_subtasks(tasks) == []

    def test_non_list(self):
        assert find_orphaned_subtasks(None) == []

    def test_task_without_id(self):
        tasks = [{"title": "no id", "subtasks": [{"id": 1, "title": "s", "parentTaskId": 7}]}]
        orphaned = find_orphaned_subtasks(tasks)
        assert len(orphaned) == 1
        assert orphaned[0]["actualParentId"] is None
        assert orphaned[0]["invalidParentId"] == 7

        report = create_subtask_integrity_report(tasks)
        assert report["summary"]["orphanedSubtasks"] == 1
        assert report["isHealthy"] is False


class TestIntegrityReport:
    """Test cases for the integrity summary."""

    def test_no_subtasks_scores_plain_hundred(self):
        report = create_subtask_integrity_report([{"id": 1}, {"id": 2, "subtasks": []}])
        assert report["summary"]["integrityScore"] == "100%"
        assert report["summary"]["totalTasks"] == 2
        assert report["isHealthy"] is True

    def test_healthy_subtasks_score_with_decimal(self):
        tasks = [{"id": 1, "subtasks": [{"id": 1, "title": "a", "parentTaskId": 1}]}]
        report = create_subtask_integrity_report(tasks)
        assert report["summary"]["integrityScore"] == "100.0%"
        assert report["isHealthy"] is True

    def test_half_broken(self):
        tasks = [
            {
                "id": 1,
                "subtasks": [
                    {"id": 1, "title": "a", "parentTaskId": 1},
                    {"id": 2, "title": "b"},
                ],
            },
            {
                "id": 2,
                "subtasks": [
                    {"id": 1, "title": "c", "parentTaskId": 2},
                    {"id": 2, "title": "d", "parentTaskId": 999},
                ],
            },
        ]
        report = create_subtask_integrity_report(tasks)
        summary = report["summary"]
        assert summary["tasksWithSubtasks"] == 2
        assert summary["totalSubtasks"] == 4
        assert summary["subtasksWithIssues"] == 2
        assert summary["orphanedSubtasks"] == 1
        assert summary["integrityScore"] == "50.0%"
        assert report["isHealthy"] is False
        assert len(report["issues"]) == 2
