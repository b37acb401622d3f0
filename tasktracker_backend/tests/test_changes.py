from datetime import datetime

from src.api.changes import (
    Change,
    comment_change,
    creation_changes,
    detect_changes,
    stringify,
    trash_change,
)


class TestScalarFields:
    def test_unchanged_values_produce_nothing(self, stores, users, make_task):
        task = make_task(title="Write docs", description="intro", status="Assigned", priority=2)
        payload = {"title": "Write docs", "description": "intro", "status": "Assigned", "priority": 2}
        result = detect_changes(task, payload, stores.users)
        assert result.changes == []
        assert result.updates == {}
        assert result.changed is False

    def test_changed_fields_in_fixed_order(self, stores, users, make_task):
        task = make_task(title="Old", status="Assigned", priority=1)
        payload = {"priority": 5, "status": "Working on it", "title": "New"}
        result = detect_changes(task, payload, stores.users)
        assert [c.action for c in result.changes] == [
            "Updated Title",
            "Updated Status",
            "Updated Priority",
        ]
        assert result.changes[0] == Change("Updated Title", "title", "Old", "New")
        # raw values are carried, not strings
        assert result.changes[2].old_value == 1
        assert result.changes[2].new_value == 5
        assert result.updates == {"title": "New", "status": "Working on it", "priority": 5}

    def test_integral_float_priority_equals_int(self, stores, users, make_task):
        task = make_task(priority=3)
        assert detect_changes(task, {"priority": 3.0}, stores.users).changes == []

    def test_absent_fields_are_ignored(self, stores, users, make_task):
        task = make_task(title="Keep")
        result = detect_changes(task, {}, stores.users)
        assert result.changed is False


class TestAssignee:
    def test_assign_from_unassigned(self, stores, users, make_task):
        task = make_task(assigned_to=None)
        tony = users["Tony"]
        result = detect_changes(task, {"assigned_to": tony["id"]}, stores.users)
        assert result.changes == [Change("Updated Assignment", "assigned_to", "Unassigned", "Tony")]
        assert result.updates == {"assigned_to": tony["id"]}

    def test_reassign_and_unassign(self, stores, users, make_task):
        task = make_task(assigned_to=users["Tony"]["id"])
        moved = detect_changes(task, {"assigned_to": users["Lamim"]["id"]}, stores.users)
        assert moved.changes[0].old_value == "Tony"
        assert moved.changes[0].new_value == "Lamim"

        cleared = detect_changes(task, {"assigned_to": None}, stores.users)
        assert cleared.changes == [Change("Updated Assignment", "assigned_to", "Tony", "Unassigned")]

    def test_same_assignee_is_no_change(self, stores, users, make_task):
        task = make_task(assigned_to=users["Tony"]["id"])
        assert detect_changes(task, {"assigned_to": users["Tony"]["id"]}, stores.users).changes == []

    def test_unknown_assignee_degrades_to_unknown(self, stores, users, make_task):
        task = make_task(assigned_to=None)
        result = detect_changes(task, {"assigned_to": 9999}, stores.users)
        assert result.changes == [Change("Updated Assignment", "assigned_to", "Unassigned", "Unknown")]
        assert result.updates == {"assigned_to": 9999}


class TestSubTasks:
    def test_identical_list_still_counts_as_change(self, stores, users, make_task):
        items = [{"title": "a", "completed": False}]
        task = make_task(sub_tasks=items)
        for _ in range(3):
            result = detect_changes(task, {"sub_tasks": list(items)}, stores.users)
            assert result.changes == [Change("Updated Sub-tasks", "sub_tasks", None, None)]
            assert result.updates == {"sub_tasks": items}

    def test_empty_list_counts_too(self, stores, users, make_task):
        task = make_task(sub_tasks=[])
        assert len(detect_changes(task, {"sub_tasks": []}, stores.users).changes) == 1


class TestDeadline:
    def test_same_day_different_time_is_no_change(self, stores, users, make_task):
        task = make_task(finished_by=datetime(2025, 4, 1, 0, 0))
        result = detect_changes(task, {"finished_by": datetime(2025, 4, 1, 17, 30)}, stores.users)
        assert result.changes == []

    def test_set_move_and_clear(self, stores, users, make_task):
        task = make_task(finished_by=None)
        set_ = detect_changes(task, {"finished_by": datetime(2025, 4, 1)}, stores.users)
        assert set_.changes == [Change("Updated Finished By", "finished_by", "None", "2025-04-01")]

        task = make_task(finished_by=datetime(2025, 4, 1))
        moved = detect_changes(task, {"finished_by": datetime(2025, 4, 3, 9, 0)}, stores.users)
        assert moved.changes[0].old_value == "2025-04-01"
        assert moved.changes[0].new_value == "2025-04-03"

        cleared = detect_changes(task, {"finished_by": None}, stores.users)
        assert cleared.changes[0].new_value == "None"


class TestDedicatedOperations:
    def test_creation_without_assignee(self, stores, users):
        assert creation_changes("Plan sprint", None, stores.users) == [
            Change("Created", None, None, "Plan sprint")
        ]

    def test_creation_with_assignee(self, stores, users):
        changes = creation_changes("Plan sprint", users["Lamim"]["id"], stores.users)
        assert [c.action for c in changes] == ["Created", "Assigned"]
        assert changes[1] == Change("Assigned", "assigned_to", None, "Lamim")

    def test_trash_and_restore(self):
        assert trash_change(False) == Change("Trashed", "is_trashed", False, True)
        assert trash_change(True) == Change("Restored", "is_trashed", True, False)

    def test_comment(self):
        assert comment_change("looks good") == Change("Added Comment", "comments", None, "looks good")


def test_stringify():
    assert stringify(None) is None
    assert stringify(True) == "true"
    assert stringify(False) == "false"
    assert stringify(4.0) == "4"
    assert stringify(4.5) == "4.5"
    assert stringify(7) == "7"
    assert stringify("Finished") == "Finished"
