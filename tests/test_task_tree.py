"""Tests for task_tree.py: pure propagation and the store-backed operations."""

import pytest

import task_tree
from database import TASKS
from errors import NotFoundError, ValidationError
from schemas import TaskCreate
from task_tree import ProgressUpdate, TaskNode


def node(id, parent_id, level, progress=0):
    return TaskNode(id, parent_id, level, progress, "completed" if progress == 100 else "pending")


class TestPurePropagation:
    def test_half_completed_children(self):
        tasks = [
            node("g", None, "goal"),
            node("l", "g", "large"),
            node("s1", "l", "small", 100),
            node("s2", "l", "small", 0),
        ]
        updates = task_tree.recompute_ancestors(tasks, "s1")
        assert updates == [ProgressUpdate("l", 50, "pending"), ProgressUpdate("g", 50, "pending")]

    def test_all_children_completed(self):
        tasks = [
            node("g", None, "goal"),
            node("l", "g", "large", 50),
            node("s1", "l", "small", 100),
            node("s2", "l", "small", 100),
        ]
        updates = task_tree.recompute_ancestors(tasks, "s2")
        assert updates[0] == ProgressUpdate("l", 100, "completed")
        assert updates[1] == ProgressUpdate("g", 100, "completed")

    def test_mean_rounds_half_up(self):
        tasks = [
            node("m", None, "medium"),
            node("a", "m", "small", 100),
            node("b", "m", "small", 0),
            node("c", "m", "small", 0),
            node("d", "m", "small", 50),
        ]
        # (100 + 0 + 0 + 50) / 4 = 37.5
        assert task_tree.propagate(tasks, "m") == [ProgressUpdate("m", 38, "pending")]

    def test_propagate_from_root_parent_is_noop(self):
        tasks = [node("g", None, "goal", 0)]
        assert task_tree.propagate(tasks, None) == []
        assert task_tree.recompute_ancestors(tasks, "g") == []

    def test_node_without_children_stops_propagation(self):
        tasks = [node("g", None, "goal"), node("l", "g", "large", 40)]
        assert task_tree.propagate(tasks, "l") == []

    def test_ancestor_sees_updated_intermediate_values(self):
        tasks = [
            node("g", None, "goal"),
            node("l1", "g", "large", 0),
            node("l2", "g", "large", 100),
            node("m", "l1", "medium", 0),
            node("s", "m", "small", 100),
        ]
        updates = task_tree.recompute_ancestors(tasks, "s")
        assert [u.task_id for u in updates] == ["m", "l1", "g"]
        assert updates[-1] == ProgressUpdate("g", 100, "completed")

    def test_descendants_are_transitive(self):
        tasks = [
            node("g", None, "goal"),
            node("l", "g", "large"),
            node("m", "l", "medium"),
            node("s1", "m", "small"),
            node("s2", "m", "small"),
            node("other", None, "goal"),
        ]
        assert {t.id for t in task_tree.descendants(tasks, "l")} == {"m", "s1", "s2"}

    def test_child_levels(self):
        assert task_tree.child_level("goal") == "large"
        assert task_tree.child_level("medium") == "small"
        assert task_tree.child_level("small") is None
        with pytest.raises(ValidationError):
            task_tree.child_level("epic")


def _add(db, user_id, title, level="goal", parent_id=None):
    return task_tree.add_task(db, TaskCreate(user_id=user_id, level=level, parent_id=parent_id, title=title))


def _progress(db, task):
    doc = db[TASKS].find_one({"title": task["title"]})
    return doc["progress"], doc["status"]


@pytest.fixture
def chain(db, student):
    goal = _add(db, student.id, "Pass the entrance exam")
    large = _add(db, student.id, "Math", "large", goal["id"])
    medium = _add(db, student.id, "Calculus", "medium", large["id"])
    s1 = _add(db, student.id, "Limits", "small", medium["id"])
    s2 = _add(db, student.id, "Derivatives", "small", medium["id"])
    return {"goal": goal, "large": large, "medium": medium, "s1": s1, "s2": s2}


class TestStoreOperations:
    def test_new_task_defaults(self, chain):
        assert chain["s1"]["progress"] == 0
        assert chain["s1"]["status"] == "pending"
        assert chain["s1"]["parent_id"] == chain["medium"]["id"]

    def test_child_level_must_match_parent(self, db, student, chain):
        with pytest.raises(ValidationError):
            _add(db, student.id, "Skip a level", "small", chain["goal"]["id"])
        with pytest.raises(ValidationError):
            _add(db, student.id, "Below small", "small", chain["s1"]["id"])
        with pytest.raises(ValidationError):
            _add(db, student.id, "Orphan", "large")

    def test_parent_of_another_user_is_rejected(self, db, other_student, chain):
        with pytest.raises(NotFoundError):
            _add(db, other_student.id, "Not mine", "large", chain["goal"]["id"])

    def test_completion_propagates_to_every_ancestor(self, db, chain):
        task_tree.set_completion(db, chain["s1"]["id"], True)
        assert _progress(db, chain["s1"]) == (100, "completed")
        assert _progress(db, chain["medium"]) == (50, "pending")
        assert _progress(db, chain["large"]) == (50, "pending")
        assert _progress(db, chain["goal"]) == (50, "pending")

        task_tree.set_completion(db, chain["s2"]["id"], True)
        assert _progress(db, chain["medium"]) == (100, "completed")
        assert _progress(db, chain["goal"]) == (100, "completed")

        task_tree.set_completion(db, chain["s1"]["id"], False)
        assert _progress(db, chain["s1"]) == (0, "pending")
        assert _progress(db, chain["goal"]) == (50, "pending")

    def test_only_leaves_can_be_toggled(self, db, chain):
        with pytest.raises(ValidationError):
            task_tree.set_completion(db, chain["medium"]["id"], True)

    def test_adding_child_reopens_completed_parent(self, db, student, chain):
        task_tree.set_completion(db, chain["s1"]["id"], True)
        task_tree.set_completion(db, chain["s2"]["id"], True)
        _add(db, student.id, "Integrals", "small", chain["medium"]["id"])
        assert _progress(db, chain["medium"]) == (67, "pending")
        assert _progress(db, chain["goal"]) == (67, "pending")

    def test_adding_child_lowers_partly_done_parent(self, db, student, chain):
        task_tree.set_completion(db, chain["s1"]["id"], True)
        assert _progress(db, chain["medium"]) == (50, "pending")
        _add(db, student.id, "Integrals", "small", chain["medium"]["id"])
        assert _progress(db, chain["medium"]) == (33, "pending")
        assert _progress(db, chain["large"]) == (33, "pending")
        assert _progress(db, chain["goal"]) == (33, "pending")

    def test_adding_child_keeps_fresh_chain_at_zero(self, db, student, chain):
        _add(db, student.id, "Integrals", "small", chain["medium"]["id"])
        assert _progress(db, chain["medium"]) == (0, "pending")
        assert _progress(db, chain["goal"]) == (0, "pending")

    def test_delete_cascades_and_recomputes_parent(self, db, student, chain):
        second = _add(db, student.id, "English", "large", chain["goal"]["id"])
        m2 = _add(db, student.id, "Vocabulary", "medium", second["id"])
        s3 = _add(db, student.id, "Word list", "small", m2["id"])
        task_tree.set_completion(db, s3["id"], True)
        assert _progress(db, chain["goal"]) == (50, "pending")

        result = task_tree.delete_task(db, chain["large"]["id"])

        assert len(result["deleted_ids"]) == 4
        assert db[TASKS].count_documents({}) == 4
        assert _progress(db, chain["goal"]) == (100, "completed")

    def test_build_tree_nests_levels(self, db, student, chain):
        forest = task_tree.build_tree(task_tree.list_tasks(db, student.id))
        assert len(forest) == 1
        medium = forest[0]["children"][0]["children"][0]
        assert [c["title"] for c in medium["children"]] == ["Limits", "Derivatives"]
