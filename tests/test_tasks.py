"""
Tests for the task tree.
"""

import pytest

from core import tasks as tree
from core.exceptions import InvalidOperationError, NotFoundError
from core.models import Task, TaskStatus


def ids(tasks):
    return [t.id for t in tasks]


@pytest.fixture
def sample_tree():
    """root -> child -> grandchild, plus a second root."""
    tasks: list[Task] = []
    root = tree.add_task(tasks, "Root")
    child = tree.add_task(tasks, "Child", parent_id=root.id)
    grandchild = tree.add_task(tasks, "Grandchild", parent_id=child.id)
    other = tree.add_task(tasks, "Other")
    return tasks, root, child, grandchild, other


class TestTaskTree:
    """Test structural operations on the task tree."""

    def test_add_root_and_child(self, sample_tree):
        """Children are nested under their parent and carry its id."""
        tasks, root, child, grandchild, other = sample_tree
        assert ids(tasks) == [root.id, other.id]
        assert tasks[0].children[0].id == child.id
        assert child.parentId == root.id
        assert grandchild.parentId == child.id
        assert child.status == TaskStatus.PENDING

    def test_add_requires_title(self):
        """An empty title is rejected."""
        with pytest.raises(InvalidOperationError):
            tree.add_task([], "")

    def test_add_unknown_parent(self):
        """Adding under a missing parent raises NotFoundError."""
        with pytest.raises(NotFoundError):
            tree.add_task([], "Orphan", parent_id="missing")

    def test_remove_drops_subtree(self, sample_tree):
        """Removing a task removes its descendants."""
        tasks, root, child, grandchild, other = sample_tree
        assert tree.remove_task(tasks, child.id) is True
        assert tree.find_task(tasks, grandchild.id) is None
        assert tree.remove_task(tasks, child.id) is False

    def test_move_under_descendant_rejected(self, sample_tree):
        """A task cannot become a descendant of itself."""
        tasks, root, child, grandchild, other = sample_tree
        with pytest.raises(InvalidOperationError):
            tree.move_task(tasks, root.id, grandchild.id)
        with pytest.raises(InvalidOperationError):
            tree.move_task(tasks, root.id, root.id)
        # Tree untouched after the failed move
        assert tree.ancestor_ids(tasks, grandchild.id) == [child.id, root.id]

    def test_move_to_other_parent_and_root(self, sample_tree):
        """Moving detaches from the old parent before attaching to the new one."""
        tasks, root, child, grandchild, other = sample_tree
        assert tree.move_task(tasks, child.id, other.id) is True
        assert root.children == []
        assert ids(other.children) == [child.id]
        assert tree.ancestor_ids(tasks, grandchild.id) == [child.id, other.id]

        assert tree.move_task(tasks, child.id, None) is True
        assert ids(tasks) == [root.id, other.id, child.id]
        assert child.parentId is None
        assert sum(1 for t in tree.iter_tasks(tasks) if t.id == child.id) == 1

    def test_move_missing_returns_false(self, sample_tree):
        """Moving an unknown task or onto an unknown parent is a no-op."""
        tasks, root, *_ = sample_tree
        assert tree.move_task(tasks, "missing", None) is False
        assert tree.move_task(tasks, root.id, "missing") is False

    def test_set_status_validates(self, sample_tree):
        """Only the four statuses are accepted."""
        tasks, root, *_ = sample_tree
        assert tree.set_task_status(tasks, root.id, "in-progress").status == TaskStatus.IN_PROGRESS
        with pytest.raises(InvalidOperationError):
            tree.set_task_status(tasks, root.id, "done")
        assert tree.set_task_status(tasks, "missing", "completed") is None

    def test_edit(self, sample_tree):
        """Title and description are updated independently."""
        tasks, root, *_ = sample_tree
        tree.edit_task(tasks, root.id, description="details")
        assert root.title == "Root"
        assert root.description == "details"
        assert tree.edit_task(tasks, "missing", title="x") is None


class TestTaskListing:
    """Test flat, root-only and subtree listings."""

    def test_flat_listing_preorder(self, sample_tree):
        """Flat listings are pre-order and childless."""
        tasks, root, child, grandchild, other = sample_tree
        flat = tree.list_tasks(tasks, flat=True)
        assert ids(flat) == [root.id, child.id, grandchild.id, other.id]
        assert all(t.children == [] for t in flat)

    def test_root_only(self, sample_tree):
        """Root-only listings drop children."""
        tasks, root, child, grandchild, other = sample_tree
        roots = tree.list_tasks(tasks, root_only=True)
        assert ids(roots) == [root.id, other.id]
        assert roots[0].children == []

    def test_listing_is_a_copy(self, sample_tree):
        """Mutating a listing leaves the tree alone."""
        tasks, root, *_ = sample_tree
        listed = tree.list_tasks(tasks)
        listed[0].title = "Changed"
        assert root.title == "Root"

    def test_subtree(self, sample_tree):
        """Subtrees are rooted at the requested task."""
        tasks, root, child, grandchild, other = sample_tree
        assert ids(tree.get_subtree(tasks, child.id, flat=True)) == [child.id, grandchild.id]
        assert tree.get_subtree(tasks, "missing") is None


class TestRebuildTree:
    """Test rebuilding trees from older flat records."""

    def test_flat_list_with_parent_ids(self):
        """A flat list becomes a nested tree following parentId."""
        flat = [
            Task(id="a", title="A"),
            Task(id="b", title="B", parentId="a"),
            Task(id="c", title="C", parentId="b"),
        ]
        roots = tree.rebuild_tree(flat)
        assert ids(roots) == ["a"]
        assert ids(roots[0].children) == ["b"]
        assert ids(roots[0].children[0].children) == ["c"]

    def test_unknown_parent_becomes_root(self):
        """Nodes pointing at a missing parent are promoted to roots."""
        roots = tree.rebuild_tree([Task(id="a", title="A", parentId="ghost")])
        assert ids(roots) == ["a"]
        assert roots[0].parentId is None

    def test_cycle_broken(self):
        """A parentId cycle is broken so every node is reachable exactly once."""
        roots = tree.rebuild_tree([
            Task(id="a", title="A", parentId="b"),
            Task(id="b", title="B", parentId="a"),
        ])
        assert ids(roots) == ["a"]
        assert ids(roots[0].children) == ["b"]
        assert sorted(t.id for t in tree.iter_tasks(roots)) == ["a", "b"]

    def test_duplicates_dropped(self):
        """A node listed twice appears once."""
        roots = tree.rebuild_tree([Task(id="a", title="A"), Task(id="a", title="A again")])
        assert ids(roots) == ["a"]
