"""
Task tree operations.

The tree is a list of root ``Task`` nodes with nested ``children``. Parent
links are stored only as ``parentId`` strings. Structural changes always
detach the node first and then reattach it, so a node is never reachable from
two places at once. All functions mutate the list they are given.
"""

import uuid
from typing import Iterator

from .exceptions import InvalidOperationError, NotFoundError
from .models import Task, TaskStatus, now_iso


def iter_tasks(tasks: list[Task]) -> Iterator[Task]:
    """Depth-first pre-order walk over the whole tree."""
    for task in tasks:
        yield task
        yield from iter_tasks(task.children)


def find_task(tasks: list[Task], task_id: str) -> Task | None:
    for task in iter_tasks(tasks):
        if task.id == task_id:
            return task
    return None


def _container_of(tasks: list[Task], task_id: str) -> list[Task] | None:
    """The list that directly holds ``task_id``, whatever its ``parentId`` says."""
    if any(t.id == task_id for t in tasks):
        return tasks
    for task in tasks:
        found = _container_of(task.children, task_id)
        if found is not None:
            return found
    return None


def is_descendant(tasks: list[Task], candidate_id: str, ancestor_id: str) -> bool:
    """True if ``candidate_id`` is ``ancestor_id`` or lies anywhere below it."""
    ancestor = find_task(tasks, ancestor_id)
    if ancestor is None:
        return False
    return any(t.id == candidate_id for t in iter_tasks([ancestor]))


def ancestor_ids(tasks: list[Task], task_id: str) -> list[str]:
    """Ids from the task's parent up to its root, following ``parentId``."""
    chain: list[str] = []
    seen: set[str] = set()
    current = find_task(tasks, task_id)
    while current is not None and current.parentId is not None:
        if current.parentId in seen:
            raise InvalidOperationError(f"Cycle detected above task {task_id}")
        seen.add(current.parentId)
        chain.append(current.parentId)
        current = find_task(tasks, current.parentId)
    return chain


def validate_status(status: str | TaskStatus) -> TaskStatus:
    try:
        return TaskStatus(status)
    except ValueError:
        raise InvalidOperationError(f"Invalid task status: {status}") from None


def add_task(
    tasks: list[Task],
    title: str,
    description: str = "",
    parent_id: str | None = None,
) -> Task:
    """Create a pending task at the root or under ``parent_id``."""
    if not title or not isinstance(title, str):
        raise InvalidOperationError("Task title is required")
    task = Task(id=str(uuid.uuid4()), title=title, description=description or "", parentId=parent_id)
    if parent_id is None:
        tasks.append(task)
    else:
        parent = find_task(tasks, parent_id)
        if parent is None:
            raise NotFoundError("Task", parent_id)
        parent.children.append(task)
        parent.updatedAt = now_iso()
    return task


def detach_task(tasks: list[Task], task_id: str) -> Task | None:
    """Unlink a task (with its subtree) from the tree and return it."""
    task = find_task(tasks, task_id)
    container = _container_of(tasks, task_id)
    if task is None or container is None:
        return None
    container[:] = [t for t in container if t.id != task_id]
    return task


def remove_task(tasks: list[Task], task_id: str) -> bool:
    """Delete a task and all of its descendants."""
    return detach_task(tasks, task_id) is not None


def edit_task(
    tasks: list[Task],
    task_id: str,
    title: str | None = None,
    description: str | None = None,
) -> Task | None:
    task = find_task(tasks, task_id)
    if task is None:
        return None
    if title is not None:
        task.title = title
    if description is not None:
        task.description = description
    task.updatedAt = now_iso()
    return task


def set_task_status(tasks: list[Task], task_id: str, status: str | TaskStatus) -> Task | None:
    valid = validate_status(status)
    task = find_task(tasks, task_id)
    if task is None:
        return None
    task.status = valid
    task.updatedAt = now_iso()
    return task


def move_task(tasks: list[Task], task_id: str, new_parent_id: str | None) -> bool:
    """
    Reparent a task, or move it to the root when ``new_parent_id`` is None.

    Returns:
        False if the task or the new parent does not exist

    Raises:
        InvalidOperationError: If the new parent is the task itself or one of
            its descendants
    """
    task = find_task(tasks, task_id)
    if task is None:
        return False
    if new_parent_id is not None:
        if find_task(tasks, new_parent_id) is None:
            return False
        if is_descendant(tasks, new_parent_id, task_id):
            raise InvalidOperationError(
                f"Cannot move task {task_id} under itself or one of its descendants"
            )

    detached = detach_task(tasks, task_id)
    assert detached is not None
    detached.parentId = new_parent_id
    detached.updatedAt = now_iso()
    if new_parent_id is None:
        tasks.append(detached)
    else:
        parent = find_task(tasks, new_parent_id)
        assert parent is not None
        parent.children.append(detached)
    return True


def rebuild_tree(tasks: list[Task]) -> list[Task]:
    """
    Rebuild a consistent tree from a possibly flat or inconsistent task list.

    Used when loading older records, where tasks were a flat list. A node is
    attached to its ``parentId`` (or the node it was nested under) when that
    parent exists and the link does not close a cycle; otherwise it becomes
    a root.
    """
    parents: dict[str, str | None] = {}
    nodes: dict[str, Task] = {}
    order: list[str] = []

    def collect(items: list[Task], nesting_parent: str | None) -> None:
        for item in items:
            if item.id in nodes:
                continue
            nodes[item.id] = item.flat_copy()
            parents[item.id] = item.parentId or nesting_parent
            order.append(item.id)
            collect(item.children, item.id)

    collect(tasks, None)

    for task_id in order:
        parent = parents[task_id]
        if parent is not None and parent not in nodes:
            parents[task_id] = None
            continue
        seen: set[str] = set()
        while parent is not None and parent not in seen:
            if parent == task_id:
                parents[task_id] = None
                break
            seen.add(parent)
            parent = parents.get(parent)

    roots: list[Task] = []
    for task_id in order:
        node = nodes[task_id]
        node.parentId = parents[task_id]
        if node.parentId is None:
            roots.append(node)
        else:
            nodes[node.parentId].children.append(node)
    return roots


def flatten_tasks(tasks: list[Task]) -> list[Task]:
    """Pre-order list of childless copies; hierarchy stays visible via ``parentId``."""
    return [t.flat_copy() for t in iter_tasks(tasks)]


def list_tasks(tasks: list[Task], flat: bool = False, root_only: bool = False) -> list[Task]:
    if root_only:
        return [t.flat_copy() for t in tasks]
    if flat:
        return flatten_tasks(tasks)
    return [t.model_copy(deep=True) for t in tasks]


def get_subtree(tasks: list[Task], task_id: str, flat: bool = False) -> list[Task] | None:
    task = find_task(tasks, task_id)
    if task is None:
        return None
    if flat:
        return flatten_tasks([task])
    return [task.model_copy(deep=True)]
