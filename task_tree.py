"""
Goal/task hierarchy.

Every user owns a forest of trees with exactly four levels::

    goal -> large -> medium -> small

A node's children sit exactly one level below it. For any node with children,
``progress`` is the rounded mean of the children's progress and ``status`` is
``completed`` only at 100. Leaves are set directly by the user.

The tree math (``propagate``, ``recompute_ancestors``, ``descendants``) works on
plain in-memory ``TaskNode`` lists and never touches the store. The write side
applies everything one user action produces as a single ``bulk_write``.
"""
import logging
import math
from typing import Any, Dict, List, NamedTuple, Optional

from pymongo import DeleteMany, UpdateOne
from pymongo.database import Database

from database import TASKS, create_document, get_document, serialize, to_object_id, update_document
from errors import NotFoundError, ValidationError
from schemas import TaskCreate, TaskLevel, TaskStatus, TaskUpdate
from timeutils import default_time_provider, parse_date

logger = logging.getLogger(__name__)

TASK_LEVELS = ("goal", "large", "medium", "small")
CHILD_LEVEL: Dict[str, Optional[str]] = {
    "goal": "large",
    "large": "medium",
    "medium": "small",
    "small": None,
}


class TaskNode(NamedTuple):
    id: str
    parent_id: Optional[str]
    level: TaskLevel
    progress: int
    status: TaskStatus


class ProgressUpdate(NamedTuple):
    task_id: str
    progress: int
    status: TaskStatus


def child_level(level: str) -> Optional[str]:
    if level not in CHILD_LEVEL:
        raise ValidationError(f"Unknown task level: {level}")
    return CHILD_LEVEL[level]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def status_for(progress: int) -> TaskStatus:
    return "completed" if progress == 100 else "pending"


def to_node(doc: Dict[str, Any]) -> TaskNode:
    """Typed view of a stored task; missing fields get their defaults."""
    level = doc.get("level") or "goal"
    if level not in CHILD_LEVEL:
        raise ValidationError(f"Unknown task level: {level}")
    return TaskNode(
        id=str(doc.get("id") or doc.get("_id")),
        parent_id=doc.get("parent_id"),
        level=level,
        progress=int(doc.get("progress") or 0),
        status=doc.get("status") or "pending",
    )


def children_of(tasks: List[TaskNode], parent_id: Optional[str]) -> List[TaskNode]:
    return [t for t in tasks if t.parent_id == parent_id]


def descendants(tasks: List[TaskNode], task_id: str) -> List[TaskNode]:
    """All transitive children of ``task_id``, parents before their children."""
    found = []
    frontier = [task_id]
    while frontier:
        current = frontier.pop(0)
        for child in children_of(tasks, current):
            found.append(child)
            frontier.append(child.id)
    return found


def propagate(tasks: List[TaskNode], node_id: Optional[str]) -> List[ProgressUpdate]:
    """Recompute ``node_id`` and each of its ancestors from their children.

    Stops at the root, or at a node without children (such a node is left as
    it is).
    """
    updates: List[ProgressUpdate] = []
    view = {t.id: t for t in tasks}
    current = node_id
    while current is not None:
        node = view.get(current)
        if node is None:
            break
        children = [t for t in view.values() if t.parent_id == current]
        if not children:
            break
        progress = round_half_up(sum(c.progress for c in children) / len(children))
        status = status_for(progress)
        view[current] = node._replace(progress=progress, status=status)
        updates.append(ProgressUpdate(current, progress, status))
        current = node.parent_id
    return updates


def recompute_ancestors(tasks: List[TaskNode], changed_id: str) -> List[ProgressUpdate]:
    changed = next((t for t in tasks if t.id == changed_id), None)
    if changed is None:
        return []
    return propagate(tasks, changed.parent_id)


def _progress_ops(updates: List[ProgressUpdate], now) -> List[UpdateOne]:
    return [
        UpdateOne(
            {"_id": to_object_id(u.task_id, "Task")},
            {"$set": {"progress": u.progress, "status": u.status, "updated_at": now}},
        )
        for u in updates
    ]


def load_nodes(db: Database, user_id: str) -> List[TaskNode]:
    return [to_node(serialize(doc)) for doc in db[TASKS].find({"user_id": user_id})]


def list_tasks(db: Database, user_id: str) -> List[Dict[str, Any]]:
    docs = [serialize(doc) for doc in db[TASKS].find({"user_id": user_id}).sort("created_at", 1)]
    return docs


def build_tree(tasks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest a flat task list into goal trees, keeping the input order of siblings."""
    nodes = {t["id"]: dict(t, children=[]) for t in tasks}
    roots = []
    for task in tasks:
        node = nodes[task["id"]]
        parent = nodes.get(task.get("parent_id")) if task.get("parent_id") else None
        if parent is not None:
            parent["children"].append(node)
        elif task.get("level") == "goal":
            roots.append(node)
    return roots


def add_task(db: Database, payload: TaskCreate) -> Dict[str, Any]:
    if payload.parent_id is None:
        if payload.level != "goal":
            raise ValidationError("Only goals can be created without a parent")
        parent = None
    else:
        parent = get_document(db, TASKS, payload.parent_id, what="Parent task")
        if parent.get("user_id") != payload.user_id:
            raise NotFoundError("Parent task not found")
        expected = child_level(parent.get("level"))
        if expected is None:
            raise ValidationError(f"A {parent.get('level')} task cannot have children")
        if payload.level != expected:
            raise ValidationError(f"Children of a {parent.get('level')} task must be {expected}")

    data = payload.model_dump()
    data.update(
        start_date=parse_date(payload.start_date),
        end_date=parse_date(payload.end_date),
        status="pending",
        progress=0,
        actual_time=0,
    )
    task_id = create_document(db, TASKS, data)

    if parent is not None:
        # the new 0% child lowers the parent mean
        updates = propagate(load_nodes(db, payload.user_id), parent["id"])
        if updates:
            db[TASKS].bulk_write(_progress_ops(updates, default_time_provider.now()), ordered=True)
    return get_document(db, TASKS, task_id, what="Task")


def update_task(db: Database, task_id: str, payload: TaskUpdate) -> Dict[str, Any]:
    fields = payload.model_dump(exclude_unset=True)
    for key in ("start_date", "end_date"):
        if key in fields:
            fields[key] = parse_date(fields[key])
    if not fields:
        raise ValidationError("Nothing to update")
    update_document(db, TASKS, task_id, fields, what="Task")
    return get_document(db, TASKS, task_id, what="Task")


def set_completion(db: Database, task_id: str, completed: bool) -> List[ProgressUpdate]:
    """Toggle a leaf task and bring its ancestors back in line.

    Returns every progress change written, the leaf first.
    """
    task = get_document(db, TASKS, task_id, what="Task")
    nodes = load_nodes(db, task["user_id"])
    if children_of(nodes, task["id"]):
        raise ValidationError("Only tasks without children can be completed directly")

    progress = 100 if completed else 0
    leaf = ProgressUpdate(task["id"], progress, status_for(progress))
    nodes = [n._replace(progress=progress, status=leaf.status) if n.id == task["id"] else n for n in nodes]
    updates = [leaf] + recompute_ancestors(nodes, task["id"])

    db[TASKS].bulk_write(_progress_ops(updates, default_time_provider.now()), ordered=True)
    logger.info("task_completion task_id=%s completed=%s writes=%d", task_id, completed, len(updates))
    return updates


def delete_task(db: Database, task_id: str) -> Dict[str, Any]:
    """Delete a task with its whole subtree, then recompute the former parent's chain."""
    task = get_document(db, TASKS, task_id, what="Task")
    nodes = load_nodes(db, task["user_id"])
    doomed = [task["id"]] + [d.id for d in descendants(nodes, task["id"])]
    remaining = [n for n in nodes if n.id not in set(doomed)]
    updates = propagate(remaining, task.get("parent_id"))

    ops = [DeleteMany({"_id": {"$in": [to_object_id(i, "Task") for i in doomed]}})]
    ops.extend(_progress_ops(updates, default_time_provider.now()))
    db[TASKS].bulk_write(ops, ordered=True)
    logger.info("task_deleted task_id=%s removed=%d recomputed=%d", task_id, len(doomed), len(updates))
    return {"deleted_ids": doomed, "updated": [u._asdict() for u in updates]}
