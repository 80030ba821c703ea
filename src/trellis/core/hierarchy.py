"""Parent/child forest built from ``parent_of`` relationships."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from trellis.core.health import DEFAULT_BATCH_SIZE
from trellis.core.ports import RelationshipRepository, TodoRepository
from trellis.core.stats import build_board_snapshot

HIERARCHY_TYPE = "parent_of"

_TASK_FIELDS = ("id", "title", "priority", "status", "category", "color")


def _task_view(todo: Mapping[str, Any]) -> dict[str, Any]:
    return {field: todo.get(field) for field in _TASK_FIELDS}


def _order_key(task: Mapping[str, Any]) -> tuple:
    """Higher priority first, then title ignoring case, then id."""
    return (-task["priority"], task["title"].casefold(), task["title"], task["id"])


def _would_cycle(parent_id: str, child_id: str, parent_by_child: dict[str, str]) -> bool:
    current: str | None = parent_id
    while current is not None:
        if current == child_id:
            return True
        current = parent_by_child.get(current)
    return False


def _build_tree(
    root_id: str,
    tasks_by_id: dict[str, dict[str, Any]],
    children_by_parent: dict[str, list[str]],
) -> dict[str, Any]:
    root = {"id": root_id, "depth": 0, "task": tasks_by_id[root_id], "children": []}
    stack = [root]
    while stack:
        node = stack.pop()
        child_ids = sorted(
            children_by_parent.get(node["id"], ()),
            key=lambda child_id: _order_key(tasks_by_id[child_id]),
        )
        for child_id in child_ids:
            child = {
                "id": child_id,
                "depth": node["depth"] + 1,
                "task": tasks_by_id[child_id],
                "children": [],
            }
            node["children"].append(child)
            stack.append(child)
    return root


def build_task_hierarchy(
    todos: Iterable[Mapping[str, Any]],
    relationships: Iterable[Mapping[str, Any]],
    *,
    rel_type: str = HIERARCHY_TYPE,
) -> list[dict[str, Any]]:
    """Arrange todos into a forest of ``{id, depth, task, children}`` nodes.

    Edges of *rel_type* are read oldest first and point parent to child.
    A child keeps the parent from the first edge that reaches it; later
    edges to the same child are ignored.  Edges with a missing endpoint,
    self-loops, and edges that would loop back to an ancestor are skipped,
    so a child whose parent no longer exists becomes a root.  Roots and
    siblings are ordered by priority (highest first), then title.
    """
    tasks_by_id = {todo["id"]: _task_view(todo) for todo in todos}
    if not tasks_by_id:
        return []

    edges = sorted(
        (rel for rel in relationships if rel["type"] == rel_type),
        key=lambda rel: (rel["created_at"], rel["id"]),
    )
    parent_by_child: dict[str, str] = {}
    children_by_parent: dict[str, list[str]] = {}
    for rel in edges:
        parent_id, child_id = rel["from_id"], rel["to_id"]
        if parent_id not in tasks_by_id or child_id not in tasks_by_id:
            continue
        if parent_id == child_id or child_id in parent_by_child:
            continue
        if _would_cycle(parent_id, child_id, parent_by_child):
            continue
        parent_by_child[child_id] = parent_id
        children_by_parent.setdefault(parent_id, []).append(child_id)

    roots = sorted(
        (task for task_id, task in tasks_by_id.items() if task_id not in parent_by_child),
        key=_order_key,
    )
    return [_build_tree(task["id"], tasks_by_id, children_by_parent) for task in roots]


def format_outline(forest: list[dict[str, Any]]) -> list[str]:
    """Render the forest depth-first as indented bullet lines."""
    lines: list[str] = []
    stack = list(reversed(forest))
    while stack:
        node = stack.pop()
        task = node["task"]
        category = f" [{task['category']}]" if task.get("category") else ""
        lines.append(
            f"{'  ' * node['depth']}- {task['title']} "
            f"({task['status']} · P{task['priority']}){category}"
        )
        stack.extend(reversed(node["children"]))
    return lines


async def build_hierarchy_report(
    todos: TodoRepository,
    relationships: RelationshipRepository,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Any]:
    """Board snapshot arranged as a parent/child forest plus a text outline."""
    snapshot = await build_board_snapshot(todos, relationships, batch_size=batch_size)
    hierarchy = build_task_hierarchy(snapshot["todos"], snapshot["relationships"])
    return {
        "totals": {
            "roots": len(hierarchy),
            "tasks": len(snapshot["todos"]),
            "relationships": len(snapshot["relationships"]),
        },
        "hierarchy": hierarchy,
        "outline": format_outline(hierarchy),
    }
