"""Shared board statistics for the CLI and the dashboard."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any

from trellis.core.health import (
    DEFAULT_BATCH_SIZE,
    build_dependency_health,
    iter_batches,
)
from trellis.core.ports import RelationshipRepository, TodoRepository
from trellis.core.relationships import Relationship
from trellis.core.todos import ACTIVE_STATUSES, PRIORITIES, TODO_STATUSES, Todo

UNCATEGORIZED = "Uncategorized"


def _status_counts(counter: Counter) -> dict[str, int]:
    return {status: counter.get(status, 0) for status in TODO_STATUSES}


def _priority_counts(counter: Counter) -> dict[str, int]:
    return {str(priority): counter.get(priority, 0) for priority in PRIORITIES}


def summarize_categories(todos: list[Todo]) -> list[dict[str, Any]]:
    """Group todos by case-insensitive category.

    The first todo seen in a group supplies its label and color.  Sorted
    by count descending, then label.
    """
    groups: dict[str, dict[str, Any]] = {}
    for todo in todos:
        label = (todo.category or "").strip() or UNCATEGORIZED
        value = label.lower()
        entry = groups.get(value)
        if entry is None:
            groups[value] = {"label": label, "value": value, "color": todo.color, "count": 1}
        else:
            entry["count"] += 1
    return sorted(groups.values(), key=lambda entry: (-entry["count"], entry["label"]))


async def build_board_status(
    todos: TodoRepository,
    relationships: RelationshipRepository,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Any]:
    """Roll up status, priority, and category counts plus dependency health."""
    all_todos = [todo async for todo in iter_batches(todos.list, batch_size=batch_size)]

    statuses: Counter = Counter(todo.status for todo in all_todos)
    priorities: Counter = Counter(todo.priority for todo in all_todos)
    total = len(all_todos)
    completed = statuses.get("completed", 0)
    last_updated: datetime | None = max((t.updated_at for t in all_todos), default=None)
    last_created: datetime | None = max((t.created_at for t in all_todos), default=None)

    health = await build_dependency_health(
        relationships,
        todos,
        batch_size=batch_size,
        todo_ids={todo.id for todo in all_todos},
    )

    return {
        "total": total,
        "active": sum(statuses.get(status, 0) for status in ACTIVE_STATUSES),
        "completed": completed,
        "completion_rate": round(completed / total, 4) if total else 0,
        "statuses": _status_counts(statuses),
        "priorities": _priority_counts(priorities),
        "categories": summarize_categories(all_todos),
        "last_updated_at": last_updated,
        "last_created_at": last_created,
        "dependencies": health.to_dict(),
    }


async def build_board_snapshot(
    todos: TodoRepository,
    relationships: RelationshipRepository,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Any]:
    """Every todo and relationship on the board, with simple totals."""
    all_todos: list[Todo] = [
        todo async for todo in iter_batches(todos.list, batch_size=batch_size)
    ]
    all_relationships: list[Relationship] = [
        rel async for rel in iter_batches(relationships.list, batch_size=batch_size)
    ]
    return {
        "todos": [todo.to_dict() for todo in all_todos],
        "relationships": [rel.to_dict() for rel in all_relationships],
        "totals": {
            "count": len(all_todos),
            "relationships": len(all_relationships),
            "statuses": _status_counts(Counter(todo.status for todo in all_todos)),
            "priorities": _priority_counts(Counter(todo.priority for todo in all_todos)),
        },
    }
