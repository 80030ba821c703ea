"""Board dependency health: edge counts, role sets, and broken links."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from trellis.core.ports import RelationshipRepository, TodoRepository
from trellis.core.relationships import RELATIONSHIP_TYPES

DEFAULT_BATCH_SIZE = 250

T = TypeVar("T")


async def iter_batches(
    fetch: Callable[[dict], Awaitable[list[T]]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> AsyncIterator[T]:
    """Yield every item from a paginated ``list`` until a short page."""
    offset = 0
    while True:
        page = await fetch({"limit": batch_size, "offset": offset})
        for item in page:
            yield item
        if len(page) < batch_size:
            return
        offset += len(page)


@dataclass(frozen=True)
class BrokenRelationship:
    id: str
    missing_endpoint: Literal["source", "target"]
    missing_task_id: str
    type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "missing_endpoint": self.missing_endpoint,
            "missing_task_id": self.missing_task_id,
            "type": self.type,
        }


@dataclass
class DependencyHealth:
    """Point-in-time dependency report over the whole board."""

    total: int = 0
    by_type: dict[str, int] = field(
        default_factory=lambda: {rel_type: 0 for rel_type in RELATIONSHIP_TYPES}
    )
    dependent_tasks: set[str] = field(default_factory=set)
    blocking_tasks: set[str] = field(default_factory=set)
    blocked_tasks: set[str] = field(default_factory=set)
    broken: list[BrokenRelationship] = field(default_factory=list)

    @property
    def broken_count(self) -> int:
        return len(self.broken)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(self.by_type),
            "dependent_tasks": len(self.dependent_tasks),
            "blocking_tasks": len(self.blocking_tasks),
            "blocked_tasks": len(self.blocked_tasks),
            "broken_count": self.broken_count,
            "broken_relationships": [entry.to_dict() for entry in self.broken],
        }


async def collect_todo_ids(
    todos: TodoRepository, *, batch_size: int = DEFAULT_BATCH_SIZE
) -> set[str]:
    return {todo.id async for todo in iter_batches(todos.list, batch_size=batch_size)}


async def build_dependency_health(
    relationships: RelationshipRepository,
    todos: TodoRepository,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    todo_ids: set[str] | None = None,
) -> DependencyHealth:
    """Stream todos and relationships in batches and classify every edge.

    Pass *todo_ids* when the caller has already streamed the todo set.
    An edge missing both endpoints yields two broken entries.
    """
    if todo_ids is None:
        todo_ids = await collect_todo_ids(todos, batch_size=batch_size)

    health = DependencyHealth()
    async for rel in iter_batches(relationships.list, batch_size=batch_size):
        health.total += 1
        health.by_type[rel.type] = health.by_type.get(rel.type, 0) + 1

        if rel.type == "depends_on":
            health.dependent_tasks.add(rel.from_id)
        elif rel.type == "blocks":
            health.blocking_tasks.add(rel.from_id)
            health.blocked_tasks.add(rel.to_id)

        if rel.from_id not in todo_ids:
            health.broken.append(BrokenRelationship(rel.id, "source", rel.from_id, rel.type))
        if rel.to_id not in todo_ids:
            health.broken.append(BrokenRelationship(rel.id, "target", rel.to_id, rel.type))

    return health
