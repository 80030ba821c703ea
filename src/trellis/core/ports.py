"""Store contracts between the core workflows and the storage adapters.

Workflows depend only on these Protocols; ``trellis.storage.sqlite``
provides the implementations.  Methods are coroutines because adapters
do I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TypedDict

from trellis.core.relationships import Relationship
from trellis.core.todos import Todo


class RelationshipQuery(TypedDict, total=False):
    from_id: str
    to_id: str
    # One type, or several matched as ANY.
    type: str | list[str]
    involving: str
    limit: int
    offset: int


class TodoQuery(TypedDict, total=False):
    status: str | list[str]
    category: str
    search: str
    limit: int
    offset: int


class RelationshipRepository(Protocol):
    """Relationship persistence.

    ``list`` returns most-recently-created first.  Adapters cap an
    unbounded ``list`` at their own default page size.
    """

    async def save(self, relationship: Relationship) -> None: ...
    async def find_by_id(self, relationship_id: str) -> Relationship | None: ...
    async def find_between(
        self, from_id: str, to_id: str, rel_type: str | None = None,
    ) -> Relationship | None: ...
    async def list(self, query: RelationshipQuery | None = None) -> list[Relationship]: ...
    async def delete(self, relationship_id: str) -> None: ...
    async def delete_many(self, relationship_ids: Sequence[str]) -> None: ...
    async def delete_by_todo_id(self, todo_id: str) -> int: ...


class TodoRepository(Protocol):
    """Todo persistence; ``find_by_id`` doubles as the existence oracle."""

    async def save(self, todo: Todo) -> None: ...
    async def find_by_id(self, todo_id: str) -> Todo | None: ...
    async def list(self, query: TodoQuery | None = None) -> list[Todo]: ...
    async def delete(self, todo_id: str) -> None: ...
    async def delete_many(self, todo_ids: Sequence[str]) -> None: ...
