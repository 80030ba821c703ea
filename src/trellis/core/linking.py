"""Relationship workflows: create, update, delete, and list."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from datetime import datetime

from trellis.core.errors import (
    CycleDetectedError,
    DuplicateRelationshipError,
    RelationshipNotFoundError,
    TodoNotFoundError,
    ValidationError,
)
from trellis.core.graph import DEFAULT_PAGE_SIZE, DEFAULT_TRAVERSAL_LIMIT, path_exists
from trellis.core.ids import generate_relationship_id
from trellis.core.ports import RelationshipQuery, RelationshipRepository, TodoRepository
from trellis.core.relationships import (
    DIRECTIONAL_TYPES,
    Relationship,
    normalize_description,
    require_relationship_type,
)
from trellis.core.timestamps import utc_now
from trellis.core.todos import normalize_ids, normalize_page

logger = logging.getLogger(__name__)

GraphLock = Callable[[], AbstractContextManager]


def _no_lock() -> AbstractContextManager:
    return contextlib.nullcontext()


async def _ensure_acyclic(
    relationships: RelationshipRepository,
    from_id: str,
    to_id: str,
    rel_type: str,
    *,
    traversal_limit: int,
    page_size: int,
) -> None:
    """Reject a directional edge ``from_id -> to_id`` that would close a cycle."""
    if await path_exists(
        relationships, to_id, from_id, limit=traversal_limit, page_size=page_size
    ):
        raise CycleDetectedError(
            "Relationship would create a cycle",
            {"from_id": from_id, "to_id": to_id, "type": rel_type},
        )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_relationship(
    relationships: RelationshipRepository,
    todos: TodoRepository,
    *,
    from_id: str,
    to_id: str,
    rel_type: str,
    description: str | None = None,
    id_factory: Callable[[], str] = generate_relationship_id,
    clock: Callable[[], datetime] = utc_now,
    graph_lock: GraphLock = _no_lock,
    traversal_limit: int = DEFAULT_TRAVERSAL_LIMIT,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Relationship:
    """Validate and persist a new relationship.

    Checks run in a fixed order so callers always see the most specific
    failure first: self-reference, type, endpoint existence, duplicate,
    then cycle (directional types only).  For directional types the
    duplicate check, cycle check and save run under *graph_lock* so two
    concurrent links cannot jointly close a cycle.
    """
    from_id = from_id.strip() if isinstance(from_id, str) else ""
    to_id = to_id.strip() if isinstance(to_id, str) else ""
    if not from_id or not to_id:
        raise ValidationError(
            "Both from_id and to_id are required",
            {"from_id": from_id, "to_id": to_id},
        )
    if from_id == to_id:
        raise ValidationError(
            "Cannot create self-referencing relationship",
            {"from_id": from_id, "to_id": to_id},
        )
    require_relationship_type(rel_type)

    source, target = await asyncio.gather(todos.find_by_id(from_id), todos.find_by_id(to_id))
    if source is None and target is None:
        raise TodoNotFoundError([from_id, to_id])
    if source is None:
        raise TodoNotFoundError(from_id)
    if target is None:
        raise TodoNotFoundError(to_id)

    lock = graph_lock() if rel_type in DIRECTIONAL_TYPES else contextlib.nullcontext()
    with lock:
        existing = await relationships.find_between(from_id, to_id, rel_type)
        if existing is not None:
            raise DuplicateRelationshipError(
                "Relationship already exists",
                {"relationship_id": existing.id},
            )

        if rel_type in DIRECTIONAL_TYPES:
            await _ensure_acyclic(
                relationships,
                from_id,
                to_id,
                rel_type,
                traversal_limit=traversal_limit,
                page_size=page_size,
            )

        relationship = Relationship.create(
            id=id_factory(),
            from_id=from_id,
            to_id=to_id,
            type=rel_type,
            description=description,
            created_at=clock(),
        )
        await relationships.save(relationship)

    logger.info(
        "relationship created",
        extra={
            "context": {
                "relationship_id": relationship.id,
                "from_id": from_id,
                "to_id": to_id,
                "type": rel_type,
            }
        },
    )
    return relationship


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


async def update_relationship(
    relationships: RelationshipRepository,
    relationship_id: str,
    *,
    rel_type: str | None = None,
    description: str | None = None,
    clock: Callable[[], datetime] = utc_now,
    graph_lock: GraphLock = _no_lock,
    traversal_limit: int = DEFAULT_TRAVERSAL_LIMIT,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Relationship:
    """Change a relationship's type and/or description.

    ``description=""`` clears the description; ``None`` leaves it alone.
    Moving to a directional type re-runs the cycle check, ignoring the
    edge being changed.
    """
    normalized_id = relationship_id.strip() if isinstance(relationship_id, str) else ""
    if not normalized_id:
        raise ValidationError("Relationship id is required for updates", {"field": "id"})
    if rel_type is None and description is None:
        raise ValidationError(
            "At least one relationship property must change", {"id": normalized_id}
        )
    if rel_type is not None:
        require_relationship_type(rel_type)

    relationship = await relationships.find_by_id(normalized_id)
    if relationship is None:
        raise RelationshipNotFoundError(normalized_id)

    retyping = rel_type is not None and rel_type != relationship.type
    lock = (
        graph_lock() if retyping and rel_type in DIRECTIONAL_TYPES else contextlib.nullcontext()
    )
    with lock:
        if retyping:
            duplicate = await relationships.find_between(
                relationship.from_id, relationship.to_id, rel_type
            )
            if duplicate is not None and duplicate.id != relationship.id:
                raise DuplicateRelationshipError(
                    "Relationship already exists between the specified todos",
                    {
                        "relationship_id": duplicate.id,
                        "from_id": relationship.from_id,
                        "to_id": relationship.to_id,
                        "type": rel_type,
                    },
                )
            # Swapping one directional type for another leaves the
            # directional graph unchanged.
            if rel_type in DIRECTIONAL_TYPES and relationship.type not in DIRECTIONAL_TYPES:
                await _ensure_acyclic(
                    relationships,
                    relationship.from_id,
                    relationship.to_id,
                    rel_type,  # type: ignore[arg-type]
                    traversal_limit=traversal_limit,
                    page_size=page_size,
                )

        at = clock()
        changed = False
        if rel_type is not None:
            changed = relationship.change_type(rel_type, at=at) or changed
        if description is not None:
            normalized = normalize_description(description)
            changed = relationship.attach_description(normalized, at=at) or changed
        if not changed:
            raise ValidationError(
                "Relationship already satisfies requested values", {"id": normalized_id}
            )

        await relationships.save(relationship)

    logger.info(
        "relationship updated",
        extra={"context": {"relationship_id": relationship.id, "type": relationship.type}},
    )
    return relationship


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


async def delete_relationships(
    relationships: RelationshipRepository,
    ids: str | Iterable[str],
) -> list[str]:
    """Delete one or many relationships by id.

    Every id is resolved before anything is removed.  A batch with any
    missing id fails once, naming all of them, and deletes nothing.
    Returns the normalized id list.
    """
    identifiers = normalize_ids(ids)
    if not identifiers:
        raise ValidationError(
            "At least one relationship id must be provided", {"field": "ids"}
        )

    if len(identifiers) == 1:
        (single,) = identifiers
        if await relationships.find_by_id(single) is None:
            raise RelationshipNotFoundError(single)
        await relationships.delete(single)
    else:
        found = await asyncio.gather(*(relationships.find_by_id(rid) for rid in identifiers))
        missing = [rid for rid, rel in zip(identifiers, found) if rel is None]
        if missing:
            raise RelationshipNotFoundError(missing)
        await relationships.delete_many(identifiers)

    logger.info("relationships deleted", extra={"context": {"ids": identifiers}})
    return identifiers


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------


def _normalize_filter_id(field: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} cannot be empty", {"field": field})
    return value.strip()


def normalize_relationship_query(
    *,
    from_id: str | None = None,
    to_id: str | None = None,
    involving: str | None = None,
    rel_type: str | Iterable[str] | None = None,
    limit: int | None = None,
    offset: int | None = None,
    default_limit: int = 100,
    max_limit: int = 500,
) -> RelationshipQuery:
    query: RelationshipQuery = {}
    if from_id is not None:
        query["from_id"] = _normalize_filter_id("from_id", from_id)
    if to_id is not None:
        query["to_id"] = _normalize_filter_id("to_id", to_id)
    if involving is not None:
        query["involving"] = _normalize_filter_id("involving", involving)
    if rel_type is not None:
        values = [rel_type] if isinstance(rel_type, str) else list(rel_type)
        for value in values:
            require_relationship_type(value)
        unique = list(dict.fromkeys(values))
        if unique:
            query["type"] = unique[0] if len(unique) == 1 else unique
    query["limit"], query["offset"] = normalize_page(
        limit, offset, default_limit=default_limit, max_limit=max_limit
    )
    return query


async def list_relationships(
    relationships: RelationshipRepository,
    *,
    from_id: str | None = None,
    to_id: str | None = None,
    involving: str | None = None,
    rel_type: str | Iterable[str] | None = None,
    limit: int | None = None,
    offset: int | None = None,
    default_limit: int = 100,
    max_limit: int = 500,
) -> tuple[list[Relationship], RelationshipQuery]:
    """Normalize the filters, run the query, and return both."""
    query = normalize_relationship_query(
        from_id=from_id,
        to_id=to_id,
        involving=involving,
        rel_type=rel_type,
        limit=limit,
        offset=offset,
        default_limit=default_limit,
        max_limit=max_limit,
    )
    return await relationships.list(query), query
