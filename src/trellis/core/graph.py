"""Reachability search used to keep directional relationships acyclic."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from trellis.core.errors import TraversalLimitError
from trellis.core.ports import RelationshipRepository
from trellis.core.relationships import DIRECTIONAL_TYPES

logger = logging.getLogger(__name__)

DEFAULT_TRAVERSAL_LIMIT = 5000
DEFAULT_PAGE_SIZE = 500

_DIRECTIONAL = sorted(DIRECTIONAL_TYPES)


async def iter_successors(
    relationships: RelationshipRepository,
    node: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AsyncIterator[str]:
    """Yield the targets of *node*'s outgoing directional edges.

    Pages through the store so a node with many edges is never loaded
    in one query.
    """
    offset = 0
    while True:
        page = await relationships.list(
            {"from_id": node, "type": list(_DIRECTIONAL), "limit": page_size, "offset": offset}
        )
        for rel in page:
            yield rel.to_id
        if len(page) < page_size:
            return
        offset += page_size


async def path_exists(
    relationships: RelationshipRepository,
    start: str,
    goal: str,
    *,
    limit: int = DEFAULT_TRAVERSAL_LIMIT,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> bool:
    """Return ``True`` if *goal* is reachable from *start* over directional edges.

    Depth-first with an explicit stack and a visited set.  Each node's
    successors are fetched on demand.  Raises :class:`TraversalLimitError`
    once more than *limit* distinct nodes have been visited.
    """
    if start == goal:
        return True

    stack = [start]
    visited: set[str] = set()
    while stack:
        node = stack.pop()
        if node in visited:
            continue
        visited.add(node)
        if len(visited) > limit:
            raise TraversalLimitError(
                "Relationship graph traversal limit exceeded",
                {"limit": limit, "start": start, "goal": goal},
            )
        async for successor in iter_successors(relationships, node, page_size=page_size):
            if successor == goal:
                logger.debug(
                    "cycle path found",
                    extra={"context": {"start": start, "goal": goal, "visited": len(visited)}},
                )
                return True
            if successor not in visited:
                stack.append(successor)

    logger.debug(
        "no cycle path",
        extra={"context": {"start": start, "goal": goal, "visited": len(visited)}},
    )
    return False
