"""Domain error hierarchy shared by workflows, the CLI and the dashboard."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class DomainError(Exception):
    """Base class for every failure the engine raises on purpose.

    Each error carries a stable machine-readable ``code`` and a ``context``
    dict that boundaries render verbatim into the JSON error envelope.
    """

    code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Render as the ``error`` member of a response envelope."""
        return {"code": self.code, "message": self.message, "context": self.context}


# ---------------------------------------------------------------------------
# Caller-fixable input problems
# ---------------------------------------------------------------------------


class ValidationError(DomainError):
    """Bad input shape or a rule the request would break."""

    code = "VALIDATION_ERROR"


class DuplicateRelationshipError(ValidationError):
    code = "DUPLICATE_RELATIONSHIP"


class CycleDetectedError(ValidationError):
    code = "CYCLE_DETECTED"


class TraversalLimitError(ValidationError):
    """The cycle search visited more nodes than the configured cap."""

    code = "TRAVERSAL_LIMIT_EXCEEDED"


# ---------------------------------------------------------------------------
# Missing entities
# ---------------------------------------------------------------------------


def _unique(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


class NotFoundError(DomainError):
    """One or more referenced entities do not exist.

    ``label`` is the singular noun used in the message; the plural adds
    an ``s``.  ``ids`` keeps first-seen order with duplicates removed.
    """

    code = "NOT_FOUND"
    label = "Entity"

    def __init__(self, ids: str | Iterable[str]) -> None:
        id_list = _unique([ids] if isinstance(ids, str) else ids)
        noun = self.label if len(id_list) == 1 else f"{self.label}s"
        super().__init__(f"{noun} not found: {', '.join(id_list)}", {"ids": id_list})
        self.ids = id_list


class TodoNotFoundError(NotFoundError):
    code = "TODO_NOT_FOUND"
    label = "Todo"


class RelationshipNotFoundError(NotFoundError):
    code = "RELATIONSHIP_NOT_FOUND"
    label = "Relationship"
