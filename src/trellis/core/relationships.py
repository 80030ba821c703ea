"""Relationship entity, types, and invariants."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trellis.core.errors import ValidationError
from trellis.core.timestamps import parse_timestamp, to_utc, utc_now

# ---------------------------------------------------------------------------
# Relationship types
# ---------------------------------------------------------------------------

RELATIONSHIP_TYPES: tuple[str, ...] = ("depends_on", "blocks", "related_to", "parent_of")

# Types whose direction matters for cycle detection.  ``related_to`` is
# symmetric and never participates.
DIRECTIONAL_TYPES: frozenset[str] = frozenset({"depends_on", "blocks", "parent_of"})

DEFAULT_RELATIONSHIP_TYPE = "depends_on"

DESCRIPTION_LIMIT = 500


def validate_relationship_type(rel_type: object) -> bool:
    """Return ``True`` if *rel_type* is a recognised relationship type."""
    return isinstance(rel_type, str) and rel_type in RELATIONSHIP_TYPES


def require_relationship_type(rel_type: object) -> str:
    """Return *rel_type* or raise :class:`ValidationError` naming the valid set."""
    if not validate_relationship_type(rel_type):
        raise ValidationError(
            f"Invalid relationship type: {rel_type!r}. "
            f"Valid types: {', '.join(RELATIONSHIP_TYPES)}.",
            {"field": "type", "value": rel_type, "allowed": list(RELATIONSHIP_TYPES)},
        )
    return rel_type  # type: ignore[return-value]


def normalize_description(text: object) -> str | None:
    """Trim a description; blank collapses to ``None``."""
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValidationError(
            "Relationship description must be a string",
            {"field": "description", "value": text},
        )
    trimmed = text.strip()
    return trimmed or None


def _require_text(field: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"Relationship {field} must be a non-empty string",
            {"field": field, "value": value},
        )
    return value.strip()


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------


@dataclass
class Relationship:
    """A typed directed edge between two todos.

    Build instances with :meth:`create` or :meth:`restore`; both run the
    full invariant check.  Mutate only through :meth:`change_type` and
    :meth:`attach_description`, which return ``False`` (and leave
    ``updated_at`` alone) when the requested value is already current.
    """

    id: str
    from_id: str
    to_id: str
    type: str
    description: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def create(
        cls,
        *,
        id: str,
        from_id: str,
        to_id: str,
        type: str,
        description: str | None = None,
        created_at: datetime | None = None,
    ) -> Relationship:
        stamp = to_utc(created_at) if created_at is not None else utc_now()
        rel = cls(
            id=_require_text("id", id),
            from_id=_require_text("from_id", from_id),
            to_id=_require_text("to_id", to_id),
            type=type,
            description=normalize_description(description),
            created_at=stamp,
            updated_at=stamp,
        )
        rel.validate()
        return rel

    @classmethod
    def restore(cls, props: Mapping[str, Any]) -> Relationship:
        """Rehydrate from a storage row or :meth:`to_dict` output.

        Timestamps are taken as stored.  A row that breaks an invariant
        raises :class:`ValidationError` instead of loading.
        """
        try:
            created_at = parse_timestamp(props["created_at"])
            updated_at = parse_timestamp(props["updated_at"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(
                "Relationship has invalid timestamps",
                {"id": props.get("id"), "reason": str(exc)},
            ) from exc
        rel = cls(
            id=_require_text("id", props.get("id")),
            from_id=_require_text("from_id", props.get("from_id")),
            to_id=_require_text("to_id", props.get("to_id")),
            type=props.get("type"),  # type: ignore[arg-type]
            description=normalize_description(props.get("description")),
            created_at=created_at,
            updated_at=updated_at,
        )
        rel.validate()
        return rel

    # -- invariants ---------------------------------------------------------

    def validate(self) -> None:
        for field in ("id", "from_id", "to_id"):
            _require_text(field, getattr(self, field))
        if self.from_id == self.to_id:
            raise ValidationError(
                "Cannot create self-referencing relationship",
                {"from_id": self.from_id, "to_id": self.to_id},
            )
        require_relationship_type(self.type)
        if self.description is not None and len(self.description) > DESCRIPTION_LIMIT:
            raise ValidationError(
                f"Relationship description must be at most {DESCRIPTION_LIMIT} characters",
                {
                    "field": "description",
                    "length": len(self.description),
                    "limit": DESCRIPTION_LIMIT,
                },
            )

    # -- mutation -----------------------------------------------------------

    def change_type(self, rel_type: str, *, at: datetime | None = None) -> bool:
        if rel_type == self.type:
            return False
        require_relationship_type(rel_type)
        self.type = rel_type
        self._touch(at)
        return True

    def attach_description(self, text: str | None, *, at: datetime | None = None) -> bool:
        normalized = normalize_description(text)
        if normalized == self.description:
            return False
        previous = self.description
        self.description = normalized
        try:
            self.validate()
        except ValidationError:
            self.description = previous
            raise
        self._touch(at)
        return True

    def _touch(self, at: datetime | None) -> None:
        self.updated_at = to_utc(at) if at is not None else utc_now()

    # -- queries ------------------------------------------------------------

    @property
    def is_directional(self) -> bool:
        return self.type in DIRECTIONAL_TYPES

    def connects(self, todo_id: str) -> bool:
        """Return ``True`` if *todo_id* is either endpoint."""
        if not isinstance(todo_id, str):
            return False
        candidate = todo_id.strip()
        return candidate in (self.from_id, self.to_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_id": self.from_id,
            "to_id": self.to_id,
            "type": self.type,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
