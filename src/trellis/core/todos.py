"""Todo entity and the todo workflows (create, list, update, delete)."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from trellis.core.errors import TodoNotFoundError, ValidationError
from trellis.core.ids import generate_todo_id
from trellis.core.timestamps import parse_timestamp, to_utc, utc_now

if TYPE_CHECKING:
    from trellis.core.ports import RelationshipRepository, TodoQuery, TodoRepository

logger = logging.getLogger(__name__)

TODO_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")
ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "in_progress"})
PRIORITIES: tuple[int, ...] = (1, 2, 3, 4, 5)

DEFAULT_PRIORITY = 3
DEFAULT_COLOR = "#60a5fa"
TITLE_LIMIT = 120
DESCRIPTION_LIMIT = 2000
CATEGORY_LIMIT = 40
SEARCH_LIMIT = 240

_HEX_COLOR_RE = re.compile(r"^#[0-9a-f]{6}$", re.IGNORECASE)


def _optional_text(field: str, value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Todo {field} must be a string", {"field": field, "value": value})
    return value.strip() or None


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------


@dataclass
class Todo:
    """A unit of work on the board.

    ``completed_at`` is set exactly when ``status`` is ``completed``.
    Mutators return ``False`` without touching ``updated_at`` when the
    requested value is already current.
    """

    id: str
    title: str
    description: str | None
    status: str
    priority: int
    category: str | None
    color: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def create(
        cls,
        *,
        id: str,
        title: str,
        description: str | None = None,
        status: str = "pending",
        priority: int = DEFAULT_PRIORITY,
        category: str | None = None,
        color: str = DEFAULT_COLOR,
        created_at: datetime | None = None,
    ) -> Todo:
        stamp = to_utc(created_at) if created_at is not None else utc_now()
        todo = cls(
            id=id.strip() if isinstance(id, str) else id,
            title=title.strip() if isinstance(title, str) else title,
            description=_optional_text("description", description),
            status=status,
            priority=priority,
            category=_optional_text("category", category),
            color=color,
            created_at=stamp,
            updated_at=stamp,
            completed_at=stamp if status == "completed" else None,
        )
        todo.validate()
        return todo

    @classmethod
    def restore(cls, props: Mapping[str, Any]) -> Todo:
        try:
            created_at = parse_timestamp(props["created_at"])
            updated_at = parse_timestamp(props["updated_at"])
            raw_completed = props.get("completed_at")
            completed_at = parse_timestamp(raw_completed) if raw_completed else None
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(
                "Todo has invalid timestamps", {"id": props.get("id"), "reason": str(exc)}
            ) from exc
        title = props.get("title")
        todo = cls(
            id=props.get("id"),  # type: ignore[arg-type]
            title=title.strip() if isinstance(title, str) else title,  # type: ignore[arg-type]
            description=_optional_text("description", props.get("description")),
            status=props.get("status"),  # type: ignore[arg-type]
            priority=props.get("priority"),  # type: ignore[arg-type]
            category=_optional_text("category", props.get("category")),
            color=props.get("color") or DEFAULT_COLOR,
            created_at=created_at,
            updated_at=updated_at,
            completed_at=completed_at,
        )
        todo.validate()
        return todo

    # -- invariants ---------------------------------------------------------

    def validate(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValidationError("Todo id is required", {"field": "id", "value": self.id})
        if not isinstance(self.title, str) or not self.title:
            raise ValidationError("Title is required", {"field": "title"})
        if len(self.title) > TITLE_LIMIT:
            raise ValidationError(
                "Title exceeds maximum length", {"field": "title", "limit": TITLE_LIMIT}
            )
        if self.description is not None and len(self.description) > DESCRIPTION_LIMIT:
            raise ValidationError(
                "Description exceeds maximum length",
                {"field": "description", "limit": DESCRIPTION_LIMIT},
            )
        if self.category is not None and len(self.category) > CATEGORY_LIMIT:
            raise ValidationError(
                f"Category cannot exceed {CATEGORY_LIMIT} characters",
                {"field": "category", "value": self.category},
            )
        validate_priority(self.priority)
        validate_status(self.status)
        if not isinstance(self.color, str) or not _HEX_COLOR_RE.match(self.color):
            raise ValidationError(
                "Color must be a valid hex code", {"field": "color", "value": self.color}
            )
        if self.status == "completed" and self.completed_at is None:
            raise ValidationError("Completed todos must set completed_at", {"id": self.id})
        if self.status != "completed" and self.completed_at is not None:
            raise ValidationError(
                "Only completed todos can have completed_at", {"status": self.status}
            )

    # -- mutation -----------------------------------------------------------

    def rename(self, title: str, *, at: datetime | None = None) -> bool:
        trimmed = title.strip() if isinstance(title, str) else title
        return self._assign("title", trimmed, at)

    def describe(self, text: str | None, *, at: datetime | None = None) -> bool:
        return self._assign("description", _optional_text("description", text), at)

    def categorize(self, category: str | None, *, at: datetime | None = None) -> bool:
        return self._assign("category", _optional_text("category", category), at)

    def change_priority(self, priority: int, *, at: datetime | None = None) -> bool:
        validate_priority(priority)
        return self._assign("priority", priority, at)

    def recolor(self, color: str, *, at: datetime | None = None) -> bool:
        return self._assign("color", color, at)

    def change_status(self, status: str, *, at: datetime | None = None) -> bool:
        validate_status(status)
        if status == self.status:
            return False
        stamp = to_utc(at) if at is not None else utc_now()
        self.status = status
        self.completed_at = stamp if status == "completed" else None
        self.updated_at = stamp
        return True

    def _assign(self, field: str, value: object, at: datetime | None) -> bool:
        previous = getattr(self, field)
        if value == previous:
            return False
        setattr(self, field, value)
        try:
            self.validate()
        except ValidationError:
            setattr(self, field, previous)
            raise
        self.updated_at = to_utc(at) if at is not None else utc_now()
        return True

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "color": self.color,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }


def validate_priority(priority: object) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or priority not in PRIORITIES:
        raise ValidationError(
            "Priority must be between 1 and 5", {"field": "priority", "value": priority}
        )
    return priority


def validate_status(status: object) -> str:
    if status not in TODO_STATUSES:
        raise ValidationError(
            f"Invalid status: {status!r}. Valid statuses: {', '.join(TODO_STATUSES)}.",
            {"field": "status", "value": status, "allowed": list(TODO_STATUSES)},
        )
    return status  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Shared normalization
# ---------------------------------------------------------------------------


def normalize_ids(ids: str | Iterable[str] | None) -> list[str]:
    """Trim, drop blanks, and de-duplicate keeping first-seen order."""
    if ids is None:
        return []
    if isinstance(ids, str):
        values: list = [ids]
    elif isinstance(ids, Iterable):
        values = list(ids)
    else:
        return []
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if trimmed and trimmed not in seen:
            seen.add(trimmed)
            result.append(trimmed)
    return result


def normalize_page(
    limit: object,
    offset: object,
    *,
    default_limit: int,
    max_limit: int,
) -> tuple[int, int]:
    """Validate pagination and clamp ``limit`` to ``max_limit``."""
    if limit is None:
        limit = default_limit
    elif isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("Limit must be a positive integer", {"limit": limit})
    if offset is None:
        offset = 0
    elif isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError("Offset must be zero or a positive integer", {"offset": offset})
    return min(limit, max_limit), offset


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


async def create_todo(
    todos: TodoRepository,
    *,
    title: str,
    description: str | None = None,
    status: str = "pending",
    priority: int = DEFAULT_PRIORITY,
    category: str | None = None,
    color: str = DEFAULT_COLOR,
    id_factory: Callable[[], str] = generate_todo_id,
    clock: Callable[[], datetime] = utc_now,
) -> Todo:
    todo = Todo.create(
        id=id_factory(),
        title=title,
        description=description,
        status=status,
        priority=priority,
        category=category,
        color=color,
        created_at=clock(),
    )
    await todos.save(todo)
    logger.info("todo created", extra={"context": {"todo_id": todo.id}})
    return todo


async def list_todos(
    todos: TodoRepository,
    *,
    status: str | Iterable[str] | None = None,
    category: str | None = None,
    search: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    default_limit: int = 100,
    max_limit: int = 500,
) -> tuple[list[Todo], TodoQuery]:
    """Normalize the filters, run the query, and return both."""
    query: TodoQuery = {}
    if status is not None:
        statuses = [status] if isinstance(status, str) else list(dict.fromkeys(status))
        invalid = [value for value in statuses if value not in TODO_STATUSES]
        if invalid:
            raise ValidationError("Status filter includes unknown values", {"invalid": invalid})
        if statuses:
            query["status"] = statuses[0] if len(statuses) == 1 else statuses
    category_value = _optional_text("category", category)
    if category_value:
        query["category"] = category_value
    search_value = _optional_text("search", search)
    if search_value:
        if len(search_value) > SEARCH_LIMIT:
            raise ValidationError(
                "Search term exceeds allowed length", {"limit": SEARCH_LIMIT}
            )
        query["search"] = search_value
    query["limit"], query["offset"] = normalize_page(
        limit, offset, default_limit=default_limit, max_limit=max_limit
    )
    return await todos.list(query), query


async def update_todo(
    todos: TodoRepository,
    todo_id: str,
    *,
    title: str | None = None,
    description: str | None = None,
    status: str | None = None,
    priority: int | None = None,
    category: str | None = None,
    color: str | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Todo:
    """Apply the given fields; ``""`` clears description or category."""
    normalized_id = todo_id.strip() if isinstance(todo_id, str) else ""
    if not normalized_id:
        raise ValidationError("Todo id is required for updates", {"field": "id"})
    fields = {
        "title": title,
        "description": description,
        "status": status,
        "priority": priority,
        "category": category,
        "color": color,
    }
    if all(value is None for value in fields.values()):
        raise ValidationError("At least one property must be provided", {"id": normalized_id})

    todo = await todos.find_by_id(normalized_id)
    if todo is None:
        raise TodoNotFoundError(normalized_id)

    at = clock()
    changed = False
    if title is not None:
        changed = todo.rename(title, at=at) or changed
    if description is not None:
        changed = todo.describe(description, at=at) or changed
    if category is not None:
        changed = todo.categorize(category, at=at) or changed
    if priority is not None:
        changed = todo.change_priority(priority, at=at) or changed
    if color is not None:
        changed = todo.recolor(color, at=at) or changed
    if status is not None:
        changed = todo.change_status(status, at=at) or changed
    if not changed:
        raise ValidationError("Todo already satisfies requested values", {"id": normalized_id})

    await todos.save(todo)
    logger.info("todo updated", extra={"context": {"todo_id": todo.id}})
    return todo


async def delete_todos(
    todos: TodoRepository,
    relationships: RelationshipRepository,
    ids: str | Iterable[str],
) -> list[str]:
    """Delete todos and every relationship touching them.

    All ids are checked before anything is removed; a single missing id
    fails the whole request.
    """
    identifiers = normalize_ids(ids)
    if not identifiers:
        raise ValidationError("At least one todo id must be provided", {"field": "ids"})

    found = await asyncio.gather(*(todos.find_by_id(todo_id) for todo_id in identifiers))
    missing = [todo_id for todo_id, todo in zip(identifiers, found) if todo is None]
    if missing:
        raise TodoNotFoundError(missing)

    for todo_id in identifiers:
        await relationships.delete_by_todo_id(todo_id)
    if len(identifiers) == 1:
        await todos.delete(identifiers[0])
    else:
        await todos.delete_many(identifiers)
    logger.info("todos deleted", extra={"context": {"ids": identifiers}})
    return identifiers
