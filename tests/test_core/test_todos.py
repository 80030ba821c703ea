"""Tests for trellis.core.todos (entity and workflows)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trellis.core.errors import TodoNotFoundError, ValidationError
from trellis.core.relationships import Relationship
from trellis.core.todos import (
    Todo,
    create_todo,
    delete_todos,
    list_todos,
    normalize_ids,
    normalize_page,
    update_todo,
)

T0 = datetime(2025, 1, 10, 10, 0, 0, tzinfo=timezone.utc)


def _todo(**overrides) -> Todo:
    fields = {"id": "todo-1", "title": "Write docs", "created_at": T0}
    fields.update(overrides)
    return Todo.create(**fields)


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------


class TestTodoEntity:
    def test_defaults(self) -> None:
        todo = _todo()
        assert todo.status == "pending"
        assert todo.priority == 3
        assert todo.color == "#60a5fa"
        assert todo.completed_at is None
        assert todo.is_active

    def test_created_completed_sets_completed_at(self) -> None:
        todo = _todo(status="completed")
        assert todo.completed_at == T0
        assert not todo.is_active

    def test_trims_and_blanks(self) -> None:
        todo = _todo(title="  Write docs  ", description="   ", category=" Work ")
        assert todo.title == "Write docs"
        assert todo.description is None
        assert todo.category == "Work"

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"title": "   "}, "Title is required"),
            ({"title": "x" * 121}, "Title exceeds maximum length"),
            ({"priority": 0}, "Priority must be between 1 and 5"),
            ({"priority": True}, "Priority must be between 1 and 5"),
            ({"color": "blue"}, "Color must be a valid hex code"),
            ({"category": "c" * 41}, "Category cannot exceed 40 characters"),
        ],
    )
    def test_rejects_invalid_fields(self, overrides: dict, message: str) -> None:
        with pytest.raises(ValidationError, match=message):
            _todo(**overrides)

    def test_unknown_status(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _todo(status="blocked")
        assert exc_info.value.context["allowed"] == ["pending", "in_progress", "completed"]

    def test_change_status_manages_completed_at(self) -> None:
        todo = _todo()
        later = T0 + timedelta(hours=1)
        assert todo.change_status("completed", at=later) is True
        assert todo.completed_at == later
        assert todo.change_status("pending", at=later + timedelta(hours=1)) is True
        assert todo.completed_at is None

    def test_noop_mutation_keeps_updated_at(self) -> None:
        todo = _todo()
        assert todo.rename("Write docs", at=T0 + timedelta(hours=1)) is False
        assert todo.updated_at == T0

    def test_failed_mutation_rolls_back(self) -> None:
        todo = _todo()
        with pytest.raises(ValidationError):
            todo.rename("", at=T0 + timedelta(hours=1))
        assert todo.title == "Write docs"
        assert todo.updated_at == T0

    def test_restore_round_trip(self) -> None:
        todo = _todo(status="completed", category="Work", description="notes")
        assert Todo.restore(todo.to_dict()) == todo

    def test_restore_rejects_bad_timestamps(self) -> None:
        props = _todo().to_dict()
        props["created_at"] = "yesterday"
        with pytest.raises(ValidationError, match="Todo has invalid timestamps"):
            Todo.restore(props)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalizeIds:
    def test_trims_dedupes_and_keeps_order(self) -> None:
        assert normalize_ids([" b ", "a", "b", "", "  ", "c"]) == ["b", "a", "c"]

    def test_single_string(self) -> None:
        assert normalize_ids("  a  ") == ["a"]

    def test_none_and_non_iterables(self) -> None:
        assert normalize_ids(None) == []
        assert normalize_ids(42) == []  # type: ignore[arg-type]

    def test_skips_non_strings(self) -> None:
        assert normalize_ids(["a", 1, None, "b"]) == ["a", "b"]  # type: ignore[list-item]


class TestNormalizePage:
    def test_defaults(self) -> None:
        assert normalize_page(None, None, default_limit=100, max_limit=500) == (100, 0)

    def test_clamps_to_max(self) -> None:
        assert normalize_page(900, 5, default_limit=100, max_limit=500) == (500, 5)

    @pytest.mark.parametrize("limit", [0, -1, "10", True])
    def test_bad_limit(self, limit) -> None:
        with pytest.raises(ValidationError, match="Limit must be a positive integer"):
            normalize_page(limit, None, default_limit=100, max_limit=500)

    def test_bad_offset(self) -> None:
        with pytest.raises(ValidationError, match="Offset must be zero or a positive integer"):
            normalize_page(None, -1, default_limit=100, max_limit=500)


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class TestCreateTodo:
    @pytest.mark.asyncio
    async def test_persists(self, todo_repo, make_clock) -> None:
        todo = await create_todo(
            todo_repo,
            title="Ship it",
            priority=5,
            category="Work",
            id_factory=lambda: "todo-x",
            clock=make_clock(),
        )
        assert todo.id == "todo-x"
        assert await todo_repo.find_by_id("todo-x") == todo

    @pytest.mark.asyncio
    async def test_generates_prefixed_id(self, todo_repo) -> None:
        todo = await create_todo(todo_repo, title="Ship it")
        assert todo.id.startswith("todo_")

    @pytest.mark.asyncio
    async def test_invalid_input_saves_nothing(self, todo_repo) -> None:
        with pytest.raises(ValidationError):
            await create_todo(todo_repo, title="", id_factory=lambda: "todo-x")
        assert await todo_repo.list() == []


class TestListTodos:
    @pytest.mark.asyncio
    async def test_filters(self, seed_todos, todo_repo) -> None:
        await seed_todos("a", "b", category="Work")
        await seed_todos("c", status="completed")

        rows, query = await list_todos(todo_repo, category="work")
        assert [todo.id for todo in rows] == ["a", "b"]
        assert query == {"category": "work", "limit": 100, "offset": 0}

        rows, query = await list_todos(todo_repo, status=["completed", "completed"])
        assert [todo.id for todo in rows] == ["c"]
        assert query["status"] == "completed"

    @pytest.mark.asyncio
    async def test_search(self, todo_repo) -> None:
        await todo_repo.save(_todo(id="t1", title="Buy milk"))
        await todo_repo.save(_todo(id="t2", title="Call mom", description="About MILK"))
        await todo_repo.save(_todo(id="t3", title="Fix bike"))
        rows, _ = await list_todos(todo_repo, search="milk")
        assert {todo.id for todo in rows} == {"t1", "t2"}

    @pytest.mark.asyncio
    async def test_unknown_status(self, todo_repo) -> None:
        with pytest.raises(ValidationError, match="Status filter includes unknown values"):
            await list_todos(todo_repo, status=["pending", "later"])

    @pytest.mark.asyncio
    async def test_search_too_long(self, todo_repo) -> None:
        with pytest.raises(ValidationError, match="Search term exceeds allowed length"):
            await list_todos(todo_repo, search="x" * 241)

    @pytest.mark.asyncio
    async def test_paging(self, seed_todos, todo_repo) -> None:
        await seed_todos("a", "b", "c", "d")
        rows, query = await list_todos(todo_repo, limit=2, offset=1)
        assert [todo.id for todo in rows] == ["b", "c"]
        assert (query["limit"], query["offset"]) == (2, 1)


class TestUpdateTodo:
    @pytest.mark.asyncio
    async def test_updates_fields(self, seed_todos, todo_repo, make_clock) -> None:
        await seed_todos("a")
        clock = make_clock(T0 + timedelta(days=1))
        todo = await update_todo(
            todo_repo, " a ", title="Renamed", status="completed", clock=clock
        )
        assert todo.title == "Renamed"
        assert todo.completed_at == T0 + timedelta(days=1)
        stored = await todo_repo.find_by_id("a")
        assert stored is not None and stored.status == "completed"

    @pytest.mark.asyncio
    async def test_empty_string_clears(self, seed_todos, todo_repo) -> None:
        await seed_todos("a", category="Work")
        todo = await update_todo(todo_repo, "a", category="")
        assert todo.category is None

    @pytest.mark.asyncio
    async def test_requires_id(self, todo_repo) -> None:
        with pytest.raises(ValidationError, match="Todo id is required for updates"):
            await update_todo(todo_repo, "  ", title="x")

    @pytest.mark.asyncio
    async def test_requires_a_field(self, todo_repo) -> None:
        with pytest.raises(ValidationError, match="At least one property must be provided"):
            await update_todo(todo_repo, "a")

    @pytest.mark.asyncio
    async def test_missing(self, todo_repo) -> None:
        with pytest.raises(TodoNotFoundError):
            await update_todo(todo_repo, "ghost", title="x")

    @pytest.mark.asyncio
    async def test_noop(self, seed_todos, todo_repo) -> None:
        await seed_todos("a")
        with pytest.raises(ValidationError, match="Todo already satisfies requested values"):
            await update_todo(todo_repo, "a", status="pending", priority=3)


class TestDeleteTodos:
    @pytest.mark.asyncio
    async def test_cascades_relationships(self, seed_todos, todo_repo, rel_repo) -> None:
        await seed_todos("a", "b", "c")
        await rel_repo.save(
            Relationship.create(id="r1", from_id="a", to_id="b", type="depends_on")
        )
        await rel_repo.save(
            Relationship.create(id="r2", from_id="c", to_id="a", type="blocks")
        )
        await rel_repo.save(
            Relationship.create(id="r3", from_id="b", to_id="c", type="related_to")
        )

        assert await delete_todos(todo_repo, rel_repo, ["a"]) == ["a"]

        assert await todo_repo.find_by_id("a") is None
        assert [rel.id for rel in await rel_repo.list()] == ["r3"]

    @pytest.mark.asyncio
    async def test_batch(self, seed_todos, todo_repo, rel_repo) -> None:
        await seed_todos("a", "b", "c")
        assert await delete_todos(todo_repo, rel_repo, ["a", " b ", "a"]) == ["a", "b"]
        assert [todo.id for todo in await todo_repo.list()] == ["c"]

    @pytest.mark.asyncio
    async def test_missing_id_deletes_nothing(self, seed_todos, todo_repo, rel_repo) -> None:
        await seed_todos("a")
        with pytest.raises(TodoNotFoundError) as exc_info:
            await delete_todos(todo_repo, rel_repo, ["a", "ghost"])
        assert exc_info.value.ids == ["ghost"]
        assert await todo_repo.find_by_id("a") is not None

    @pytest.mark.asyncio
    async def test_requires_ids(self, todo_repo, rel_repo) -> None:
        with pytest.raises(ValidationError, match="At least one todo id must be provided"):
            await delete_todos(todo_repo, rel_repo, [" "])
