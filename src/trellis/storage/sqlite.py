"""SQLite adapters for the relationship and todo stores."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any

import aiosqlite

from trellis.core.ports import RelationshipQuery, TodoQuery
from trellis.core.relationships import Relationship
from trellis.core.timestamps import format_timestamp
from trellis.core.todos import Todo

logger = logging.getLogger(__name__)

# Cap for list() calls that do not pass a limit.
DEFAULT_PAGE_SIZE = 500

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS todos (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL,
        priority INTEGER NOT NULL,
        category TEXT,
        color TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_todos_status ON todos(status)",
    "CREATE INDEX IF NOT EXISTS idx_todos_category ON todos(category)",
    "CREATE INDEX IF NOT EXISTS idx_todos_priority ON todos(priority)",
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        from_task_id TEXT NOT NULL,
        to_task_id TEXT NOT NULL,
        type TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_relationships_from ON relationships(from_task_id)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_to ON relationships(to_task_id)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_type ON relationships(type)",
)


class Database:
    """One aiosqlite connection plus the schema both stores share.

    Build with :meth:`open` inside a running event loop.  Writes go
    through :meth:`transaction`, which commits on success and rolls the
    whole block back on any error.
    """

    def __init__(self, conn: aiosqlite.Connection, path: str) -> None:
        self.path = path
        self._conn = conn
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: str | Path = ":memory:") -> Database:
        conn = await aiosqlite.connect(str(path), timeout=30.0)
        conn.row_factory = aiosqlite.Row
        db = cls(conn, str(path))
        try:
            if db.path != ":memory:":
                with contextlib.suppress(sqlite3.DatabaseError):
                    await conn.execute("PRAGMA journal_mode=WAL")
            await db._ensure_schema()
        except BaseException:
            await conn.close()
            raise
        return db

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._write_lock:
            try:
                yield self._conn
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()

    async def _ensure_schema(self) -> None:
        async with self.transaction() as conn:
            for statement in _SCHEMA:
                await conn.execute(statement)

    async def close(self) -> None:
        await self._conn.close()


def _page(query: dict[str, Any]) -> tuple[int, int]:
    limit = query.get("limit")
    offset = query.get("offset")
    return (limit if limit is not None else DEFAULT_PAGE_SIZE), (offset or 0)


def _match_any(column: str, value: str | Sequence[str]) -> tuple[str, list[Any]]:
    values = [value] if isinstance(value, str) else list(value)
    if len(values) == 1:
        return f"{column} = ?", values
    placeholders = ", ".join("?" for _ in values)
    return f"{column} IN ({placeholders})", values


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


class SQLiteRelationshipRepository:
    """``RelationshipRepository`` backed by the ``relationships`` table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_row(rel: Relationship) -> dict[str, Any]:
        return {
            "id": rel.id,
            "from_task_id": rel.from_id,
            "to_task_id": rel.to_id,
            "type": rel.type,
            "description": rel.description,
            "created_at": format_timestamp(rel.created_at),
            "updated_at": format_timestamp(rel.updated_at),
        }

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Relationship:
        return Relationship.restore(
            {
                "id": row["id"],
                "from_id": row["from_task_id"],
                "to_id": row["to_task_id"],
                "type": row["type"],
                "description": row["description"],
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            }
        )

    async def _fetch_one(self, sql: str, params: Sequence[Any]) -> Relationship | None:
        async with self._db.connection.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return self._from_row(row) if row is not None else None

    async def save(self, relationship: Relationship) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO relationships
                    (id, from_task_id, to_task_id, type, description, created_at, updated_at)
                VALUES
                    (:id, :from_task_id, :to_task_id, :type, :description, :created_at, :updated_at)
                ON CONFLICT(id) DO UPDATE SET
                    from_task_id = excluded.from_task_id,
                    to_task_id = excluded.to_task_id,
                    type = excluded.type,
                    description = excluded.description,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                self._to_row(relationship),
            )

    async def find_by_id(self, relationship_id: str) -> Relationship | None:
        return await self._fetch_one(
            "SELECT * FROM relationships WHERE id = ?", (relationship_id,)
        )

    async def find_between(
        self, from_id: str, to_id: str, rel_type: str | None = None
    ) -> Relationship | None:
        sql = "SELECT * FROM relationships WHERE from_task_id = ? AND to_task_id = ?"
        params: list[Any] = [from_id, to_id]
        if rel_type is not None:
            sql += " AND type = ?"
            params.append(rel_type)
        sql += " ORDER BY created_at DESC, id DESC LIMIT 1"
        return await self._fetch_one(sql, params)

    async def list(self, query: RelationshipQuery | None = None) -> list[Relationship]:
        query = query or {}
        clauses: list[str] = []
        params: list[Any] = []
        if query.get("from_id") is not None:
            clauses.append("from_task_id = ?")
            params.append(query["from_id"])
        if query.get("to_id") is not None:
            clauses.append("to_task_id = ?")
            params.append(query["to_id"])
        if query.get("involving") is not None:
            clauses.append("(from_task_id = ? OR to_task_id = ?)")
            params.extend([query["involving"], query["involving"]])
        if query.get("type"):
            clause, values = _match_any("type", query["type"])
            clauses.append(clause)
            params.extend(values)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit, offset = _page(query)  # type: ignore[arg-type]
        async with self._db.connection.execute(
            f"SELECT * FROM relationships {where} "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._from_row(row) for row in rows]

    async def delete(self, relationship_id: str) -> None:
        async with self._db.transaction() as conn:
            await conn.execute("DELETE FROM relationships WHERE id = ?", (relationship_id,))

    async def delete_many(self, relationship_ids: Sequence[str]) -> None:
        """Delete every id in one transaction; a failure rolls all of them back."""
        async with self._db.transaction() as conn:
            for relationship_id in relationship_ids:
                await conn.execute("DELETE FROM relationships WHERE id = ?", (relationship_id,))

    async def delete_by_todo_id(self, todo_id: str) -> int:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM relationships WHERE from_task_id = ? OR to_task_id = ?",
                (todo_id, todo_id),
            )
            removed = cursor.rowcount
            await cursor.close()
        if removed:
            logger.debug(
                "cascade removed relationships",
                extra={"context": {"todo_id": todo_id, "count": removed}},
            )
        return removed


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


class SQLiteTodoRepository:
    """``TodoRepository`` backed by the ``todos`` table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_row(todo: Todo) -> dict[str, Any]:
        return {
            "id": todo.id,
            "title": todo.title,
            "description": todo.description,
            "status": todo.status,
            "priority": todo.priority,
            "category": todo.category,
            "color": todo.color,
            "created_at": format_timestamp(todo.created_at),
            "updated_at": format_timestamp(todo.updated_at),
            "completed_at": (
                format_timestamp(todo.completed_at) if todo.completed_at is not None else None
            ),
        }

    async def save(self, todo: Todo) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO todos
                    (id, title, description, status, priority, category, color,
                     created_at, updated_at, completed_at)
                VALUES
                    (:id, :title, :description, :status, :priority, :category, :color,
                     :created_at, :updated_at, :completed_at)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    status = excluded.status,
                    priority = excluded.priority,
                    category = excluded.category,
                    color = excluded.color,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at,
                    completed_at = excluded.completed_at
                """,
                self._to_row(todo),
            )

    async def find_by_id(self, todo_id: str) -> Todo | None:
        async with self._db.connection.execute(
            "SELECT * FROM todos WHERE id = ?", (todo_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return Todo.restore(dict(row)) if row is not None else None

    async def list(self, query: TodoQuery | None = None) -> list[Todo]:
        query = query or {}
        clauses: list[str] = []
        params: list[Any] = []
        if query.get("status"):
            clause, values = _match_any("status", query["status"])
            clauses.append(clause)
            params.extend(values)
        if query.get("category"):
            clauses.append("LOWER(category) = LOWER(?)")
            params.append(query["category"])
        if query.get("search"):
            clauses.append(
                "(LOWER(title) LIKE ? OR LOWER(IFNULL(description, '')) LIKE ? "
                "OR LOWER(IFNULL(category, '')) LIKE ?)"
            )
            pattern = f"%{query['search'].lower()}%"
            params.extend([pattern, pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit, offset = _page(query)  # type: ignore[arg-type]
        async with self._db.connection.execute(
            f"SELECT * FROM todos {where} ORDER BY created_at ASC, id ASC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ) as cursor:
            rows = await cursor.fetchall()
        return [Todo.restore(dict(row)) for row in rows]

    async def delete(self, todo_id: str) -> None:
        async with self._db.transaction() as conn:
            await conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))

    async def delete_many(self, todo_ids: Sequence[str]) -> None:
        async with self._db.transaction() as conn:
            for todo_id in todo_ids:
                await conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
