"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from click.testing import CliRunner

from trellis.storage.sqlite import Database, SQLiteRelationshipRepository, SQLiteTodoRepository

BASE_TIME = datetime(2025, 1, 10, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def trellis_root(tmp_path: Path) -> Path:
    """Return a temporary directory suitable for initializing .trellis/ in."""
    return tmp_path


@pytest.fixture()
def initialized_root(trellis_root: Path) -> Path:
    """Return a temporary directory with .trellis/ already initialized."""
    from trellis.core.config import default_config, serialize_config
    from trellis.storage.fs import CONFIG_FILE, atomic_write, ensure_trellis_dirs
    from trellis.storage.runtime import prepare_database

    trellis_dir = ensure_trellis_dirs(trellis_root)
    atomic_write(trellis_dir / CONFIG_FILE, serialize_config(default_config()))
    asyncio.run(prepare_database(trellis_dir))
    return trellis_root


@pytest.fixture()
def cli_runner() -> CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture()
def cli_env(initialized_root: Path) -> dict[str, str]:
    """Return env dict with TRELLIS_ROOT pointing to initialized_root."""
    return {"TRELLIS_ROOT": str(initialized_root)}


@pytest.fixture()
def invoke(cli_runner: CliRunner, cli_env: dict[str, str]):
    """Return a helper that invokes CLI commands with the right environment.

    Usage::

        result = invoke("link", from_id, to_id, "--type", "blocks")
    """
    from trellis.cli.main import cli

    def _invoke(*args: str, **kwargs):
        return cli_runner.invoke(cli, list(args), env=cli_env, **kwargs)

    return _invoke


@pytest.fixture()
def invoke_json(invoke):
    """Invoke a command and parse its envelope.

    Successful commands print to stdout, failures to stderr.  Returns
    ``(parsed_envelope, exit_code)``.
    """

    def _invoke_json(*args: str) -> tuple[dict, int]:
        result = invoke(*args)
        text = result.stdout if result.exit_code == 0 else result.stderr
        return json.loads(text), result.exit_code

    return _invoke_json


@pytest.fixture()
def add_todo(invoke_json):
    """Factory fixture: create a todo through the CLI and return its data.

    Usage::

        todo = add_todo("Write docs", "--priority", "4")
    """

    def _add(title: str = "Test todo", *extra_args: str) -> dict:
        parsed, code = invoke_json("add", title, *extra_args)
        assert code == 0, f"add failed: {parsed}"
        return parsed["data"]

    return _add


# ---------------------------------------------------------------------------
# In-memory SQLite stores
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def db():
    database = await Database.open(":memory:")
    yield database
    await database.close()


@pytest.fixture()
def todo_repo(db: Database) -> SQLiteTodoRepository:
    return SQLiteTodoRepository(db)


@pytest.fixture()
def rel_repo(db: Database) -> SQLiteRelationshipRepository:
    return SQLiteRelationshipRepository(db)


@pytest.fixture()
def seed_todos(todo_repo: SQLiteTodoRepository):
    """Return an async helper that saves todos with the given ids.

    Each todo gets a creation time one minute after the previous one so
    ordering is deterministic.
    """
    from trellis.core.todos import Todo

    async def _seed(*ids: str, **fields) -> list[Todo]:
        created = []
        for index, todo_id in enumerate(ids):
            todo = Todo.create(
                id=todo_id,
                title=fields.get("title", f"Todo {todo_id}"),
                status=fields.get("status", "pending"),
                priority=fields.get("priority", 3),
                category=fields.get("category"),
                created_at=BASE_TIME + timedelta(minutes=index),
            )
            await todo_repo.save(todo)
            created.append(todo)
        return created

    return _seed


@pytest.fixture()
def make_clock():
    """Return a factory for deterministic clocks that tick one second per call."""

    def _make(start: datetime = BASE_TIME):
        state = {"now": start}

        def _clock() -> datetime:
            current = state["now"]
            state["now"] = current + timedelta(seconds=1)
            return current

        return _clock

    return _make


@pytest.fixture()
def make_ids():
    """Return a factory for sequential id generators (``rel-1``, ``rel-2``, ...)."""

    def _make(prefix: str = "rel"):
        counter = {"n": 0}

        def _next() -> str:
            counter["n"] += 1
            return f"{prefix}-{counter['n']}"

        return _next

    return _make
