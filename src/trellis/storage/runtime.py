"""Wire config, SQLite stores, and the graph lock for one .trellis/ directory."""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path

from trellis.core.config import (
    TrellisConfig,
    get_batch_size,
    get_list_limits,
    get_traversal_settings,
    load_config,
)
from trellis.storage.fs import CONFIG_FILE
from trellis.storage.locks import graph_lock_factory
from trellis.storage.sqlite import Database, SQLiteRelationshipRepository, SQLiteTodoRepository


class RuntimeOpenError(Exception):
    """The project database could not be opened."""


@dataclass
class Runtime:
    """Collaborators shared by every workflow call inside one event loop."""

    trellis_dir: Path
    config: TrellisConfig
    db: Database
    todos: SQLiteTodoRepository
    relationships: SQLiteRelationshipRepository
    graph_lock: Callable[[], AbstractContextManager]

    @property
    def list_limits(self) -> tuple[int, int]:
        return get_list_limits(self.config)

    @property
    def batch_size(self) -> int:
        return get_batch_size(self.config)

    @property
    def traversal(self) -> dict[str, int]:
        """Keyword arguments for the cycle-checking workflows."""
        limit, page_size = get_traversal_settings(self.config)
        return {"traversal_limit": limit, "page_size": page_size}


def read_config(trellis_dir: Path) -> TrellisConfig:
    """Load config.json, falling back to defaults when it is absent."""
    config_path = trellis_dir / CONFIG_FILE
    raw = config_path.read_text() if config_path.is_file() else "{}"
    return load_config(raw)


@contextlib.asynccontextmanager
async def open_runtime(
    trellis_dir: Path, config: TrellisConfig | None = None
) -> AsyncIterator[Runtime]:
    """Open the database named in config.json and yield both stores.

    The connection is closed when the block exits.  Pass *config* to skip
    re-reading config.json.
    """
    if config is None:
        config = read_config(trellis_dir)
    locks_dir = trellis_dir / "locks"
    locks_dir.mkdir(parents=True, exist_ok=True)
    try:
        db = await Database.open(trellis_dir / config["database"])
    except (OSError, sqlite3.Error) as exc:
        raise RuntimeOpenError(f"Cannot open Trellis database: {exc}") from exc
    try:
        yield Runtime(
            trellis_dir=trellis_dir,
            config=config,
            db=db,
            todos=SQLiteTodoRepository(db),
            relationships=SQLiteRelationshipRepository(db),
            graph_lock=graph_lock_factory(locks_dir),
        )
    finally:
        await db.close()


async def prepare_database(trellis_dir: Path, config: TrellisConfig | None = None) -> None:
    """Open and close the database once so its file and schema exist."""
    async with open_runtime(trellis_dir, config):
        pass
