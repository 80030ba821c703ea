"""Dashboard-specific fixtures."""

from __future__ import annotations

import asyncio
import socket
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from trellis.core.config import default_config, serialize_config
from trellis.core.relationships import Relationship
from trellis.core.todos import Todo
from trellis.dashboard.server import create_server
from trellis.storage.fs import CONFIG_FILE, atomic_write, ensure_trellis_dirs
from trellis.storage.runtime import open_runtime

BASE_TIME = datetime(2025, 1, 10, 10, 0, 0, tzinfo=timezone.utc)


async def _seed(trellis_dir: Path) -> dict[str, str]:
    async with open_runtime(trellis_dir) as runtime:
        specs = [
            ("todo_fix_login", "Fix login redirect", "pending", "Auth"),
            ("todo_update_deps", "Update dependencies", "in_progress", None),
            ("todo_write_readme", "Write README", "completed", "Docs"),
        ]
        for index, (todo_id, title, status, category) in enumerate(specs):
            await runtime.todos.save(
                Todo.create(
                    id=todo_id,
                    title=title,
                    status=status,
                    category=category,
                    created_at=BASE_TIME + timedelta(hours=index),
                )
            )
        await runtime.relationships.save(
            Relationship.create(
                id="rel_deps_block_login",
                from_id="todo_update_deps",
                to_id="todo_fix_login",
                type="blocks",
                description="needs new deps",
                created_at=BASE_TIME + timedelta(hours=3),
            )
        )
    return {
        "pending": "todo_fix_login",
        "in_progress": "todo_update_deps",
        "completed": "todo_write_readme",
        "relationship": "rel_deps_block_login",
    }


@pytest.fixture()
def populated_trellis_dir(tmp_path: Path) -> tuple[Path, dict[str, str]]:
    """Create a .trellis/ directory with three todos and one relationship.

    Returns (trellis_dir, ids) where ids maps role names to fixed ids.
    """
    trellis_dir = ensure_trellis_dirs(tmp_path)
    atomic_write(trellis_dir / CONFIG_FILE, serialize_config(default_config()))
    ids = asyncio.run(_seed(trellis_dir))
    return trellis_dir, ids


def _get_free_port() -> int:
    """Find an available TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture()
def dashboard_server(populated_trellis_dir: tuple[Path, dict[str, str]]):
    """Start a dashboard server on a random port, yield (base_url, trellis_dir, ids)."""
    trellis_dir, ids = populated_trellis_dir
    port = _get_free_port()
    host = "127.0.0.1"
    server = create_server(trellis_dir, host, port)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://{host}:{port}"
    yield base_url, trellis_dir, ids

    server.shutdown()
    server.server_close()
