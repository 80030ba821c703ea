"""CLI entry point and the init command."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from trellis.cli.helpers import output_error, output_result
from trellis.core.config import VALID_LOG_LEVELS, default_config, serialize_config
from trellis.logging_setup import setup_logging
from trellis.storage.fs import CONFIG_FILE, TRELLIS_DIR, atomic_write, ensure_trellis_dirs
from trellis.storage.runtime import RuntimeOpenError, prepare_database


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(VALID_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level for stderr diagnostics. Defaults to log_level in config.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Trellis: a personal task tracker with a dependency graph."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    setup_logging(log_level)


@cli.command()
@click.option(
    "--path",
    "target_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Directory to initialize Trellis in (defaults to current directory).",
)
def init(target_path: str) -> None:
    """Initialize a new Trellis project."""
    root = Path(target_path)
    trellis_dir = root / TRELLIS_DIR

    if trellis_dir.exists() and not trellis_dir.is_dir():
        output_error(
            f"Cannot initialize: '{TRELLIS_DIR}' exists but is not a directory.",
            "INIT_ERROR",
            {"path": str(trellis_dir)},
        )

    created = not (trellis_dir / CONFIG_FILE).is_file()
    try:
        ensure_trellis_dirs(root)
        if created:
            atomic_write(trellis_dir / CONFIG_FILE, serialize_config(default_config()))
        # Opening the runtime creates the database and schema.
        asyncio.run(prepare_database(trellis_dir))
    except (OSError, ValueError, RuntimeOpenError) as exc:
        output_error(f"Failed to initialize Trellis: {exc}", "INIT_ERROR", {"path": str(root)})

    output_result({"path": str(trellis_dir), "created": created})


# ---------------------------------------------------------------------------
# Register command modules (must be after cli group is defined)
# ---------------------------------------------------------------------------

from trellis.cli import todo_cmds as _todo_cmds  # noqa: E402, F401
from trellis.cli import link_cmds as _link_cmds  # noqa: E402, F401
from trellis.cli import board_cmds as _board_cmds  # noqa: E402, F401
from trellis.cli import dashboard_cmd as _dashboard_cmd  # noqa: E402, F401
