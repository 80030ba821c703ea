"""Shared CLI helpers and JSON envelope output."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import NoReturn, TypeVar

import click

from trellis.core.config import TrellisConfig, resolve_log_level
from trellis.core.errors import DomainError, ValidationError
from trellis.core.timestamps import format_timestamp
from trellis.logging_setup import LOG_LEVEL_ENV, setup_logging
from trellis.storage.fs import TRELLIS_DIR, TrellisRootError, find_root
from trellis.storage.locks import LockTimeout
from trellis.storage.runtime import Runtime, RuntimeOpenError, open_runtime, read_config

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def json_default(value: object) -> object:
    """``json.dumps`` hook for datetimes and sets."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_envelope(success: bool, *, data: object = None, error: object = None) -> str:
    """Build a structured JSON output envelope."""
    result: dict = {"success": success}
    if success:
        result["data"] = data
    if error is not None:
        result["error"] = error
    return json.dumps(result, sort_keys=True, indent=2, default=json_default) + "\n"


def json_error_obj(code: str, message: str, context: dict | None = None) -> dict:
    """Build an error object for the JSON envelope."""
    return {"code": code, "message": message, "context": context or {}}


def output_error(
    message: str, code: str, context: dict | None = None, exit_code: int = 1
) -> NoReturn:
    """Print the error envelope to stderr and exit."""
    click.echo(json_envelope(False, error=json_error_obj(code, message, context)), err=True)
    raise SystemExit(exit_code)


def output_result(data: object) -> None:
    """Print the success envelope to stdout."""
    click.echo(json_envelope(True, data=data))


# ---------------------------------------------------------------------------
# Root & runtime
# ---------------------------------------------------------------------------


def require_root() -> Path:
    """Find the .trellis/ directory or exit with error."""
    try:
        root = find_root()
    except TrellisRootError as e:
        output_error(str(e), "NOT_INITIALIZED")
    if root is None:
        output_error(
            "Not a Trellis project (no .trellis/ found). Run 'trellis init' first.",
            "NOT_INITIALIZED",
        )
    return root / TRELLIS_DIR


def _apply_config_log_level(config: TrellisConfig) -> None:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return
    root_ctx = ctx.find_root()
    if root_ctx.obj and root_ctx.obj.get("log_level"):
        return
    if os.environ.get(LOG_LEVEL_ENV):
        return
    setup_logging(resolve_log_level(config))


def run_workflow(work: Callable[[Runtime], Awaitable[T]]) -> T:
    """Open the project runtime, run *work* to completion, and map failures.

    Domain errors keep their code and context.  Anything unexpected is
    logged and reported as ``UNKNOWN_ERROR``.  Every failure exits 1.
    """
    trellis_dir = require_root()
    try:
        config = read_config(trellis_dir)
    except (OSError, ValueError) as exc:
        output_error(f"Cannot open Trellis project: {exc}", "CONFIG_ERROR")
    try:
        _apply_config_log_level(config)
    except ValueError as exc:
        output_error(str(exc), "CONFIG_ERROR")

    async def _main() -> T:
        async with open_runtime(trellis_dir, config) as runtime:
            return await work(runtime)

    try:
        return asyncio.run(_main())
    except RuntimeOpenError as exc:
        output_error(str(exc), "CONFIG_ERROR")
    except DomainError as exc:
        output_error(exc.message, exc.code, exc.context)
    except LockTimeout as exc:
        output_error(str(exc), "LOCK_TIMEOUT")
    except Exception as exc:
        logger.exception("unexpected error in command")
        output_error(str(exc) or type(exc).__name__, "UNKNOWN_ERROR")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def parse_int(raw: str | None, field: str) -> int | None:
    """Parse an optional integer option, raising ``ValidationError`` on junk.

    Options are read as strings so malformed numbers still produce the
    JSON error envelope instead of a usage error.
    """
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ValidationError(
            f"{field} must be an integer", {"field": field, "value": raw}
        ) from None
