"""Todo commands: add, list, update, delete."""

from __future__ import annotations

import click

from trellis.cli.helpers import output_result, parse_int, run_workflow
from trellis.cli.main import cli
from trellis.core.todos import (
    DEFAULT_COLOR,
    DEFAULT_PRIORITY,
    TODO_STATUSES,
    create_todo,
    delete_todos,
    list_todos,
    update_todo,
)
from trellis.storage.runtime import Runtime

_STATUS_HELP = f"Status: {', '.join(TODO_STATUSES)}."


@cli.command("add")
@click.argument("title")
@click.option("-d", "--description", default=None, help="Longer description (max 2000 chars).")
@click.option("--priority", default=None, help=f"Priority 1-5 (default {DEFAULT_PRIORITY}).")
@click.option("--category", default=None, help="Free-text category.")
@click.option("--status", default="pending", show_default=True, help=_STATUS_HELP)
@click.option("--color", default=DEFAULT_COLOR, show_default=True, help="Hex color, e.g. #60a5fa.")
def add_cmd(
    title: str,
    description: str | None,
    priority: str | None,
    category: str | None,
    status: str,
    color: str,
) -> None:
    """Create a todo."""

    async def _work(rt: Runtime):
        parsed = parse_int(priority, "priority")
        return await create_todo(
            rt.todos,
            title=title,
            description=description,
            status=status,
            priority=DEFAULT_PRIORITY if parsed is None else parsed,
            category=category,
            color=color,
        )

    todo = run_workflow(_work)
    output_result(todo.to_dict())


@cli.command("list")
@click.option("--status", "statuses", multiple=True, help=f"{_STATUS_HELP} Repeatable.")
@click.option("--category", default=None, help="Match category (case-insensitive).")
@click.option("--search", default=None, help="Substring in title, description, or category.")
@click.option("--limit", default=None, help="Page size (default 100, max 500).")
@click.option("--offset", default=None, help="Rows to skip.")
def list_cmd(
    statuses: tuple[str, ...],
    category: str | None,
    search: str | None,
    limit: str | None,
    offset: str | None,
) -> None:
    """List todos, oldest first."""

    async def _work(rt: Runtime):
        default_limit, max_limit = rt.list_limits
        return await list_todos(
            rt.todos,
            status=list(statuses) or None,
            category=category,
            search=search,
            limit=parse_int(limit, "limit"),
            offset=parse_int(offset, "offset"),
            default_limit=default_limit,
            max_limit=max_limit,
        )

    todos, filters = run_workflow(_work)
    output_result({"todos": [todo.to_dict() for todo in todos], "filters": filters})


@cli.command("update")
@click.argument("todo_id")
@click.option("--title", default=None)
@click.option("-d", "--description", default=None, help="Pass an empty string to clear.")
@click.option("--priority", default=None, help="Priority 1-5.")
@click.option("--category", default=None, help="Pass an empty string to clear.")
@click.option("--status", default=None, help=_STATUS_HELP)
@click.option("--color", default=None, help="Hex color.")
def update_cmd(
    todo_id: str,
    title: str | None,
    description: str | None,
    priority: str | None,
    category: str | None,
    status: str | None,
    color: str | None,
) -> None:
    """Update fields on a todo."""

    async def _work(rt: Runtime):
        return await update_todo(
            rt.todos,
            todo_id,
            title=title,
            description=description,
            status=status,
            priority=parse_int(priority, "priority"),
            category=category,
            color=color,
        )

    todo = run_workflow(_work)
    output_result(todo.to_dict())


@cli.command("delete")
@click.argument("ids", nargs=-1)
def delete_cmd(ids: tuple[str, ...]) -> None:
    """Delete todos and every relationship that touches them."""

    async def _work(rt: Runtime):
        return await delete_todos(rt.todos, rt.relationships, list(ids))

    deleted = run_workflow(_work)
    output_result({"deleted_count": len(deleted), "ids": deleted})
