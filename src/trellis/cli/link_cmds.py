"""Relationship commands: link, unlink, links, relink."""

from __future__ import annotations

import click

from trellis.cli.helpers import output_result, parse_int, run_workflow
from trellis.cli.main import cli
from trellis.core.linking import (
    create_relationship,
    delete_relationships,
    list_relationships,
    update_relationship,
)
from trellis.core.relationships import DEFAULT_RELATIONSHIP_TYPE, RELATIONSHIP_TYPES
from trellis.storage.runtime import Runtime

_TYPE_HELP = f"Relationship type: {', '.join(RELATIONSHIP_TYPES)}."


# ---------------------------------------------------------------------------
# trellis link
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("from_id")
@click.argument("to_id")
@click.option(
    "--type",
    "rel_type",
    default=DEFAULT_RELATIONSHIP_TYPE,
    show_default=True,
    help=_TYPE_HELP,
)
@click.option("-d", "--description", default=None, help="Optional note (max 500 chars).")
def link(from_id: str, to_id: str, rel_type: str, description: str | None) -> None:
    """Create a relationship from FROM_ID to TO_ID."""

    async def _work(rt: Runtime):
        return await create_relationship(
            rt.relationships,
            rt.todos,
            from_id=from_id,
            to_id=to_id,
            rel_type=rel_type,
            description=description,
            graph_lock=rt.graph_lock,
            **rt.traversal,
        )

    relationship = run_workflow(_work)
    output_result(relationship.to_dict())


# ---------------------------------------------------------------------------
# trellis unlink
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("ids", nargs=-1)
def unlink(ids: tuple[str, ...]) -> None:
    """Delete one or more relationships by id.

    Nothing is deleted unless every id exists.
    """

    async def _work(rt: Runtime):
        return await delete_relationships(rt.relationships, list(ids))

    deleted = run_workflow(_work)
    output_result({"deleted_count": len(deleted), "ids": deleted})


# ---------------------------------------------------------------------------
# trellis links
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--from", "from_id", default=None, help="Only relationships from this todo.")
@click.option("--to", "to_id", default=None, help="Only relationships to this todo.")
@click.option("--involving", default=None, help="Relationships touching this todo at either end.")
@click.option(
    "--type",
    "rel_types",
    multiple=True,
    help=f"{_TYPE_HELP} Repeat to match any of several.",
)
@click.option("--limit", default=None, help="Page size (default 100, max 500).")
@click.option("--offset", default=None, help="Rows to skip.")
def links(
    from_id: str | None,
    to_id: str | None,
    involving: str | None,
    rel_types: tuple[str, ...],
    limit: str | None,
    offset: str | None,
) -> None:
    """List relationships, newest first."""

    async def _work(rt: Runtime):
        default_limit, max_limit = rt.list_limits
        return await list_relationships(
            rt.relationships,
            from_id=from_id,
            to_id=to_id,
            involving=involving,
            rel_type=list(rel_types) or None,
            limit=parse_int(limit, "limit"),
            offset=parse_int(offset, "offset"),
            default_limit=default_limit,
            max_limit=max_limit,
        )

    relationships, filters = run_workflow(_work)
    output_result(
        {
            "relationships": [rel.to_dict() for rel in relationships],
            "filters": filters,
        }
    )


# ---------------------------------------------------------------------------
# trellis relink
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("relationship_id")
@click.option("--type", "rel_type", default=None, help=_TYPE_HELP)
@click.option(
    "-d",
    "--description",
    default=None,
    help="New description. Pass an empty string to clear it.",
)
def relink(relationship_id: str, rel_type: str | None, description: str | None) -> None:
    """Change a relationship's type or description."""

    async def _work(rt: Runtime):
        return await update_relationship(
            rt.relationships,
            relationship_id,
            rel_type=rel_type,
            description=description,
            graph_lock=rt.graph_lock,
            **rt.traversal,
        )

    relationship = run_workflow(_work)
    output_result(relationship.to_dict())
