"""Board commands: status, snapshot and hierarchy."""

from __future__ import annotations

from trellis.cli.helpers import output_result, run_workflow
from trellis.cli.main import cli
from trellis.core.hierarchy import build_hierarchy_report
from trellis.core.stats import build_board_snapshot, build_board_status
from trellis.storage.runtime import Runtime


@cli.command("status")
def status_cmd() -> None:
    """Show board roll-ups and dependency health."""

    async def _work(rt: Runtime):
        return await build_board_status(rt.todos, rt.relationships, batch_size=rt.batch_size)

    output_result(run_workflow(_work))


@cli.command("snapshot")
def snapshot_cmd() -> None:
    """Dump every todo and relationship on the board."""

    async def _work(rt: Runtime):
        return await build_board_snapshot(rt.todos, rt.relationships, batch_size=rt.batch_size)

    output_result(run_workflow(_work))


@cli.command("hierarchy")
def hierarchy_cmd() -> None:
    """Show parent/child flows built from parent_of relationships."""

    async def _work(rt: Runtime):
        return await build_hierarchy_report(rt.todos, rt.relationships, batch_size=rt.batch_size)

    output_result(run_workflow(_work))
