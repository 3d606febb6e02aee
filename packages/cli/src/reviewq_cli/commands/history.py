"""history command — list past review queue jobs for a workspace."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_phase_style = {
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
    "aggregating": "cyan",
    "fixing": "cyan",
    "reviewing": "cyan",
}


@click.command("history")
@click.option("--workspace", default=".", show_default=True, help="Workspace whose jobs to list.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of jobs to show.")
@click.pass_context
def history_cmd(ctx, workspace: str, limit: int):
    """Show past review queue jobs, newest first.

    Jobs without a summary.json (crashed or interrupted runs) are
    reconstructed from the files left in their job directory.
    """
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No history store available.")

    items = store.list_jobs(workspace)
    if not items:
        console.print("[yellow]No review queue jobs found.[/yellow]")
        return

    items = items[:limit]

    table = Table(title=f"Review Queue History — {workspace}", show_header=True, header_style="bold cyan")
    table.add_column("Job", style="bold", no_wrap=True)
    table.add_column("Created", no_wrap=True)
    table.add_column("Phase")
    table.add_column("Workers", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Model", max_width=20)
    table.add_column("Outputs")

    for item in items:
        style = _phase_style.get(item.phase, "white")
        outputs = [name for name, path in (("aggregate", item.aggregate_output_path), ("fix", item.fix_output_path)) if path]
        table.add_row(
            item.job_id,
            item.created_at.strftime("%Y-%m-%d %H:%M:%S") if item.created_at else "—",
            f"[{style}]{item.phase}[/{style}]",
            str(item.worker_count),
            str(item.failed_worker_count),
            item.model or "",
            ", ".join(outputs),
        )

    console.print(table)
