"""stats command — aggregate outcomes across a workspace's job history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("stats")
@click.option("--workspace", default=".", show_default=True, help="Workspace whose jobs to summarise.")
@click.pass_context
def stats_cmd(ctx, workspace: str):
    """Show job outcomes and worker failure rate for a workspace.

    Useful for spotting prompts or tool settings that keep failing before
    paying for another round of aggregate and fix stages.
    """
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No history store available.")

    items = store.list_jobs(workspace)
    if not items:
        console.print("[yellow]No review queue jobs found for this workspace.[/yellow]")
        return

    total_jobs = len(items)
    total_workers = sum(i.worker_count for i in items)
    failed_workers = sum(i.failed_worker_count for i in items)
    reconstructed = sum(1 for i in items if not i.from_summary)
    phase_counter: Counter[str] = Counter(i.phase for i in items)
    model_counter: Counter[str] = Counter(i.model or "(default)" for i in items)

    # --- Summary ---
    console.print(f"\n[bold]Review queue stats for [cyan]{workspace}[/cyan][/bold]")
    console.print(f"  Total jobs:     {total_jobs}")
    console.print(f"  Total workers:  {total_workers}")
    if total_workers:
        console.print(f"  Worker success: {(total_workers - failed_workers) / total_workers * 100:.1f}%")
    if reconstructed:
        console.print(f"  [dim]{reconstructed} job(s) without summary.json, reconstructed from files[/dim]")

    # --- Phase breakdown ---
    phase_table = Table(title="Jobs by Phase", show_header=True)
    phase_table.add_column("Phase", style="bold")
    phase_table.add_column("Jobs", justify="right")
    phase_table.add_column("% of total", justify="right")
    _phase_style = {"completed": "green", "failed": "red", "cancelled": "yellow"}
    for phase, count in phase_counter.most_common():
        style = _phase_style.get(phase, "cyan")
        phase_table.add_row(f"[{style}]{phase}[/{style}]", str(count), f"{count / total_jobs * 100:.1f}%")
    console.print(phase_table)

    # --- Models ---
    if len(model_counter) > 1 or "(default)" not in model_counter:
        model_table = Table(title="Jobs by Model", show_header=True)
        model_table.add_column("Model")
        model_table.add_column("Jobs", justify="right")
        for model, count in model_counter.most_common():
            model_table.add_row(model, str(count))
        console.print(model_table)
