"""rerun command — rerun only the failed workers of a past job."""

from __future__ import annotations

import click
from rich.console import Console

from reviewq_cli.commands.run import execute_run

console = Console()


@click.command("rerun")
@click.option("--workspace", default=".", show_default=True, help="Workspace the job ran against.")
@click.option("--job", "job_id", required=True, help="Job id as shown by `reviewq history`.")
@click.pass_context
def rerun_cmd(ctx, workspace: str, job_id: str):
    """Start a new job with the prompts of the workers that failed in JOB.

    Stage settings come from the current configuration, not from the
    original job.
    """
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No history store available.")

    item = next((i for i in store.list_jobs(workspace) if i.job_id == job_id), None)
    if item is None:
        raise click.UsageError(f"Job {job_id} not found under {workspace}. Run `reviewq history` to list jobs.")

    prompts = store.failed_prompts(item.job_path)
    if not prompts:
        console.print(f"[yellow]Job {job_id} has no failed workers. Nothing to rerun.[/yellow]")
        return

    console.print(f"Rerunning {len(prompts)} failed worker(s) from job [bold]{job_id}[/bold]")
    execute_run(ctx, ctx.obj["config"], prompts, workspace)
