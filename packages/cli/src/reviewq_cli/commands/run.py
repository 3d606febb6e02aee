"""run command — review a workspace with parallel workers, then aggregate and fix."""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console

from reviewq_core.config import BUILTIN_PRESETS, merge_overrides, resolve_review_prompts, resolve_stage_prompts
from reviewq_core.errors import ReviewQueueError, RunCancelledError, render_error
from reviewq_core.executors.local import SubprocessExecutor
from reviewq_core.models import (
    AggregateReady,
    FixReady,
    PhaseChanged,
    ReviewQueueConfig,
    ReviewQueueEvent,
    ReviewQueuePhase,
    ReviewQueueResult,
    ReviewWorkerResult,
    RunFailed,
    WorkerStatus,
    WorkerUpdated,
)
from reviewq_core.orchestrator import AGGREGATE_TIMEOUT, FIX_TIMEOUT, REVIEW_TIMEOUT, ReviewQueueOrchestrator
from reviewq_store.models import ReviewQueueJobSummary, WorkerRecord

console = Console()

EXIT_FAILED = 1
EXIT_CANCELLED = 130

_phase_style = {
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
}
_status_style = {
    WorkerStatus.RUNNING: "cyan",
    WorkerStatus.COMPLETED: "green",
    WorkerStatus.FAILED: "red",
}


def build_orchestrator(config: dict) -> ReviewQueueOrchestrator:
    tool = config.get("tool") or "codex"
    executor = SubprocessExecutor(binary_overrides={tool: config.get("tool_path")})
    return ReviewQueueOrchestrator(
        executor,
        tool=tool,
        cache_root=config.get("cache_root") or ".runtime-cache",
        max_concurrency=config.get("max_concurrency"),
        review_timeout=config.get("review_timeout") or REVIEW_TIMEOUT,
        aggregate_timeout=config.get("aggregate_timeout") or AGGREGATE_TIMEOUT,
        fix_timeout=config.get("fix_timeout") or FIX_TIMEOUT,
    )


class RunMonitor:
    """Turns orchestrator events into terminal output and tracks run state.

    The orchestrator delivers events one at a time, so no locking is needed
    here even though worker events arrive from pool threads.
    """

    def __init__(self, out: Console | None = None):
        self.console = out or console
        self.phase = ReviewQueuePhase.IDLE
        self.workers: dict[int, ReviewWorkerResult] = {}
        self.aggregate_output_path: str | None = None
        self.fix_output_path: str | None = None
        self.error_message: str | None = None
        self.started_at = datetime.now().astimezone()

    def handle(self, event: ReviewQueueEvent) -> None:
        if isinstance(event, PhaseChanged):
            self.phase = event.phase
            style = _phase_style.get(event.phase.value, "bold")
            self.console.print(f"[{style}]Phase: {event.phase.value}[/{style}]")
        elif isinstance(event, WorkerUpdated):
            worker = event.worker
            self.workers[worker.id] = worker
            if worker.status == WorkerStatus.PENDING:
                return
            style = _status_style.get(worker.status, "white")
            line = f"  Worker {worker.id:02d}: [{style}]{worker.status.value}[/{style}]"
            if worker.status == WorkerStatus.FAILED and worker.error:
                line += f" [dim]{_first_line(worker.error)}[/dim]"
            self.console.print(line)
        elif isinstance(event, AggregateReady):
            self.aggregate_output_path = event.path
            self.console.print(f"  Aggregate ready: [bold]{event.path}[/bold]")
        elif isinstance(event, FixReady):
            self.fix_output_path = event.path
            self.console.print(f"  Fix report ready: [bold]{event.path}[/bold]")
        elif isinstance(event, RunFailed):
            self.phase = ReviewQueuePhase.FAILED
            self.error_message = event.message

    def sorted_workers(self) -> list[ReviewWorkerResult]:
        return [self.workers[i] for i in sorted(self.workers)]


def _first_line(text: str, limit: int = 120) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= limit else line[: limit - 1] + "…"


def _worker_record(worker: ReviewWorkerResult) -> WorkerRecord:
    return WorkerRecord(
        id=worker.id,
        prompt=worker.prompt,
        status=worker.status.value,
        output_path=worker.output_path,
        stdout_path=worker.stdout_path,
        stderr_path=worker.stderr_path,
        error=worker.error,
    )


def build_summary(
    job_id: str,
    job_path: str,
    phase: ReviewQueuePhase,
    workers: list[ReviewWorkerResult],
    config: ReviewQueueConfig,
    created_at: datetime,
    aggregate_output_path: str | None = None,
    fix_output_path: str | None = None,
) -> ReviewQueueJobSummary:
    """Map run state onto the store's summary record.

    The CLI owns this mapping: reviewq_core has no store knowledge and
    reviewq_store has no core knowledge.
    """
    return ReviewQueueJobSummary(
        job_id=job_id,
        job_path=job_path,
        phase=phase.value,
        created_at=created_at.isoformat(),
        updated_at=datetime.now().astimezone().isoformat(),
        worker_count=len(workers),
        completed_worker_count=sum(1 for w in workers if w.status == WorkerStatus.COMPLETED),
        failed_worker_count=sum(1 for w in workers if w.status == WorkerStatus.FAILED),
        workers=[_worker_record(w) for w in workers],
        aggregate_output_path=aggregate_output_path,
        fix_output_path=fix_output_path,
        run_aggregate=config.run_aggregate,
        run_fix=config.run_fix,
        model=config.normalized_model(),
    )


def _summary_from_result(
    result: ReviewQueueResult, config: ReviewQueueConfig, created_at: datetime
) -> ReviewQueueJobSummary:
    return build_summary(
        result.job_id,
        result.job_path,
        ReviewQueuePhase.COMPLETED,
        result.workers,
        config,
        created_at,
        aggregate_output_path=result.aggregate_output_path,
        fix_output_path=result.fix_output_path,
    )


def _run_in_background(orchestrator, queue_config: ReviewQueueConfig, monitor: RunMonitor):
    """Run the queue on a worker thread so Ctrl-C can request a cooperative cancel.

    Returns (result, error); exactly one is None.
    """
    cancel_event = threading.Event()
    outcome: dict = {}

    def target():
        try:
            outcome["result"] = orchestrator.run_queue(queue_config, monitor.handle, cancel_event)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target, name="reviewq-run", daemon=True)
    thread.start()
    while thread.is_alive():
        try:
            thread.join(timeout=0.2)
        except KeyboardInterrupt:
            if not cancel_event.is_set():
                cancel_event.set()
                console.print("\n[yellow]Cancelling — running workers will finish first.[/yellow]")

    return outcome.get("result"), outcome.get("error")


def execute_run(ctx: click.Context, config: dict, prompts: list[str], workspace: str) -> ReviewQueueResult:
    """Validate stage settings, run the queue, persist a summary, and report.

    Shared by `run` and `rerun`. Exits with 1 on failure and 130 on cancellation.
    """
    try:
        aggregate_prompt, fix_prompt = resolve_stage_prompts(config)
    except ValueError as e:
        raise click.UsageError(str(e))
    run_aggregate = bool(config.get("run_aggregate"))
    run_fix = bool(config.get("run_fix"))
    if run_fix and not run_aggregate:
        raise click.UsageError("The fix stage requires the aggregate stage. Enable --aggregate or pass --no-fix.")
    if run_aggregate and not aggregate_prompt:
        raise click.UsageError("The aggregate prompt is empty.")
    if run_fix and not fix_prompt:
        raise click.UsageError("The fix prompt is empty.")

    workspace = workspace.strip()
    queue_config = ReviewQueueConfig(
        workspace_path=str(Path(workspace).expanduser().resolve()) if workspace else "",
        review_prompts=prompts,
        aggregate_prompt=aggregate_prompt,
        fix_prompt=fix_prompt,
        run_aggregate=run_aggregate,
        run_fix=run_fix,
        model=config.get("model"),
        full_auto=bool(config.get("full_auto")),
        skip_git_repo_check=bool(config.get("skip_git_repo_check")),
        ephemeral=bool(config.get("ephemeral")),
    )

    try:
        orchestrator = build_orchestrator(config)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")
    monitor = RunMonitor()
    store = ctx.obj.get("store") if ctx.obj else None

    result, error = _run_in_background(orchestrator, queue_config, monitor)

    if error is None:
        if store is not None:
            store.save(_summary_from_result(result, queue_config, monitor.started_at))
        console.print(
            f"\n[green]Review queue complete.[/green] Workers: {len(result.workers)} "
            f"(ok: {result.completed_worker_count}, failed: {result.failed_worker_count}) | Job: {result.job_id}"
        )
        console.print(f"  Job directory: {result.job_path}")
        return result

    if not isinstance(error, ReviewQueueError):
        raise error

    if error.job_path and store is not None:
        store.save(
            build_summary(
                error.job_id or Path(error.job_path).name,
                error.job_path,
                ReviewQueuePhase.CANCELLED if isinstance(error, RunCancelledError) else ReviewQueuePhase.FAILED,
                monitor.sorted_workers(),
                queue_config,
                monitor.started_at,
                aggregate_output_path=monitor.aggregate_output_path,
                fix_output_path=monitor.fix_output_path,
            )
        )

    if isinstance(error, RunCancelledError):
        console.print(f"\n[yellow]{render_error(error)}[/yellow]")
        ctx.exit(EXIT_CANCELLED)
    console.print(f"\n[red]{render_error(error)}[/red]")
    if error.job_path:
        console.print(f"  Job directory: {error.job_path}")
    ctx.exit(EXIT_FAILED)


@click.command("run")
@click.option("--workspace", default=".", show_default=True, help="Directory to review.")
@click.option(
    "--prompt",
    "prompts",
    multiple=True,
    help="Review prompt for one worker. Repeat for more workers. Overrides --workers and the preset prompt.",
)
@click.option("--workers", "worker_count", type=int, default=None, help="Number of workers sharing one prompt.")
@click.option(
    "--preset",
    type=click.Choice(sorted(BUILTIN_PRESETS)),
    default=None,
    help="Built-in prompt set. Overrides config file.",
)
@click.option("--aggregate/--no-aggregate", "run_aggregate", default=None, help="Run the aggregate stage.")
@click.option("--fix/--no-fix", "run_fix", default=None, help="Run the fix stage (requires aggregate).")
@click.option("--model", default=None, help="Model identifier forwarded to the tool.")
@click.option("--full-auto/--no-full-auto", "full_auto", default=None, help="Forward --full-auto to the tool.")
@click.option(
    "--skip-git-repo-check",
    "skip_git_repo_check",
    is_flag=True,
    default=None,
    help="Forward --skip-git-repo-check to the tool.",
)
@click.option("--ephemeral", is_flag=True, default=None, help="Forward --ephemeral to the tool.")
@click.option(
    "--max-concurrency",
    "max_concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of review workers running at once.",
)
@click.pass_context
def run_cmd(
    ctx,
    workspace: str,
    prompts: tuple[str, ...],
    worker_count: int | None,
    preset: str | None,
    run_aggregate: bool | None,
    run_fix: bool | None,
    model: str | None,
    full_auto: bool | None,
    skip_git_repo_check: bool | None,
    ephemeral: bool | None,
    max_concurrency: int | None,
):
    """Review a workspace with parallel workers, then aggregate and fix.

    Each worker runs the external tool once with its prompt. The aggregate
    stage merges every worker's findings into one validated issue list; the
    fix stage applies it. Artifacts land in
    <workspace>/.runtime-cache/review-queue/<job-id>/.

    Press Ctrl-C to cancel: running workers finish, later stages are skipped.
    """
    config = merge_overrides(
        ctx.obj["config"],
        {
            "review_prompts": list(prompts) or None,
            "worker_count": worker_count,
            "preset": preset,
            "run_aggregate": run_aggregate,
            "run_fix": run_fix,
            "model": model,
            "full_auto": full_auto,
            "skip_git_repo_check": skip_git_repo_check,
            "ephemeral": ephemeral,
            "max_concurrency": max_concurrency,
        },
    )
    # Turning aggregation off without saying anything about fix means "reviews only".
    if run_aggregate is False and run_fix is None:
        config["run_fix"] = False

    try:
        review_prompts = resolve_review_prompts(config)
    except ValueError as e:
        raise click.UsageError(str(e))

    execute_run(ctx, config, review_prompts, workspace)
