"""Review queue orchestration: parallel review workers, then aggregate, then fix."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Callable

from reviewq_core.errors import (
    EmptyPromptsError,
    ExecutionFailedError,
    InvalidStageConfigurationError,
    InvalidWorkspaceError,
    ReviewQueueError,
    RunCancelledError,
    ToolNotInstalledError,
    render_error,
)
from reviewq_core.executors.base import BaseExecutor, ExecutionResult, build_exec_arguments
from reviewq_core.jobs import DEFAULT_CACHE_ROOT, JobDirectory, make_job_id
from reviewq_core.models import (
    AggregateReady,
    FixReady,
    ReviewQueueConfig,
    ReviewQueueEvent,
    ReviewQueuePhase,
    ReviewQueueResult,
    ReviewWorkerResult,
    RunFailed,
    WorkerStatus,
    WorkerUpdated,
)
from reviewq_core.phases import PhaseTracker
from reviewq_core.utils.messages import extract_final_message

logger = logging.getLogger(__name__)

Phase = ReviewQueuePhase
EventCallback = Callable[[ReviewQueueEvent], None]

DEFAULT_TOOL = "codex"
DEFAULT_MAX_CONCURRENCY = 4
REVIEW_TIMEOUT = 60 * 20
AGGREGATE_TIMEOUT = 60 * 30
FIX_TIMEOUT = 60 * 45

AGGREGATE_INSTRUCTION = "Please validate, deduplicate, and provide one complete issue list."
FIX_INSTRUCTION = "Use this validated issue list as the source of truth:"
CANCELLED_BEFORE_START = "Cancelled before the worker started."


def build_worker_section(worker: ReviewWorkerResult) -> str:
    """Render one worker's contribution to the aggregate input.

    A failed worker still contributes: its artifact if one exists, otherwise
    its error message.
    """
    body = None
    if worker.output_path:
        try:
            body = Path(worker.output_path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            body = None
    if body is None:
        body = f"ERROR: {worker.error}" if worker.error else "No output captured."
    return f"## Worker {worker.id} ({worker.status.value})\nPrompt:\n{worker.prompt}\n\nOutput:\n{body}"


def build_aggregate_input(aggregate_prompt: str, workers: list[ReviewWorkerResult]) -> str:
    sections = "\n\n".join(build_worker_section(w) for w in workers)
    return f"{aggregate_prompt}\n\n{AGGREGATE_INSTRUCTION}\n\n{sections}"


def build_fix_input(fix_prompt: str, aggregate_text: str) -> str:
    return f"{fix_prompt}\n\n{FIX_INSTRUCTION}\n{aggregate_text}"


class _RunContext:
    """Per-call state: event delivery, phase tracking and cancellation.

    Workers emit from pool threads, so delivery is serialized under a lock to
    keep the observed stream in causal order.
    """

    def __init__(self, on_event: EventCallback | None, cancel_event: threading.Event | None):
        self._on_event = on_event
        self._lock = threading.Lock()
        self.cancel_event = cancel_event or threading.Event()
        self.phases = PhaseTracker(self.emit)

    def emit(self, event: ReviewQueueEvent) -> None:
        if self._on_event is None:
            return
        with self._lock:
            try:
                self._on_event(event)
            except Exception:
                logger.exception("on_event callback raised for %s", type(event).__name__)

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise RunCancelledError()

    def fail(self, error: ReviewQueueError) -> None:
        if self.phases.is_terminal:
            return
        if isinstance(error, RunCancelledError):
            self.phases.advance(Phase.CANCELLED)
            return
        self.phases.advance(Phase.FAILED)
        self.emit(RunFailed(render_error(error)))


class ReviewQueueOrchestrator:
    """Runs review queue jobs against a workspace using an external CLI tool.

    Holds configuration only. Every run_queue() call builds its own run
    context, so one instance can serve concurrent runs.
    """

    def __init__(
        self,
        executor: BaseExecutor,
        tool: str = DEFAULT_TOOL,
        cache_root: str = DEFAULT_CACHE_ROOT,
        max_concurrency: int | None = DEFAULT_MAX_CONCURRENCY,
        review_timeout: float = REVIEW_TIMEOUT,
        aggregate_timeout: float = AGGREGATE_TIMEOUT,
        fix_timeout: float = FIX_TIMEOUT,
    ):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer or None")
        self.executor = executor
        self.tool = tool
        self.cache_root = cache_root
        self.max_concurrency = max_concurrency
        self.review_timeout = review_timeout
        self.aggregate_timeout = aggregate_timeout
        self.fix_timeout = fix_timeout

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def run_queue(
        self,
        config: ReviewQueueConfig,
        on_event: EventCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ReviewQueueResult:
        """Run one job to completion and return its result.

        Raises a ReviewQueueError subclass on validation failure, stage
        failure, or cancellation. Cancellation is cooperative: it is honoured
        between stages and by workers that have not started yet, but a tool
        invocation already in flight is allowed to finish.
        """
        prompts = self._validate(config)

        run = _RunContext(on_event, cancel_event)
        run.phases.advance(Phase.PREPARING)
        job = JobDirectory(config.workspace_path, make_job_id(), self.cache_root)
        logger.info("Starting review queue job %s with %d worker(s)", job.job_id, len(prompts))

        try:
            try:
                job.prepare(config)
            except OSError as e:
                raise ExecutionFailedError(f"Could not prepare job directory {job.path}: {e}") from e
            return self._execute(config, prompts, job, run)
        except ReviewQueueError as e:
            e.job_id = job.job_id
            e.job_path = str(job.path)
            run.fail(e)
            if isinstance(e, RunCancelledError):
                logger.info("Job %s cancelled", job.job_id)
            else:
                logger.error("Job %s failed: %s", job.job_id, e)
            raise

    # ------------------------------------------------------------------ #
    # Pipeline                                                             #
    # ------------------------------------------------------------------ #

    def _validate(self, config: ReviewQueueConfig) -> list[str]:
        workspace = (config.workspace_path or "").strip()
        if not workspace or not Path(workspace).is_dir():
            raise InvalidWorkspaceError(f"Workspace not found: {config.workspace_path!r}")
        if not self.executor.is_installed(self.tool):
            raise ToolNotInstalledError(f"'{self.tool}' was not found on this machine.")
        prompts = config.trimmed_prompts()
        if not prompts:
            raise EmptyPromptsError()
        if config.run_fix and not config.run_aggregate:
            raise InvalidStageConfigurationError()
        return prompts

    def _execute(
        self,
        config: ReviewQueueConfig,
        prompts: list[str],
        job: JobDirectory,
        run: _RunContext,
    ) -> ReviewQueueResult:
        run.check_cancelled()

        run.phases.advance(Phase.REVIEWING)
        workers = [ReviewWorkerResult(id=i, prompt=prompt) for i, prompt in enumerate(prompts, 1)]
        for worker in workers:
            run.emit(WorkerUpdated(replace(worker)))

        workers = self._run_review_workers(workers, config, job, run)
        run.check_cancelled()

        completed = sum(1 for w in workers if w.status == WorkerStatus.COMPLETED)
        failed = sum(1 for w in workers if w.status == WorkerStatus.FAILED)
        logger.info("Job %s: %d worker(s) completed, %d failed", job.job_id, completed, failed)

        if completed == 0 and (config.run_aggregate or config.run_fix):
            failures = "\n".join(f"Worker {w.id}: {w.error}" for w in workers if w.error)
            message = f"All review workers failed:\n{failures}" if failures else "All review workers failed."
            raise ExecutionFailedError(message)

        aggregate_output_path: str | None = None
        if config.run_aggregate:
            run.phases.advance(Phase.AGGREGATING)
            self._run_stage(
                "aggregate",
                build_aggregate_input(config.aggregate_prompt, workers),
                job.aggregate_path,
                config,
                self.aggregate_timeout,
            )
            aggregate_output_path = str(job.aggregate_path)
            run.emit(AggregateReady(aggregate_output_path))

        run.check_cancelled()

        fix_output_path: str | None = None
        if config.run_fix:
            if not config.run_aggregate or aggregate_output_path is None:
                raise InvalidStageConfigurationError()
            run.phases.advance(Phase.FIXING)
            self._run_stage(
                "fix",
                build_fix_input(config.fix_prompt, _read_text_or_empty(aggregate_output_path)),
                job.fix_path,
                config,
                self.fix_timeout,
            )
            fix_output_path = str(job.fix_path)
            run.emit(FixReady(fix_output_path))

        run.phases.advance(Phase.COMPLETED)
        return ReviewQueueResult(
            job_id=job.job_id,
            job_path=str(job.path),
            workers=workers,
            aggregate_output_path=aggregate_output_path,
            fix_output_path=fix_output_path,
            completed_worker_count=completed,
            failed_worker_count=failed,
        )

    def _run_review_workers(
        self,
        workers: list[ReviewWorkerResult],
        config: ReviewQueueConfig,
        job: JobDirectory,
        run: _RunContext,
    ) -> list[ReviewWorkerResult]:
        """Fork one task per worker, join them all, and return results ordered by id."""
        pool_size = len(workers) if self.max_concurrency is None else min(self.max_concurrency, len(workers))
        finished: dict[int, ReviewWorkerResult] = {}

        with ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="reviewq-worker") as pool:
            future_to_worker = {
                pool.submit(self._execute_review_worker, worker, config, job, run): worker for worker in workers
            }
            for future in as_completed(future_to_worker):
                worker = future_to_worker[future]
                try:
                    finished[worker.id] = future.result()
                except Exception as e:
                    logger.exception("Review worker %d crashed", worker.id)
                    crashed = replace(worker, status=WorkerStatus.FAILED, error=str(e) or type(e).__name__)
                    run.emit(WorkerUpdated(replace(crashed)))
                    finished[worker.id] = crashed

        return [finished[worker_id] for worker_id in sorted(finished)]

    def _execute_review_worker(
        self,
        pending: ReviewWorkerResult,
        config: ReviewQueueConfig,
        job: JobDirectory,
        run: _RunContext,
    ) -> ReviewWorkerResult:
        worker = replace(pending)
        if run.cancel_event.is_set():
            worker.status = WorkerStatus.FAILED
            worker.error = CANCELLED_BEFORE_START
            run.emit(WorkerUpdated(replace(worker)))
            return worker

        worker.status = WorkerStatus.RUNNING
        run.emit(WorkerUpdated(replace(worker)))

        output_path = job.worker_output_path(worker.id)
        stdout_path = job.worker_stdout_path(worker.id)
        stderr_path = job.worker_stderr_path(worker.id)

        args = self._exec_arguments(config, output_path, subcommand="review")
        result = self.executor.execute_with_input(
            self.tool, args, worker.prompt, config.workspace_path, self.review_timeout
        )

        _write_text(stdout_path, result.output)
        _write_text(stderr_path, result.error_output)
        _ensure_artifact(output_path, result)

        worker.output_path = str(output_path)
        worker.stdout_path = str(stdout_path)
        worker.stderr_path = str(stderr_path)
        if result.success:
            worker.status = WorkerStatus.COMPLETED
        else:
            worker.status = WorkerStatus.FAILED
            worker.error = (result.error_output or result.output).strip()
            logger.warning("Review worker %d failed: %s", worker.id, worker.error[:200])

        run.emit(WorkerUpdated(replace(worker)))
        return worker

    def _run_stage(
        self,
        name: str,
        stage_input: str,
        output_path: Path,
        config: ReviewQueueConfig,
        timeout: float,
    ) -> None:
        logger.info("Running %s stage -> %s", name, output_path)
        args = self._exec_arguments(config, output_path)
        result = self.executor.execute_with_input(self.tool, args, stage_input, config.workspace_path, timeout)
        if not result.success:
            raise ExecutionFailedError(result.combined_output)
        _ensure_artifact(output_path, result)

    @staticmethod
    def _exec_arguments(config: ReviewQueueConfig, output_path: Path, subcommand: str | None = None) -> list[str]:
        return build_exec_arguments(
            str(output_path),
            subcommand=subcommand,
            model=config.normalized_model(),
            full_auto=config.full_auto,
            skip_git_repo_check=config.skip_git_repo_check,
            ephemeral=config.ephemeral,
        )


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning("Could not write %s: %s", path, e)


def _ensure_artifact(output_path: Path, result: ExecutionResult) -> None:
    """Guarantee a readable artifact when the tool did not write its own."""
    if output_path.exists():
        return
    fallback = extract_final_message(result.output)
    _write_text(output_path, fallback if fallback is not None else result.combined_output)


def _read_text_or_empty(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning("Could not read %s, continuing without it: %s", path, e)
        return ""
