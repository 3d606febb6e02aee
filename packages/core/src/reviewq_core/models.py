"""Review queue data models.

Run-scoped types shared by the orchestrator and its callers. Persistence
types (job summaries, history items) live in reviewq_store so the core has
no knowledge of how finished runs are recorded.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Union


class ReviewQueuePhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    REVIEWING = "reviewing"
    AGGREGATING = "aggregating"
    FIXING = "fixing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WorkerStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ReviewQueueConfig:
    """A single run request. Created once per run and never mutated.

    run_fix=True without run_aggregate=True is accepted here and rejected by
    the orchestrator, so callers get a typed error instead of a ValueError.
    """

    workspace_path: str
    review_prompts: tuple[str, ...]
    aggregate_prompt: str = ""
    fix_prompt: str = ""
    run_aggregate: bool = True
    run_fix: bool = True
    model: str | None = None
    full_auto: bool = True
    skip_git_repo_check: bool = False
    ephemeral: bool = False

    def __post_init__(self):
        object.__setattr__(self, "review_prompts", tuple(self.review_prompts))

    def trimmed_prompts(self) -> list[str]:
        """Prompts with surrounding whitespace removed and blank entries dropped."""
        return [p.strip() for p in self.review_prompts if p and p.strip()]

    def normalized_model(self) -> str | None:
        model = (self.model or "").strip()
        return model or None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["review_prompts"] = list(self.review_prompts)
        return data


@dataclass
class ReviewWorkerResult:
    """State of one review worker. Written only by the worker that owns it."""

    id: int
    prompt: str
    status: WorkerStatus = WorkerStatus.PENDING
    output_path: str | None = None
    stdout_path: str | None = None
    stderr_path: str | None = None
    error: str | None = None


@dataclass
class ReviewQueueResult:
    job_id: str
    job_path: str
    workers: list[ReviewWorkerResult] = field(default_factory=list)
    aggregate_output_path: str | None = None
    fix_output_path: str | None = None
    completed_worker_count: int = 0
    failed_worker_count: int = 0


# ---------------------------------------------------------------------------
# Events delivered to the on_event callback
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhaseChanged:
    phase: ReviewQueuePhase


@dataclass(frozen=True)
class WorkerUpdated:
    worker: ReviewWorkerResult  # a snapshot, safe to keep


@dataclass(frozen=True)
class AggregateReady:
    path: str


@dataclass(frozen=True)
class FixReady:
    path: str


@dataclass(frozen=True)
class RunFailed:
    message: str


ReviewQueueEvent = Union[PhaseChanged, WorkerUpdated, AggregateReady, FixReady, RunFailed]
