"""Job summary and history data models.

Decoupled from reviewq_core so the store layer can read job directories on
its own and reviewq_core has no knowledge of persistence concerns. Phases
and statuses are kept as plain strings for the same reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

SUMMARY_VERSION = 1

KNOWN_PHASES = frozenset(
    {"idle", "preparing", "reviewing", "aggregating", "fixing", "completed", "failed", "cancelled"}
)


@dataclass
class WorkerRecord:
    """One review worker as persisted in summary.json."""

    id: int
    prompt: str
    status: str  # "pending" | "running" | "completed" | "failed"
    output_path: str | None = None
    stdout_path: str | None = None
    stderr_path: str | None = None
    error: str | None = None


@dataclass
class ReviewQueueJobSummary:
    """Durable record of a finished job, written to <job>/summary.json.

    Created by the CLI layer after run_queue() returns or raises. The history
    reconstructor prefers it over inspecting worker files.
    """

    job_id: str
    job_path: str
    phase: str
    created_at: str  # ISO-8601
    updated_at: str  # ISO-8601
    worker_count: int
    completed_worker_count: int
    failed_worker_count: int
    workers: list[WorkerRecord] = field(default_factory=list)
    aggregate_output_path: str | None = None
    fix_output_path: str | None = None
    run_aggregate: bool = True
    run_fix: bool = True
    model: str | None = None
    version: int = SUMMARY_VERSION


@dataclass
class ReviewQueueHistoryItem:
    """Read-only view of a past job, built from summary.json or from the files on disk."""

    job_id: str
    job_path: str
    created_at: datetime | None
    phase: str
    worker_count: int
    failed_worker_count: int
    aggregate_output_path: str | None = None
    fix_output_path: str | None = None
    model: str | None = None
    from_summary: bool = False
