"""JobDirectoryStore — review queue history read straight from job directories.

History lives in the job directories under
<workspace>/.runtime-cache/review-queue/<job_id>/:
- summary.json is a best-effort accelerator. Runs that crashed, were killed,
  or predate summaries are still listed by inspecting the files they left.
- Deleting a job directory deletes its history entry.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from reviewq_store.base import BaseStore
from reviewq_store.models import KNOWN_PHASES, ReviewQueueHistoryItem, ReviewQueueJobSummary, WorkerRecord

logger = logging.getLogger(__name__)

_QUEUE_DIRNAME = "review-queue"
_SUMMARY_FILENAME = "summary.json"
_CONFIG_FILENAME = "config.json"
_AGGREGATE_FILENAME = "aggregate.md"
_FIX_FILENAME = "fix.md"
_WORKER_OUTPUT_RE = re.compile(r"^worker-(\d+)\.md$")
_JOB_ID_TIME_FORMAT = "%Y%m%d-%H%M%S"


def parse_job_timestamp(job_id: str) -> datetime | None:
    """Return the local creation time encoded in a job id, or None if it has none."""
    parts = job_id.split("-")
    if len(parts) < 2:
        return None
    try:
        return datetime.strptime(f"{parts[0]}-{parts[1]}", _JOB_ID_TIME_FORMAT).astimezone()
    except (ValueError, OverflowError, OSError):
        return None


def infer_phase(
    worker_count: int,
    failed_count: int,
    has_aggregate: bool,
    has_fix: bool,
    run_aggregate: bool | None,
    run_fix: bool | None,
) -> str:
    """Best guess of a job's phase from the files it left behind.

    run_aggregate/run_fix are None when config.json is missing or unreadable.
    Anything ambiguous is reported as still reviewing rather than guessed at.
    """
    if has_fix:
        return "completed"
    if worker_count > 0 and failed_count == worker_count:
        return "failed"
    if has_aggregate:
        return "completed" if run_aggregate is True and run_fix is False else "aggregating"
    if run_aggregate is False and run_fix is False and worker_count > 0:
        return "completed"
    return "reviewing"


def sort_history(items: list[ReviewQueueHistoryItem]) -> list[ReviewQueueHistoryItem]:
    """Newest first; entries without a timestamp go last, by job id descending."""
    dated = sorted(
        (i for i in items if i.created_at is not None),
        key=lambda i: (i.created_at, i.job_id),
        reverse=True,
    )
    undated = sorted((i for i in items if i.created_at is None), key=lambda i: i.job_id, reverse=True)
    return dated + undated


class JobDirectoryStore(BaseStore):
    """Reads and writes history inside each workspace's review-queue directory."""

    def __init__(self, cache_root: str = ".runtime-cache"):
        self.cache_root = cache_root

    def queue_root(self, workspace_path: str) -> Path:
        return Path(workspace_path) / self.cache_root / _QUEUE_DIRNAME

    def save(self, summary: ReviewQueueJobSummary) -> None:
        """Write summary.json into the job directory."""
        try:
            path = Path(summary.job_path) / _SUMMARY_FILENAME
            path.write_text(json.dumps(asdict(summary), indent=2, ensure_ascii=False), encoding="utf-8")
        except Exception as e:
            # The run's artifacts are already on disk; history falls back to
            # reconstructing from them.
            logger.warning("JobDirectoryStore.save() failed (%s): %s", type(e).__name__, e)

    def list_jobs(self, workspace_path: str) -> list[ReviewQueueHistoryItem]:
        root = self.queue_root(workspace_path)
        try:
            job_dirs = [p for p in root.iterdir() if not p.name.startswith(".") and p.is_dir()]
        except OSError:
            return []

        items = []
        for job_dir in job_dirs:
            try:
                items.append(self._load_item(job_dir))
            except Exception as e:
                logger.warning("Skipping unreadable job directory %s: %s", job_dir, e)
        return sort_history(items)

    def failed_prompts(self, job_path: str) -> list[str]:
        job_dir = Path(job_path)
        summary = self._read_summary(job_dir)
        if summary is not None and summary.workers:
            return [w.prompt for w in summary.workers if w.status == "failed"]

        # No summary: worker ids follow the order of the non-blank config prompts.
        job_config = _read_json(job_dir / _CONFIG_FILENAME) or {}
        prompts = [p.strip() for p in job_config.get("review_prompts") or [] if isinstance(p, str) and p.strip()]
        return [
            prompt
            for worker_id, prompt in enumerate(prompts, 1)
            if _has_content(job_dir / f"worker-{worker_id:02d}.stderr.log")
        ]

    # ------------------------------------------------------------------ #
    # Reading a single job                                                 #
    # ------------------------------------------------------------------ #

    def _load_item(self, job_dir: Path) -> ReviewQueueHistoryItem:
        summary = self._read_summary(job_dir)
        if summary is not None:
            return ReviewQueueHistoryItem(
                job_id=summary.job_id or job_dir.name,
                job_path=str(job_dir),
                created_at=_parse_iso(summary.created_at) or parse_job_timestamp(job_dir.name),
                phase=summary.phase,
                worker_count=summary.worker_count,
                failed_worker_count=summary.failed_worker_count,
                aggregate_output_path=_existing(summary.aggregate_output_path),
                fix_output_path=_existing(summary.fix_output_path),
                model=summary.model,
                from_summary=True,
            )
        return self._reconstruct(job_dir)

    def _reconstruct(self, job_dir: Path) -> ReviewQueueHistoryItem:
        worker_files = [p for p in job_dir.iterdir() if _WORKER_OUTPUT_RE.match(p.name)]
        failed_count = sum(1 for p in worker_files if _has_content(p.with_name(f"{p.stem}.stderr.log")))

        job_config = _read_json(job_dir / _CONFIG_FILENAME) or {}
        aggregate_path = job_dir / _AGGREGATE_FILENAME
        fix_path = job_dir / _FIX_FILENAME
        has_aggregate = aggregate_path.is_file()
        has_fix = fix_path.is_file()

        phase = infer_phase(
            worker_count=len(worker_files),
            failed_count=failed_count,
            has_aggregate=has_aggregate,
            has_fix=has_fix,
            run_aggregate=job_config.get("run_aggregate"),
            run_fix=job_config.get("run_fix"),
        )
        model = job_config.get("model")
        return ReviewQueueHistoryItem(
            job_id=job_dir.name,
            job_path=str(job_dir),
            created_at=parse_job_timestamp(job_dir.name),
            phase=phase,
            worker_count=len(worker_files),
            failed_worker_count=failed_count,
            aggregate_output_path=str(aggregate_path) if has_aggregate else None,
            fix_output_path=str(fix_path) if has_fix else None,
            model=model if isinstance(model, str) and model else None,
        )

    def _read_summary(self, job_dir: Path) -> ReviewQueueJobSummary | None:
        data = _read_json(job_dir / _SUMMARY_FILENAME)
        if data is None:
            return None
        try:
            summary = self._from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("Ignoring malformed summary in %s: %s", job_dir, e)
            return None
        if summary.phase not in KNOWN_PHASES:
            logger.debug("Ignoring summary with unknown phase %r in %s", summary.phase, job_dir)
            return None
        return summary

    @staticmethod
    def _from_dict(d: dict) -> ReviewQueueJobSummary:
        return ReviewQueueJobSummary(
            version=int(d.get("version", 1)),
            job_id=str(d["job_id"]),
            job_path=str(d.get("job_path", "")),
            phase=str(d["phase"]),
            created_at=str(d.get("created_at", "")),
            updated_at=str(d.get("updated_at", "")),
            worker_count=int(d["worker_count"]),
            completed_worker_count=int(d.get("completed_worker_count", 0)),
            failed_worker_count=int(d.get("failed_worker_count", 0)),
            workers=[
                WorkerRecord(
                    id=int(w["id"]),
                    prompt=str(w.get("prompt", "")),
                    status=str(w.get("status", "pending")),
                    output_path=w.get("output_path"),
                    stdout_path=w.get("stdout_path"),
                    stderr_path=w.get("stderr_path"),
                    error=w.get("error"),
                )
                for w in d.get("workers") or []
            ],
            aggregate_output_path=d.get("aggregate_output_path"),
            fix_output_path=d.get("fix_output_path"),
            run_aggregate=bool(d.get("run_aggregate", True)),
            run_fix=bool(d.get("run_fix", True)),
            model=d.get("model"),
        )


def _read_json(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _has_content(path: Path) -> bool:
    try:
        return bool(path.read_text(encoding="utf-8", errors="replace").strip())
    except OSError:
        return False


def _existing(path: str | None) -> str | None:
    return path if path and Path(path).is_file() else None


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.astimezone()
