"""Job directory layout and creation.

Every run owns one directory:

    <workspace>/<cache_root>/review-queue/<job_id>/
        config.json
        worker-01.md  worker-01.stdout.log  worker-01.stderr.log
        ...
        aggregate.md
        fix.md
        summary.json   (written by the caller, see reviewq_store)
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path

from reviewq_core.models import ReviewQueueConfig

logger = logging.getLogger(__name__)

DEFAULT_CACHE_ROOT = ".runtime-cache"
QUEUE_DIRNAME = "review-queue"
JOB_ID_TIME_FORMAT = "%Y%m%d-%H%M%S"

CONFIG_FILENAME = "config.json"
AGGREGATE_FILENAME = "aggregate.md"
FIX_FILENAME = "fix.md"


def make_job_id(now: datetime | None = None) -> str:
    """Return a job id such as ``20260118-142501-3f9a0c1d``.

    The local-time prefix sorts lexicographically in chronological order; the
    random suffix keeps two runs started in the same second apart.
    """
    stamp = (now or datetime.now()).strftime(JOB_ID_TIME_FORMAT)
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def queue_root(workspace_path: str | Path, cache_root: str = DEFAULT_CACHE_ROOT) -> Path:
    return Path(workspace_path) / cache_root / QUEUE_DIRNAME


class JobDirectory:
    """Paths for one job plus idempotent creation of the directory itself."""

    def __init__(self, workspace_path: str | Path, job_id: str, cache_root: str = DEFAULT_CACHE_ROOT):
        self.job_id = job_id
        self.path = queue_root(workspace_path, cache_root) / job_id

    def prepare(self, config: ReviewQueueConfig) -> Path:
        """Create the directory (if needed) and persist the run config.

        Safe to call repeatedly: existing worker and stage files are left alone,
        only config.json is rewritten.
        """
        self.path.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("Prepared job directory %s", self.path)
        return self.path

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def aggregate_path(self) -> Path:
        return self.path / AGGREGATE_FILENAME

    @property
    def fix_path(self) -> Path:
        return self.path / FIX_FILENAME

    def worker_output_path(self, worker_id: int) -> Path:
        return self.path / f"worker-{worker_id:02d}.md"

    def worker_stdout_path(self, worker_id: int) -> Path:
        return self.path / f"worker-{worker_id:02d}.stdout.log"

    def worker_stderr_path(self, worker_id: int) -> Path:
        return self.path / f"worker-{worker_id:02d}.stderr.log"
