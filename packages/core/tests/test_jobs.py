"""Tests for job ids and job directory layout."""

import json
import re
from datetime import datetime

from reviewq_core.jobs import JobDirectory, make_job_id, queue_root
from reviewq_core.models import ReviewQueueConfig


def _config(workspace, **kwargs):
    return ReviewQueueConfig(workspace_path=str(workspace), review_prompts=["a", "b"], **kwargs)


def test_job_id_format():
    job_id = make_job_id(datetime(2026, 1, 18, 14, 25, 1))
    assert re.fullmatch(r"20260118-142501-[0-9a-f]{8}", job_id)


def test_job_ids_unique_within_same_second():
    now = datetime(2026, 1, 18, 14, 25, 1)
    assert len({make_job_id(now) for _ in range(50)}) == 50


def test_job_ids_sort_chronologically():
    earlier = make_job_id(datetime(2025, 12, 31, 23, 59, 59))
    later = make_job_id(datetime(2026, 1, 1, 0, 0, 0))
    assert earlier < later


def test_queue_root_layout(tmp_path):
    assert queue_root(tmp_path) == tmp_path / ".runtime-cache" / "review-queue"
    assert queue_root(tmp_path, "cache") == tmp_path / "cache" / "review-queue"


def test_file_names(tmp_path):
    job = JobDirectory(tmp_path, "20260118-142501-abcdef12")
    assert job.path == tmp_path / ".runtime-cache" / "review-queue" / "20260118-142501-abcdef12"
    assert job.worker_output_path(1).name == "worker-01.md"
    assert job.worker_stdout_path(12).name == "worker-12.stdout.log"
    assert job.worker_stderr_path(3).name == "worker-03.stderr.log"
    assert job.aggregate_path.name == "aggregate.md"
    assert job.fix_path.name == "fix.md"
    assert job.config_path.name == "config.json"


def test_prepare_writes_config(tmp_path):
    job = JobDirectory(tmp_path, "20260118-142501-abcdef12")
    job.prepare(_config(tmp_path, model="gpt-5", run_fix=False))

    data = json.loads(job.config_path.read_text())
    assert data["workspace_path"] == str(tmp_path)
    assert data["review_prompts"] == ["a", "b"]
    assert data["model"] == "gpt-5"
    assert data["run_aggregate"] is True
    assert data["run_fix"] is False


def test_prepare_is_idempotent(tmp_path):
    job = JobDirectory(tmp_path, "20260118-142501-abcdef12")
    config = _config(tmp_path)
    job.prepare(config)
    job.worker_output_path(1).write_text("findings")

    job.prepare(config)

    assert job.path.is_dir()
    assert job.worker_output_path(1).read_text() == "findings"
    assert json.loads(job.config_path.read_text())["review_prompts"] == ["a", "b"]
