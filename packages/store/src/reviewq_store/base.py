"""Abstract store interface.

The CLI depends on BaseStore, not on a concrete backend, so the job history
source can be swapped without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewq_store.models import ReviewQueueHistoryItem, ReviewQueueJobSummary


class BaseStore(ABC):
    """Persistence layer for review queue job history."""

    @abstractmethod
    def save(self, summary: ReviewQueueJobSummary) -> None:
        """Persist a job summary. Best-effort: must not raise."""

    @abstractmethod
    def list_jobs(self, workspace_path: str) -> list[ReviewQueueHistoryItem]:
        """Return past jobs for a workspace, newest first.

        Returns an empty list if no jobs exist — never raises.
        """

    @abstractmethod
    def failed_prompts(self, job_path: str) -> list[str]:
        """Return the prompts of the workers that failed in a past job."""

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
