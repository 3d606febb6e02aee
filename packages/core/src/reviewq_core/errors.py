"""Typed failures raised by the review queue orchestrator.

Validation errors are raised before any subprocess starts. Errors raised once
a job directory exists carry its job_id and job_path so the caller can still
record what the run left behind.
"""

from __future__ import annotations


class ReviewQueueError(Exception):
    """Base class for every failure surfaced by run_queue()."""

    message = "The review queue failed."

    def __init__(self, detail: str | None = None):
        self.detail = detail
        self.job_id: str | None = None
        self.job_path: str | None = None
        super().__init__(detail or self.message)


class InvalidWorkspaceError(ReviewQueueError):
    message = "The workspace path does not exist or is not a directory."


class ToolNotInstalledError(ReviewQueueError):
    message = "The external review tool is not installed."


class EmptyPromptsError(ReviewQueueError):
    message = "No review prompts were provided."


class InvalidStageConfigurationError(ReviewQueueError):
    message = "Invalid stage configuration: the fix stage requires the aggregate stage."


class RunCancelledError(ReviewQueueError):
    message = "The run was cancelled."


class ExecutionFailedError(ReviewQueueError):
    message = "The external tool failed."


class IllegalPhaseTransitionError(RuntimeError):
    """Raised by PhaseTracker when the orchestrator tries an undefined move."""


def render_error(exc: BaseException) -> str:
    """Return the message shown to the user for a run failure.

    Only ExecutionFailedError exposes the raw subprocess output; every other
    case maps to its fixed message.
    """
    if isinstance(exc, ExecutionFailedError):
        detail = (exc.detail or "").strip()
        return detail or exc.message
    if isinstance(exc, ReviewQueueError):
        return exc.message
    return str(exc)
