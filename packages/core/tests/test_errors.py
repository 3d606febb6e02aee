"""Tests for user-facing error rendering."""

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


def test_execution_failed_shows_raw_detail():
    assert render_error(ExecutionFailedError("  boom: exit 2\n")) == "boom: exit 2"


def test_execution_failed_without_detail_uses_fixed_message():
    assert render_error(ExecutionFailedError("   ")) == ExecutionFailedError.message
    assert render_error(ExecutionFailedError()) == ExecutionFailedError.message


def test_other_errors_hide_detail():
    for cls in (
        InvalidWorkspaceError,
        ToolNotInstalledError,
        EmptyPromptsError,
        InvalidStageConfigurationError,
        RunCancelledError,
    ):
        assert render_error(cls("internal detail")) == cls.message


def test_every_error_has_distinct_message():
    classes = [
        InvalidWorkspaceError,
        ToolNotInstalledError,
        EmptyPromptsError,
        InvalidStageConfigurationError,
        RunCancelledError,
        ExecutionFailedError,
    ]
    assert len({c.message for c in classes}) == len(classes)
    assert all(issubclass(c, ReviewQueueError) for c in classes)


def test_foreign_exception_uses_str():
    assert render_error(RuntimeError("unexpected")) == "unexpected"


def test_job_location_defaults_to_none():
    err = ExecutionFailedError("x")
    assert err.job_id is None
    assert err.job_path is None
