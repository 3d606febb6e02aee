"""Tests for tool argument building and the subprocess executor."""

import subprocess
from unittest.mock import MagicMock

from reviewq_core.executors.base import BaseExecutor, ExecutionResult, build_exec_arguments
from reviewq_core.executors.local import SubprocessExecutor


def _make_executable(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


# ---------------------------------------------------------------------------
# build_exec_arguments
# ---------------------------------------------------------------------------


class TestBuildExecArguments:
    def test_minimal(self):
        assert build_exec_arguments("/tmp/out.md") == [
            "exec",
            "--json",
            "--output-last-message",
            "/tmp/out.md",
            "-",
        ]

    def test_all_flags_in_order(self):
        args = build_exec_arguments(
            "/tmp/out.md",
            subcommand="review",
            model="gpt-5",
            full_auto=True,
            skip_git_repo_check=True,
            ephemeral=True,
        )
        assert args == [
            "exec",
            "--model",
            "gpt-5",
            "--full-auto",
            "--skip-git-repo-check",
            "--ephemeral",
            "review",
            "--json",
            "--output-last-message",
            "/tmp/out.md",
            "-",
        ]

    def test_empty_model_omitted(self):
        assert "--model" not in build_exec_arguments("/tmp/out.md", model="")


# ---------------------------------------------------------------------------
# ExecutionResult
# ---------------------------------------------------------------------------


def test_combined_output_skips_empty_parts():
    assert ExecutionResult(success=False, output="out", error_output="err").combined_output == "out\nerr"
    assert ExecutionResult(success=False, error_output="err").combined_output == "err"
    assert ExecutionResult(success=True).combined_output == ""


# ---------------------------------------------------------------------------
# BaseExecutor
# ---------------------------------------------------------------------------


class _MissingExecutor(BaseExecutor):
    def _find_binary(self, name):
        return None

    def _run(self, binary, args, input, working_directory, timeout):
        raise AssertionError("should not run")


def test_missing_binary_is_a_failed_result():
    executor = _MissingExecutor()
    assert executor.is_installed("codex") is False
    result = executor.execute_with_input("codex", ["exec"], "prompt")
    assert result.success is False
    assert result.error_output == "CLI 'codex' not found"
    assert result.exit_code == -1


# ---------------------------------------------------------------------------
# SubprocessExecutor
# ---------------------------------------------------------------------------


class TestBinaryResolution:
    def test_override_wins(self, tmp_path, mocker):
        binary = _make_executable(tmp_path / "bin" / "codex")
        which = mocker.patch("reviewq_core.executors.local.shutil.which", return_value="/usr/bin/codex")
        executor = SubprocessExecutor(binary_overrides={"codex": str(binary)})
        assert executor._find_binary("codex") == str(binary)
        which.assert_not_called()

    def test_bad_override_falls_back_to_path(self, tmp_path, mocker):
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value="/usr/bin/codex")
        executor = SubprocessExecutor(binary_overrides={"codex": str(tmp_path / "missing")})
        assert executor._find_binary("codex") == "/usr/bin/codex"

    def test_none_override_ignored(self, mocker):
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value="/usr/bin/codex")
        executor = SubprocessExecutor(binary_overrides={"codex": None})
        assert executor.binary_overrides == {}
        assert executor.is_installed("codex")

    def test_search_paths(self, tmp_path, mocker):
        binary = _make_executable(tmp_path / "custom" / "codex")
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value=None)
        mocker.patch("reviewq_core.executors.local.SEARCH_PATHS", (str(tmp_path / "empty"), str(tmp_path / "custom")))
        assert SubprocessExecutor()._find_binary("codex") == str(binary)

    def test_nvm_newest_version_first(self, tmp_path, mocker, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        mocker.patch("reviewq_core.executors.local.Path.home", return_value=tmp_path)
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value=None)
        mocker.patch("reviewq_core.executors.local.SEARCH_PATHS", ())
        nvm = tmp_path / ".nvm" / "versions" / "node"
        _make_executable(nvm / "v18.0.0" / "bin" / "codex")
        newest = _make_executable(nvm / "v20.1.0" / "bin" / "codex")
        assert SubprocessExecutor()._find_binary("codex") == str(newest)

    def test_not_found(self, tmp_path, mocker, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
        mocker.patch("reviewq_core.executors.local.Path.home", return_value=tmp_path)
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value=None)
        mocker.patch("reviewq_core.executors.local.SEARCH_PATHS", ())
        assert SubprocessExecutor().is_installed("codex") is False


class TestRun:
    def _executor(self, mocker):
        mocker.patch("reviewq_core.executors.local.shutil.which", return_value="/usr/bin/codex")
        return SubprocessExecutor()

    def test_success_passes_stdin_and_cwd(self, mocker, tmp_path):
        executor = self._executor(mocker)
        run = mocker.patch(
            "reviewq_core.executors.local.subprocess.run",
            return_value=MagicMock(returncode=0, stdout="ok", stderr=""),
        )
        result = executor.execute_with_input("codex", ["exec", "-"], "the prompt", str(tmp_path), timeout=5)

        assert result == ExecutionResult(success=True, output="ok", error_output="", exit_code=0)
        cmd = run.call_args.args[0]
        assert cmd == ["/usr/bin/codex", "exec", "-"]
        kwargs = run.call_args.kwargs
        assert kwargs["input"] == "the prompt"
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 5

    def test_non_zero_exit(self, mocker):
        executor = self._executor(mocker)
        mocker.patch(
            "reviewq_core.executors.local.subprocess.run",
            return_value=MagicMock(returncode=2, stdout="partial", stderr="bad flag"),
        )
        result = executor.execute_with_input("codex", [], "p")
        assert result.success is False
        assert result.exit_code == 2
        assert result.error_output == "bad flag"
        assert result.output == "partial"

    def test_timeout(self, mocker):
        executor = self._executor(mocker)
        mocker.patch(
            "reviewq_core.executors.local.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="codex", timeout=3, output=b"half"),
        )
        result = executor.execute_with_input("codex", [], "p", timeout=3)
        assert result.success is False
        assert result.error_output == "Command timed out after 3 seconds"
        assert result.output == "half"

    def test_os_error(self, mocker):
        executor = self._executor(mocker)
        mocker.patch("reviewq_core.executors.local.subprocess.run", side_effect=PermissionError("denied"))
        result = executor.execute_with_input("codex", [], "p")
        assert result.success is False
        assert "denied" in result.error_output
