"""Local subprocess executor.

Resolves the tool the way a login shell would have, even when reviewq runs
from an environment with a minimal PATH: explicit override first, then PATH,
then the usual per-user install locations and node version managers.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from reviewq_core.executors.base import BaseExecutor, ExecutionResult

logger = logging.getLogger(__name__)

SEARCH_PATHS = (
    "/opt/homebrew/bin",
    "/usr/local/bin",
    "~/.local/bin",
    "~/.cargo/bin",
    "~/.bun/bin",
    "~/.deno/bin",
    "~/.npm-global/bin",
    "~/.opencode/bin",
    "~/.volta/bin",
    "~/.asdf/shims",
    "~/.local/share/mise/shims",
)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class SubprocessExecutor(BaseExecutor):
    def __init__(self, binary_overrides: dict[str, str] | None = None):
        # name -> absolute path, e.g. {"codex": "/opt/tools/codex"}
        self.binary_overrides = {k: v for k, v in (binary_overrides or {}).items() if v}

    def _find_binary(self, name: str) -> str | None:
        override = self.binary_overrides.get(name)
        if override:
            path = Path(override).expanduser()
            if _is_executable(path):
                return str(path)
            logger.warning("Configured path for %s is not executable: %s", name, override)

        found = shutil.which(name)
        if found:
            return found

        for search_path in SEARCH_PATHS:
            candidate = Path(search_path).expanduser() / name
            if _is_executable(candidate):
                return str(candidate)

        return self._find_in_version_managers(name)

    @staticmethod
    def _find_in_version_managers(name: str) -> str | None:
        """Look in nvm/fnm per-version bin directories, newest version first."""
        home = Path.home()
        nvm_base = home / ".nvm" / "versions" / "node"
        if nvm_base.is_dir():
            for version in sorted(nvm_base.iterdir(), reverse=True):
                candidate = version / "bin" / name
                if _is_executable(candidate):
                    return str(candidate)

        xdg_data_home = os.environ.get("XDG_DATA_HOME") or str(home / ".local" / "share")
        for fnm_base in (Path(xdg_data_home) / "fnm" / "node-versions", home / ".fnm" / "node-versions"):
            if not fnm_base.is_dir():
                continue
            versions = sorted(fnm_base.iterdir(), reverse=True)
            for version in versions:
                candidate = version / "installation" / "bin" / name
                if _is_executable(candidate):
                    return str(candidate)
            if versions:
                break  # an fnm install exists; the legacy location is stale
        return None

    def _run(
        self,
        binary: str,
        args: list[str],
        input: str,
        working_directory: str | None,
        timeout: float,
    ) -> ExecutionResult:
        try:
            proc = subprocess.run(
                [binary, *args],
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=working_directory,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("%s timed out after %ss", binary, timeout)
            return ExecutionResult(
                success=False,
                output=_as_text(e.stdout),
                error_output=f"Command timed out after {int(timeout)} seconds",
                exit_code=-1,
            )
        except OSError as e:
            return ExecutionResult(success=False, error_output=str(e), exit_code=-1)

        return ExecutionResult(
            success=proc.returncode == 0,
            output=proc.stdout or "",
            error_output=proc.stderr or "",
            exit_code=proc.returncode,
        )


def _as_text(value) -> str:
    # TimeoutExpired carries bytes even when text=True was requested.
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
