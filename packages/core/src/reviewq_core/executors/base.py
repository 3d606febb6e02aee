"""Base executor for the external code-assistant CLI.

The orchestrator talks to the tool only through this interface:

    is_installed(name)                       → can we run it at all?
    execute_with_input(name, args, input, …) → one blocking invocation

Subclasses implement two things only:
  - _find_binary: resolve a tool name to an executable path
  - _run: make one subprocess call and return an ExecutionResult

Everything else (the "not installed" result, logging, argument building)
lives here so tests can swap in a stub without touching orchestration code.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"


@dataclass
class ExecutionResult:
    success: bool
    output: str = ""
    error_output: str = ""
    exit_code: int = 0

    @property
    def combined_output(self) -> str:
        return "\n".join(part for part in (self.output, self.error_output) if part)


def build_exec_arguments(
    output_path: str,
    subcommand: str | None = None,
    model: str | None = None,
    full_auto: bool = False,
    skip_git_repo_check: bool = False,
    ephemeral: bool = False,
) -> list[str]:
    """Assemble the argument list for one ``exec`` invocation reading its prompt from stdin."""
    args = ["exec"]
    if model:
        args += ["--model", model]
    if full_auto:
        args.append("--full-auto")
    if skip_git_repo_check:
        args.append("--skip-git-repo-check")
    if ephemeral:
        args.append("--ephemeral")
    if subcommand:
        args.append(subcommand)
    args += ["--json", "--output-last-message", output_path, STDIN_MARKER]
    return args


class BaseExecutor(ABC):
    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def is_installed(self, name: str) -> bool:
        return self._find_binary(name) is not None

    def execute_with_input(
        self,
        name: str,
        args: list[str],
        input: str,
        working_directory: str | None = None,
        timeout: float = 30,
    ) -> ExecutionResult:
        """Run *name* with *args*, piping *input* on stdin.

        Never raises for tool failures: a missing binary, a non-zero exit or a
        timeout all come back as ``success=False`` with a readable error_output.
        """
        binary = self._find_binary(name)
        if binary is None:
            return ExecutionResult(success=False, error_output=f"CLI '{name}' not found", exit_code=-1)
        logger.debug("Executing %s %s (cwd=%s, timeout=%ss)", binary, " ".join(args), working_directory, timeout)
        result = self._run(binary, args, input, working_directory, timeout)
        if not result.success:
            logger.debug("%s exited with %d", name, result.exit_code)
        return result

    # ------------------------------------------------------------------ #
    # Abstract: implement per executor                                    #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _find_binary(self, name: str) -> str | None:
        """Return an executable path for *name*, or None when it is not installed."""

    @abstractmethod
    def _run(
        self,
        binary: str,
        args: list[str],
        input: str,
        working_directory: str | None,
        timeout: float,
    ) -> ExecutionResult:
        """Make a single blocking invocation. Must not raise for process failures."""
