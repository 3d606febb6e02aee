"""CLI entry point for reviewq.

Commands:
  run      — review a workspace with N parallel workers, then aggregate and fix
  rerun    — rerun only the failed workers of a past job
  history  — list past jobs for a workspace
  stats    — aggregate outcomes across a workspace's job history
  init     — interactive setup wizard that writes .reviewq.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from reviewq_cli.commands.history import history_cmd
from reviewq_cli.commands.init import init_cmd
from reviewq_cli.commands.rerun import rerun_cmd
from reviewq_cli.commands.run import run_cmd
from reviewq_cli.commands.stats import stats_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the history store for the configured cache root.

    This factory lives in cli.py so neither reviewq_core nor reviewq_store
    know about the CLI config format.
    """
    from reviewq_store.filesystem import JobDirectoryStore

    return JobDirectoryStore(cache_root=config.get("cache_root") or ".runtime-cache")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("reviewq"),
    prog_name="reviewq",
)
@click.option(
    "--config",
    "config_path",
    default=".reviewq.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVIEWQ_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Multi-session code review queue driven by an external code-assistant CLI."""
    from reviewq_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(run_cmd)
main.add_command(rerun_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(init_cmd)
