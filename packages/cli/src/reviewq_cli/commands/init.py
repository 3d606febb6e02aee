"""init command — interactive setup wizard.

Writes .reviewq.yml once so every later `reviewq run` in this directory picks
up the same preset, worker count and stage settings, and keeps the job
artifacts out of version control.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from reviewq_core.config import BUILTIN_PRESETS, DEFAULT_CONFIG

console = Console()


@click.command("init")
@click.pass_context
def init_cmd(ctx):
    """Set up reviewq for this workspace.

    Creates or updates .reviewq.yml and optionally adds the job cache
    directory to .gitignore.
    """
    console.print("\n[bold cyan]reviewq init[/bold cyan] — workspace setup wizard\n")

    # --- Choose preset ---
    console.print("Built-in presets:")
    for name, preset in BUILTIN_PRESETS.items():
        console.print(f"  [bold]{name}[/bold] — {preset['description']}")
    preset = click.prompt("Preset", type=click.Choice(sorted(BUILTIN_PRESETS)), default=DEFAULT_CONFIG["preset"])

    worker_count = click.prompt(
        "Review workers per run", type=click.IntRange(min=1), default=DEFAULT_CONFIG["worker_count"]
    )
    max_concurrency = click.prompt(
        "Maximum workers running at once",
        type=click.IntRange(min=1),
        default=min(worker_count, DEFAULT_CONFIG["max_concurrency"]),
    )
    model = click.prompt("Model (leave empty for the tool's default)", default="", show_default=False).strip()

    run_aggregate = click.confirm("Run the aggregate stage after reviews?", default=True)
    run_fix = run_aggregate and click.confirm("Run the fix stage after aggregation?", default=True)

    config: dict = {
        "preset": preset,
        "worker_count": worker_count,
        "max_concurrency": max_concurrency,
        "run_aggregate": run_aggregate,
        "run_fix": run_fix,
    }
    if model:
        config["model"] = model

    config_path = Path(ctx.obj.get("config_path", ".reviewq.yml") if ctx.obj else ".reviewq.yml")
    _write_config(config_path, config)
    console.print(f"[green]Wrote {config_path}[/green]")

    # --- .gitignore ---
    cache_root = (ctx.obj or {}).get("config", {}).get("cache_root") or DEFAULT_CONFIG["cache_root"]
    if click.confirm(f"\nAdd {cache_root}/ to .gitignore?", default=True):
        if _add_to_gitignore(Path(".gitignore"), f"{cache_root}/"):
            console.print(f"[green]Added {cache_root}/ to .gitignore[/green]")
        else:
            console.print(f"[dim]{cache_root}/ is already ignored.[/dim]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Start a review with: [bold]reviewq run[/bold]")


def _write_config(path: Path, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _add_to_gitignore(path: Path, entry: str) -> bool:
    """Append *entry* to .gitignore unless it is already there. Returns True if added."""
    lines = path.read_text().splitlines() if path.exists() else []
    if entry in lines or entry.rstrip("/") in lines:
        return False
    lines.append(entry)
    path.write_text("\n".join(lines) + "\n")
    return True
