import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "tool": "codex",
    "tool_path": None,  # explicit binary path; otherwise resolved from PATH and common install dirs
    "cache_root": ".runtime-cache",
    "preset": "deep-review",
    "worker_count": 3,
    "review_prompt": None,  # None = use the preset's review prompt
    "review_prompts": [],  # one entry per worker; overrides review_prompt/worker_count when non-empty
    "aggregate_prompt": None,
    "fix_prompt": None,
    "run_aggregate": True,
    "run_fix": True,
    "model": None,
    "full_auto": True,
    "skip_git_repo_check": False,
    "ephemeral": False,
    "max_concurrency": 4,  # None = one concurrent worker per prompt
    "review_timeout": 60 * 20,
    "aggregate_timeout": 60 * 30,
    "fix_timeout": 60 * 45,
}

BUILTIN_PRESETS: dict[str, dict[str, str]] = {
    "deep-review": {
        "description": "Deep, comprehensive review of the whole workspace.",
        "review_prompt": "Perform a deep and comprehensive code review of this repository.",
        "aggregate_prompt": (
            "Review and verify whether each of these reported issues really exists. "
            "Drop the ones that do not, merge duplicates, and give me the most complete issue list."
        ),
        "fix_prompt": "Fix all of these issues.",
    },
    "security": {
        "description": "Security-focused review: injection, authz, secrets, unsafe deserialization.",
        "review_prompt": (
            "Perform a security review of this repository. Look for injection, broken access control, "
            "leaked secrets, unsafe deserialization and missing input validation."
        ),
        "aggregate_prompt": (
            "Verify each reported security issue against the code, discard false positives, "
            "merge duplicates, and rank what remains by severity."
        ),
        "fix_prompt": "Fix every confirmed security issue, starting with the most severe.",
    },
    "performance": {
        "description": "Performance review: hot paths, needless I/O, algorithmic complexity.",
        "review_prompt": (
            "Review this repository for performance problems: needless I/O, repeated work in loops, "
            "poor algorithmic complexity and unbounded memory growth."
        ),
        "aggregate_prompt": (
            "Verify each reported performance issue, discard speculative ones, merge duplicates, "
            "and give me one list ordered by expected impact."
        ),
        "fix_prompt": "Fix the confirmed performance issues without changing behaviour.",
    },
}


def load_config(config_path: str = ".reviewq.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .reviewq.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "review_prompts": list(DEFAULT_CONFIG["review_prompts"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    config = merge_overrides(config, cli_overrides)

    # Explicit tool location from the environment beats the config file.
    env_tool_path = os.environ.get("REVIEWQ_TOOL_PATH")
    if env_tool_path:
        config["tool_path"] = env_tool_path

    return config


def merge_overrides(config: dict, overrides: Optional[dict]) -> dict:
    """Return a copy of *config* with every non-None override applied."""
    merged = dict(config)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    return merged


def get_preset(name: str | None) -> dict[str, str]:
    if name is None:
        name = DEFAULT_CONFIG["preset"]
    if name not in BUILTIN_PRESETS:
        raise ValueError(f"Unknown preset: {name!r}. Choose one of: {', '.join(BUILTIN_PRESETS)}.")
    return BUILTIN_PRESETS[name]


def resolve_review_prompts(config: dict) -> list[str]:
    """Return one prompt per review worker.

    An explicit ``review_prompts`` list wins (blank entries dropped; a bare
    string counts as a one-item list). Otherwise the shared prompt
    (``review_prompt`` or the preset's) is repeated ``worker_count`` times,
    at least once. Returns [] when the shared prompt is
    blank so the orchestrator can report it.
    """
    raw = config.get("review_prompts") or []
    if isinstance(raw, str):
        raw = [raw]
    explicit = [p.strip() for p in raw if isinstance(p, str) and p.strip()]
    if explicit:
        return explicit

    shared = config.get("review_prompt") or get_preset(config.get("preset"))["review_prompt"]
    shared = shared.strip()
    if not shared:
        return []
    count = max(1, int(config.get("worker_count") or 1))
    return [shared] * count


def resolve_stage_prompts(config: dict) -> tuple[str, str]:
    """Return (aggregate_prompt, fix_prompt), falling back to the preset's."""
    preset = get_preset(config.get("preset"))
    aggregate = config.get("aggregate_prompt")
    fix = config.get("fix_prompt")
    aggregate = preset["aggregate_prompt"] if aggregate is None else aggregate
    fix = preset["fix_prompt"] if fix is None else fix
    return aggregate.strip(), fix.strip()
