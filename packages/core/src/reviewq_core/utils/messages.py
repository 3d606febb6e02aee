"""Fallback extraction of the tool's final answer from its JSON event stream.

Used only when the tool did not write its --output-last-message file. The
stream format is specific to the external tool, so the matching lives here
and nowhere else.
"""

from __future__ import annotations

import json

_COMPLETED_EVENT = "item.completed"
_AGENT_MESSAGE = "agent_message"


def extract_final_message(raw_output: str) -> str | None:
    """Return the text of the last completed agent message in *raw_output*, or None."""
    last_message = None
    for line in raw_output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(event, dict) or event.get("type") != _COMPLETED_EVENT:
            continue
        item = event.get("item")
        if not isinstance(item, dict) or item.get("type") != _AGENT_MESSAGE:
            continue
        text = item.get("text")
        if isinstance(text, str):
            last_message = text
    return last_message
