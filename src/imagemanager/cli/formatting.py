"""Shared formatting helpers for CLI commands."""

from __future__ import annotations

from rich.text import Text


_STATUS_COLORS = {
    "fresh": "green",
    "stale": "yellow",
    "missing": "red",
}


def _format_status_with_color(status: str) -> Text:
    """Color a cache state: fresh green, stale yellow, missing red."""
    color = _STATUS_COLORS.get(status)
    return Text(status, style=color) if color else Text(status)
