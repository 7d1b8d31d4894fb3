"""CLI for imagemanager."""

from imagemanager.cli.main import app, main


__all__ = ["app", "main"]
