"""CLI commands for imagemanager."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from imagemanager.cli.formatting import _format_status_with_color
from imagemanager.core.exceptions import ImageManagerError


if TYPE_CHECKING:
    from imagemanager.adapters.cache import FileImageCache
    from imagemanager.config import Settings
    from imagemanager.core.ports import ProgressReporter
    from imagemanager.core.services import ImageManager


app = typer.Typer(
    name="imagemanager",
    help="Download, cache and stage device images.",
    no_args_is_help=True,
)


def _report_error(error: ImageManagerError) -> None:
    """Print a domain error and its recovery hint to stderr."""
    typer.echo(f"Error: {error}", err=True)
    if error.recovery_hint:
        typer.echo(f"Hint: {error.recovery_hint}", err=True)


def _load_settings() -> Settings:
    from imagemanager.config import create_settings_from_env

    try:
        return create_settings_from_env()
    except ImageManagerError as e:
        _report_error(e)
        raise typer.Exit(1) from None


def _build_manager(settings: Settings) -> ImageManager:
    from imagemanager.core.services import ImageManager

    try:
        return ImageManager.from_settings(settings)
    except ImageManagerError as e:
        _report_error(e)
        raise typer.Exit(1) from None


def _build_cache(settings: Settings) -> FileImageCache:
    from imagemanager.adapters.cache import FileImageCache

    return FileImageCache(settings.cache_dir, max_age=settings.max_age)


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log cache and download decisions.",
    ),
) -> None:
    """Download, cache and stage device images."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )


async def _download(
    manager: ImageManager,
    identifier: str,
    output: Path,
    reporter: ProgressReporter,
) -> int:
    """Acquire an image and write it to output, reporting progress."""
    written = 0
    async with manager:
        handle = await manager.acquire(identifier)
        handle.progress.subscribe(
            reporter.start_task(identifier, handle.total_length)
        )
        try:
            async with aiofiles.open(output, "wb") as f:
                async for chunk in handle:
                    await f.write(chunk)
                    written += len(chunk)
        finally:
            await handle.aclose()
            reporter.finish_task(identifier)
    return written


@app.command()
def get(
    identifier: str = typer.Argument(..., help="Image identifier (device type slug)."),
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="File to write the image to.",
        dir_okay=False,
        writable=True,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Do not show a progress bar.",
    ),
) -> None:
    """Get an image, downloading it if the cached copy is stale."""
    from imagemanager.core.ports import NullProgressReporter
    from imagemanager.progress import RichProgressReporter

    settings = _load_settings()
    manager = _build_manager(settings)

    try:
        if quiet:
            reporter = NullProgressReporter()
            written = asyncio.run(_download(manager, identifier, output, reporter))
        else:
            with RichProgressReporter() as rich_reporter:
                written = asyncio.run(
                    _download(manager, identifier, output, rich_reporter)
                )
    except ImageManagerError as e:
        _report_error(e)
        raise typer.Exit(1) from None

    typer.echo(f"{identifier}: {output} ({_format_size(written)})")


async def _stage(manager: ImageManager, identifier: str) -> Path:
    async with manager:
        handle = await manager.acquire(identifier)
        return await manager.stage_to_temporary(handle)


@app.command()
def stage(
    identifier: str = typer.Argument(..., help="Image identifier (device type slug)."),
) -> None:
    """Stage an image in a temporary location, extracting archives.

    Prints the staged path. Delete it when done.
    """
    settings = _load_settings()
    manager = _build_manager(settings)

    try:
        path = asyncio.run(_stage(manager, identifier))
    except ImageManagerError as e:
        _report_error(e)
        raise typer.Exit(1) from None

    typer.echo(str(path))


async def _cache_states(cache: FileImageCache, identifiers: list[str]) -> list[str]:
    states = []
    for identifier in identifiers:
        if await cache.is_fresh(identifier):
            states.append("fresh")
            continue
        try:
            entry = cache.get(identifier)
        except ImageManagerError:
            entry = None
        states.append("stale" if entry is not None else "missing")
    return states


@app.command()
def status(
    identifiers: list[str] = typer.Argument(..., help="Image identifiers to check."),
) -> None:
    """Show cache state (fresh/stale/missing) per image."""
    settings = _load_settings()
    cache = _build_cache(settings)

    states = asyncio.run(_cache_states(cache, identifiers))

    # Build Rich table
    table = Table()
    table.add_column("Image")
    table.add_column("Status")
    for identifier, state in zip(identifiers, states, strict=True):
        table.add_row(identifier, _format_status_with_color(state))

    # Print table using Rich Console
    console = Console(force_terminal=True)
    console.print(table)


@app.command()
def clean(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Remove all cached images, forcing re-download."""
    settings = _load_settings()
    cache = _build_cache(settings)

    stats = cache.statistics()
    if stats["entry_count"] == 0:
        typer.echo("Cache is empty.")
        return

    if not force:
        typer.confirm(
            f"Remove {stats['entry_count']} cached image(s) "
            f"({_format_size(stats['total_size'])})?",
            abort=True,
        )

    asyncio.run(cache.clean())
    typer.echo(f"Removed {stats['entry_count']} cached image(s).")


def _format_size(size_bytes: int) -> str:
    """Format size in bytes to human-readable format."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


def main() -> None:
    """Entry point for the CLI."""
    app()
