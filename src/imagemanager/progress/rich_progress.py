"""Rich-based progress display for image transfers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


if TYPE_CHECKING:
    from types import TracebackType

    from rich.console import Console

    from imagemanager.core.models import ProgressState
    from imagemanager.core.ports import ProgressCallback


class RichProgressReporter:
    """Shows one rich progress bar per image transfer.

    Bars advance on ProgressState events. Transfers without a known length
    get a pulsing bar and a spinner; their total is fixed to the received
    byte count when the task finishes.

    Example:
        with RichProgressReporter() as reporter:
            handle = await manager.acquire("raspberry-pi")
            handle.progress.subscribe(
                reporter.start_task("raspberry-pi", handle.total_length)
            )
            await handle.read()
    """

    def __init__(self, console: Console | None = None, transient: bool = False) -> None:
        """Create the display.

        Args:
            console: Console to render to. Defaults to rich's global console.
            transient: Remove the bars from the terminal once stopped.
        """
        self._progress = Progress(
            SpinnerColumn(finished_text="[green]:heavy_check_mark:"),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=transient,
        )
        self._task_ids: dict[str, TaskID] = {}
        self._running = False

    def __enter__(self) -> RichProgressReporter:
        self._ensure_running()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._running:
            self._progress.stop()
            self._running = False

    def _ensure_running(self) -> None:
        if not self._running:
            self._progress.start()
            self._running = True

    def start_task(self, name: str, total: int | None) -> ProgressCallback:
        """Add a bar for a transfer.

        Args:
            name: Label of the bar, usually the image identifier.
            total: Expected byte count, or None for an indeterminate bar.

        Returns:
            A listener that moves the bar to each ProgressState it receives.
        """
        self._ensure_running()
        task_id = self._progress.add_task(name, total=total)
        self._task_ids[name] = task_id

        def on_progress(state: ProgressState) -> None:
            self._progress.update(task_id, completed=state.bytes_received)

        return on_progress

    def finish_task(self, name: str) -> None:
        """Mark the bar of a transfer as complete. Unknown names are ignored."""
        task_id = self._task_ids.get(name)
        if task_id is None:
            return
        task = next(t for t in self._progress.tasks if t.id == task_id)
        final = task.completed if task.total is None else task.total
        self._progress.update(task_id, total=final, completed=final)
