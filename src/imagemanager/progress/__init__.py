"""Progress display adapters."""

from imagemanager.progress.rich_progress import RichProgressReporter


__all__ = ["RichProgressReporter"]
