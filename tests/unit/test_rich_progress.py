"""Unit tests for RichProgressReporter adapter."""

import pytest


@pytest.mark.progress
class TestRichProgressReporter:
    """Tests for RichProgressReporter."""

    def test_rich_reporter_satisfies_protocol(self) -> None:
        """RichProgressReporter should implement ProgressReporter."""
        from imagemanager.core.ports import ProgressReporter
        from imagemanager.progress import RichProgressReporter

        reporter = RichProgressReporter()
        assert isinstance(reporter, ProgressReporter)

    def test_callback_accepts_progress_state(self) -> None:
        """start_task() should return a callback taking ProgressState."""
        from imagemanager.core.models import ProgressState
        from imagemanager.progress import RichProgressReporter

        with RichProgressReporter() as reporter:
            callback = reporter.start_task("rpi", 1000)
            callback(ProgressState.from_counts(500, 1000))

            task = reporter._progress.tasks[0]
            assert task.completed == 500
            assert task.total == 1000

    def test_unknown_total_finishes_at_received_bytes(self) -> None:
        """Indeterminate tasks should complete at the bytes received."""
        from imagemanager.core.models import ProgressState
        from imagemanager.progress import RichProgressReporter

        with RichProgressReporter() as reporter:
            callback = reporter.start_task("rpi", None)
            callback(ProgressState.from_counts(300, None))
            reporter.finish_task("rpi")

            task = reporter._progress.tasks[0]
            assert task.total == 300
            assert task.finished

    def test_finish_unknown_task_is_noop(self) -> None:
        """finish_task() for an unknown name should not raise."""
        from imagemanager.progress import RichProgressReporter

        with RichProgressReporter() as reporter:
            reporter.finish_task("never-started")

    def test_subscribes_to_stream_progress(self) -> None:
        """The callback should be usable directly as a stream listener."""
        from imagemanager.core.models import ProgressState
        from imagemanager.core.streams import ProgressEmitter
        from imagemanager.progress import RichProgressReporter

        emitter = ProgressEmitter()
        with RichProgressReporter() as reporter:
            emitter.subscribe(reporter.start_task("a", 10))
            emitter.subscribe(reporter.start_task("b", 20))
            emitter.emit(ProgressState.from_counts(10, 10))

            assert [t.completed for t in reporter._progress.tasks] == [10, 10]
