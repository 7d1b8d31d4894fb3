"""Tests for the imagemanager CLI."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from imagemanager.cli import app


runner = CliRunner()


@pytest.fixture
def origin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A local image origin and cache directory wired through the environment."""
    origin_dir = tmp_path / "origin"
    origin_dir.mkdir()
    (origin_dir / "rpi.img").write_bytes(b"raspberry pi image")

    monkeypatch.setenv("IMAGEMANAGER_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("IMAGEMANAGER_SOURCE", f"file://{origin_dir}/{{identifier}}.img")
    monkeypatch.setenv("IMAGEMANAGER_STAGING_DIR", str(tmp_path / "staging"))
    monkeypatch.delenv("IMAGEMANAGER_MAX_AGE", raising=False)
    return origin_dir


@pytest.mark.cli
class TestGet:
    """Tests for the get command."""

    def test_get_writes_image(self, origin: Path, tmp_path: Path) -> None:
        """get should write the image to the output file."""
        output = tmp_path / "out.img"

        result = runner.invoke(app, ["get", "rpi", "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert output.read_bytes() == b"raspberry pi image"
        assert f"rpi: {output} (18.0 B)" in result.output

    def test_get_populates_cache(self, origin: Path, tmp_path: Path) -> None:
        """A second get should be served from cache after the origin is gone."""
        runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "first.img")])
        (origin / "rpi.img").unlink()

        result = runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "second.img")])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "second.img").read_bytes() == b"raspberry pi image"

    def test_get_quiet_skips_progress_display(
        self, origin: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """--quiet should write the image without building a progress display."""
        import imagemanager.progress

        class NoDisplay:
            def __init__(self, *args: object, **kwargs: object) -> None:
                raise AssertionError("progress display created in quiet mode")

        monkeypatch.setattr(imagemanager.progress, "RichProgressReporter", NoDisplay)
        output = tmp_path / "out.img"

        result = runner.invoke(app, ["get", "rpi", "-o", str(output), "--quiet"])

        assert result.exit_code == 0, result.output
        assert output.read_bytes() == b"raspberry pi image"
        assert result.output.strip() == f"rpi: {output} (18.0 B)"

    def test_get_closes_manager(
        self, origin: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The manager's connections should be released after get."""
        from imagemanager.core.services import ImageManager

        closed: list[bool] = []

        async def record_close(self: ImageManager) -> None:
            closed.append(True)

        monkeypatch.setattr(ImageManager, "aclose", record_close)

        result = runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "out.img")])

        assert result.exit_code == 0, result.output
        assert closed == [True]

    def test_get_missing_image_reports_hint(self, origin: Path, tmp_path: Path) -> None:
        """A missing image should exit 1 with the error and its hint."""
        result = runner.invoke(app, ["get", "unknown", "-o", str(tmp_path / "x.img")])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Hint:" in result.output

    def test_get_without_source_fails(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without IMAGEMANAGER_SOURCE the command should fail cleanly."""
        monkeypatch.delenv("IMAGEMANAGER_SOURCE", raising=False)
        monkeypatch.setenv("IMAGEMANAGER_CACHE_DIR", str(tmp_path / "cache"))

        result = runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])

        assert result.exit_code == 1
        assert "IMAGEMANAGER_SOURCE" in result.output

    def test_invalid_setting_fails(
        self, origin: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Invalid environment values should be reported, not raised."""
        monkeypatch.setenv("IMAGEMANAGER_MAX_AGE", "soon")

        result = runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])

        assert result.exit_code == 1
        assert "IMAGEMANAGER_MAX_AGE" in result.output


@pytest.mark.cli
class TestStage:
    """Tests for the stage command."""

    def test_stage_raw_image(self, origin: Path, tmp_path: Path) -> None:
        """stage should print the path of a file holding the image."""
        result = runner.invoke(app, ["stage", "rpi"])

        assert result.exit_code == 0, result.output
        path = Path(result.output.strip().splitlines()[-1])
        assert path.parent == tmp_path / "staging"
        assert path.read_bytes() == b"raspberry pi image"

    def test_stage_zip_image(
        self, origin: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Zip images should be staged as extracted directories."""
        with zipfile.ZipFile(origin / "bbb.zip", "w") as archive:
            archive.writestr("boot/uEnv.txt", "console=ttyS0")
        monkeypatch.setenv("IMAGEMANAGER_SOURCE", f"file://{origin}/{{identifier}}.zip")

        result = runner.invoke(app, ["stage", "bbb"])

        assert result.exit_code == 0, result.output
        path = Path(result.output.strip().splitlines()[-1])
        assert (path / "boot" / "uEnv.txt").read_text() == "console=ttyS0"

    def test_stage_closes_manager_on_error(
        self, origin: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The manager should be closed even when acquiring fails."""
        from imagemanager.core.services import ImageManager

        closed: list[bool] = []

        async def record_close(self: ImageManager) -> None:
            closed.append(True)

        monkeypatch.setattr(ImageManager, "aclose", record_close)

        result = runner.invoke(app, ["stage", "unknown"])

        assert result.exit_code == 1
        assert closed == [True]


@pytest.mark.cli
class TestStatus:
    """Tests for the status command."""

    def test_status_shows_states(self, origin: Path, tmp_path: Path) -> None:
        """status should report fresh and missing images."""
        runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])

        result = runner.invoke(app, ["status", "rpi", "bbb"])

        assert result.exit_code == 0, result.output
        assert "fresh" in result.output
        assert "missing" in result.output

    def test_status_reports_stale(
        self, origin: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Entries older than the max age should be reported stale."""
        import json

        runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])
        meta_path = tmp_path / "cache" / "rpi.meta.json"
        meta = json.loads(meta_path.read_text())
        meta["stored_at"] = "2000-01-01T00:00:00+00:00"
        meta_path.write_text(json.dumps(meta))

        result = runner.invoke(app, ["status", "rpi"])

        assert "stale" in result.output

    def test_verbose_flag_is_accepted(self, origin: Path) -> None:
        """--verbose should be accepted before the command."""
        result = runner.invoke(app, ["--verbose", "status", "rpi"])

        assert result.exit_code == 0, result.output


@pytest.mark.cli
class TestClean:
    """Tests for the clean command."""

    def test_clean_empty_cache(self, origin: Path) -> None:
        """clean on an empty cache should say so."""
        result = runner.invoke(app, ["clean"])

        assert result.exit_code == 0
        assert "Cache is empty." in result.output

    def test_clean_force_removes_entries(self, origin: Path, tmp_path: Path) -> None:
        """clean --force should remove entries without prompting."""
        runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])

        result = runner.invoke(app, ["clean", "--force"])

        assert result.exit_code == 0
        assert "Removed 1 cached image(s)." in result.output
        assert not (tmp_path / "cache" / "rpi").exists()

    def test_clean_prompt_declined(self, origin: Path, tmp_path: Path) -> None:
        """Declining the prompt should keep the cache."""
        runner.invoke(app, ["get", "rpi", "-o", str(tmp_path / "x.img")])

        result = runner.invoke(app, ["clean"], input="n\n")

        assert result.exit_code == 1
        assert (tmp_path / "cache" / "rpi").exists()


@pytest.mark.cli
@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0.0 B"), (1536, "1.5 KB"), (5 * 1024**3, "5.0 GB"), (3 * 1024**4, "3.0 TB")],
)
def test_format_size(size: int, expected: str) -> None:
    """_format_size should pick a human-readable unit."""
    from imagemanager.cli.main import _format_size

    assert _format_size(size) == expected
