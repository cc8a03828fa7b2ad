"""
Test the command-line interface
"""
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from cli.main import cli
from worker.base import NoRenditionsProducedError
from worker.models import EncoderBackend, RenditionRecord, VideoAsset


def published_asset(partial=False) -> VideoAsset:
    return VideoAsset(
        id="vid-1",
        user_id="admin",
        title="Test",
        duration=10.0,
        storage_prefix="videos/admin/vid-1",
        hls_url="/hls/admin/vid-1/master.m3u8",
        renditions=[RenditionRecord(label="720p", resolution="1280x720",
                                    playlist_path="hls_720p/playlist.m3u8",
                                    encoder=EncoderBackend.SOFTWARE)],
        partial=partial,
    )


def pipeline_returning(result=None, error=None):
    task = MagicMock()
    task.run = AsyncMock(return_value=result, side_effect=error)
    return AsyncMock(return_value=task), task


class TestProcessCommand:

    def test_success(self, source_file):
        build, task = pipeline_returning(published_asset())
        with patch("cli.main.build_pipeline", build):
            result = CliRunner().invoke(cli, [
                "process", str(source_file), "--title", "Test", "--tag", "demo", "--cpu",
            ])

        assert result.exit_code == 0, result.output
        assert "/hls/admin/vid-1/master.m3u8" in result.output
        build.assert_awaited_once_with("off")
        options = task.run.await_args.args[2]
        assert options.title == "Test"
        assert options.tags == ["demo"]

    def test_partial_is_reported(self, source_file):
        build, _ = pipeline_returning(published_asset(partial=True))
        with patch("cli.main.build_pipeline", build):
            result = CliRunner().invoke(cli, ["process", str(source_file), "--title", "Test"])

        assert result.exit_code == 0
        assert "Some renditions failed" in result.output
        build.assert_awaited_once_with("auto")

    def test_pipeline_failure_exits_nonzero(self, source_file):
        build, _ = pipeline_returning(error=NoRenditionsProducedError({"720p": "exit 1"}))
        with patch("cli.main.build_pipeline", build):
            result = CliRunner().invoke(cli, ["process", str(source_file), "--title", "Test", "--gpu"])

        assert result.exit_code == 1
        assert "Processing failed" in result.output
        build.assert_awaited_once_with("on")

    def test_invalid_title_exits_before_pipeline(self, source_file):
        build, _ = pipeline_returning(published_asset())
        with patch("cli.main.build_pipeline", build):
            result = CliRunner().invoke(cli, ["process", str(source_file), "--title", "x" * 101])

        assert result.exit_code == 1
        build.assert_not_awaited()

    def test_title_required(self, source_file):
        result = CliRunner().invoke(cli, ["process", str(source_file)])
        assert result.exit_code == 2
