"""
Tests for the rendition encoder adapter
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from worker.base import EncoderBackendFailure, RenditionFailed
from worker.models import EncoderBackend
from worker.processors.encoder import EncoderAdapter
from worker.processors.ladder import RENDITION_PRESETS
from worker.utils.ffmpeg import FFmpegExecutionError, FFmpegTimeoutError

SPEC_720 = RENDITION_PRESETS["720p"]


def _value_after(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def write_playlist(output_dir, spec):
    variant_dir = output_dir / spec.segment_dir
    variant_dir.mkdir(parents=True, exist_ok=True)
    (variant_dir / "playlist.m3u8").write_text("#EXTM3U\n")


class TestBuildCommand:

    @pytest.fixture
    def adapter(self):
        return EncoderAdapter(ffmpeg_path="ffmpeg", segment_seconds=4)

    @pytest.mark.unit
    def test_hardware_command(self, adapter, tmp_path):
        cmd = adapter.build_command("in.mp4", tmp_path / "hls_720p", SPEC_720, EncoderBackend.HARDWARE)

        assert _value_after(cmd, "-c:v") == "h264_nvenc"
        assert _value_after(cmd, "-preset") == "p3"
        assert _value_after(cmd, "-rc") == "vbr"
        assert _value_after(cmd, "-cq") == "23"
        assert _value_after(cmd, "-maxrate") == "4000k"
        assert _value_after(cmd, "-bufsize") == "5000k"
        assert _value_after(cmd, "-spatial-aq") == "1"
        assert _value_after(cmd, "-temporal-aq") == "1"
        assert _value_after(cmd, "-profile:v") == "high"
        assert _value_after(cmd, "-level") == "4.1"
        assert _value_after(cmd, "-pix_fmt") == "yuv420p"

    @pytest.mark.unit
    def test_software_command(self, adapter, tmp_path):
        cmd = adapter.build_command("in.mp4", tmp_path / "hls_720p", SPEC_720, EncoderBackend.SOFTWARE)

        assert _value_after(cmd, "-c:v") == "libx264"
        assert _value_after(cmd, "-preset") == "medium"
        assert _value_after(cmd, "-crf") == "25"
        assert _value_after(cmd, "-maxrate") == "4000k"
        assert "h264_nvenc" not in cmd
        assert "-cq" not in cmd

    @pytest.mark.unit
    def test_scaling_audio_and_mapping(self, adapter, tmp_path):
        cmd = adapter.build_command("in.mp4", tmp_path, SPEC_720, EncoderBackend.SOFTWARE)

        assert "scale=1280:720" in _value_after(cmd, "-vf")
        assert "pad=1280:720" in _value_after(cmd, "-vf")
        assert "0:v:0" in cmd and "0:a:0?" in cmd
        assert _value_after(cmd, "-c:a") == "aac"
        assert _value_after(cmd, "-b:a") == "128k"
        assert _value_after(cmd, "-ac") == "2"
        assert _value_after(cmd, "-ar") == "48000"

    @pytest.mark.unit
    def test_hls_packaging(self, adapter, tmp_path):
        variant_dir = tmp_path / "hls_720p"
        cmd = adapter.build_command("in.mp4", variant_dir, SPEC_720, EncoderBackend.SOFTWARE)

        assert _value_after(cmd, "-f") == "hls"
        assert _value_after(cmd, "-hls_time") == "4"
        assert _value_after(cmd, "-hls_list_size") == "0"
        assert _value_after(cmd, "-hls_segment_type") == "mpegts"
        assert _value_after(cmd, "-start_number") == "0"
        assert _value_after(cmd, "-hls_segment_filename") == str(variant_dir / "seg_%04d.ts")
        assert cmd[-1] == str(variant_dir / "playlist.m3u8")


class TestEncode:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        async def fake_run(cmd, parser, callback, timeout=None):
            callback(parser.parse_progress("frame=100 time=00:00:05.00 speed=3.0x"))
            write_playlist(tmp_path, SPEC_720)

        observer = MagicMock()
        with patch("worker.processors.encoder.run_ffmpeg", side_effect=fake_run):
            output = await EncoderAdapter().encode(
                "in.mp4", tmp_path, SPEC_720, EncoderBackend.HARDWARE, observer=observer, duration=10.0
            )

        assert output.label == "720p"
        assert output.encoder == EncoderBackend.HARDWARE
        assert output.playlist_path == "hls_720p/playlist.m3u8"
        assert output.segment_dir == "hls_720p"
        assert output.resolution == "1280x720"
        assert output.bandwidth == SPEC_720.declared_bandwidth

        percents = [c.args[1] for c in observer.call_args_list]
        assert percents == [50.0, 100.0]
        assert observer.call_args_list[0].args[0] == "720p"
        assert observer.call_args_list[0].args[2]["speed"] == 3.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_observer_errors_are_swallowed(self, tmp_path):
        async def fake_run(cmd, parser, callback, timeout=None):
            callback(parser.parse_progress("time=00:00:01.00"))
            write_playlist(tmp_path, SPEC_720)

        observer = MagicMock(side_effect=RuntimeError("display closed"))
        with patch("worker.processors.encoder.run_ffmpeg", side_effect=fake_run):
            output = await EncoderAdapter().encode(
                "in.mp4", tmp_path, SPEC_720, EncoderBackend.SOFTWARE, observer=observer, duration=10.0
            )

        assert output.encoder == EncoderBackend.SOFTWARE
        assert observer.call_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hardware_exit_is_backend_failure(self, tmp_path):
        error = FFmpegExecutionError("FFmpeg failed with code 1", returncode=1)
        with patch("worker.processors.encoder.run_ffmpeg", AsyncMock(side_effect=error)):
            with pytest.raises(EncoderBackendFailure) as exc_info:
                await EncoderAdapter().encode("in.mp4", tmp_path, SPEC_720, EncoderBackend.HARDWARE)
        assert exc_info.value.label == "720p"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_software_exit_is_rendition_failed(self, tmp_path):
        error = FFmpegExecutionError("FFmpeg failed with code 1", returncode=1)
        with patch("worker.processors.encoder.run_ffmpeg", AsyncMock(side_effect=error)):
            with pytest.raises(RenditionFailed):
                await EncoderAdapter().encode("in.mp4", tmp_path, SPEC_720, EncoderBackend.SOFTWARE)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_never_falls_back(self, tmp_path):
        error = FFmpegTimeoutError("timed out")
        with patch("worker.processors.encoder.run_ffmpeg", AsyncMock(side_effect=error)):
            with pytest.raises(RenditionFailed):
                await EncoderAdapter(timeout=1).encode("in.mp4", tmp_path, SPEC_720, EncoderBackend.HARDWARE)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_playlist_after_clean_exit(self, tmp_path):
        with patch("worker.processors.encoder.run_ffmpeg", AsyncMock(return_value=[])):
            with pytest.raises(RenditionFailed, match="no playlist"):
                await EncoderAdapter().encode("in.mp4", tmp_path, SPEC_720, EncoderBackend.SOFTWARE)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_passed_through(self, tmp_path):
        async def fake_run(cmd, parser, callback, timeout=None):
            write_playlist(tmp_path, SPEC_720)

        with patch("worker.processors.encoder.run_ffmpeg", AsyncMock(side_effect=fake_run)) as mock_run:
            await EncoderAdapter(timeout=900).encode("in.mp4", tmp_path, SPEC_720, EncoderBackend.SOFTWARE)
        assert mock_run.call_args.kwargs["timeout"] == 900
