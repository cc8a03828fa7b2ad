"""
FFmpeg wrapper utilities: probing, hardware detection, execution and
progress parsing.
"""
import asyncio
import json
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from api.config import settings
from worker.base import UnreadableMediaError
from worker.models import SourceProbe

logger = structlog.get_logger()

STDERR_TAIL_LINES = 10


class FFmpegError(Exception):
    """Base exception for FFmpeg operations."""
    pass


class FFmpegExecutionError(FFmpegError):
    """FFmpeg exited with a non-zero status."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class FFmpegTimeoutError(FFmpegError):
    """FFmpeg did not finish within its time limit."""
    pass


class HardwareAcceleration:
    """NVENC availability detection."""

    @staticmethod
    async def detect_nvenc(ffmpeg_path: Optional[str] = None, timeout: float = 10.0) -> bool:
        """Encode one second of a test pattern through h264_nvenc."""
        cmd = [
            ffmpeg_path or settings.FFMPEG_PATH,
            '-hide_banner', '-loglevel', 'error',
            '-f', 'lavfi', '-i', 'testsrc=duration=1:size=320x240:rate=30',
            '-c:v', 'h264_nvenc', '-f', 'null', '-',
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.warning("Hardware encoder probe could not start", error=str(e))
            return False

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Hardware encoder probe timed out", timeout=timeout)
            return False

        available = process.returncode == 0
        if available:
            logger.info("NVENC hardware encoder available")
        else:
            logger.info(
                "NVENC hardware encoder unavailable",
                error=stderr.decode('utf-8', errors='ignore').strip()[-200:]
            )
        return available

    @classmethod
    async def resolve(cls, mode: Optional[str] = None, ffmpeg_path: Optional[str] = None) -> bool:
        """Apply the auto/on/off override to detection."""
        mode = (mode or settings.HARDWARE_ENCODER).lower()
        if mode == 'on':
            return True
        if mode == 'off':
            return False
        return await cls.detect_nvenc(ffmpeg_path)


class FFmpegProgressParser:
    """Parse FFmpeg progress output."""

    def __init__(self, total_duration: Optional[float] = None):
        self.total_duration = total_duration
        self.frame_pattern = re.compile(r'frame=\s*(\d+)')
        self.fps_pattern = re.compile(r'fps=\s*([\d.]+)')
        self.time_pattern = re.compile(r'time=(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?')
        self.bitrate_pattern = re.compile(r'bitrate=\s*([\d.]+)kbits/s')
        self.speed_pattern = re.compile(r'speed=\s*([\d.]+)x')

    def parse_progress(self, line: str) -> Optional[Dict[str, Any]]:
        """Parse progress information from one FFmpeg status line."""
        if not line.strip():
            return None

        progress = {}

        frame_match = self.frame_pattern.search(line)
        if frame_match:
            progress['frame'] = int(frame_match.group(1))

        fps_match = self.fps_pattern.search(line)
        if fps_match:
            progress['fps'] = float(fps_match.group(1))

        time_match = self.time_pattern.search(line)
        if time_match:
            hours, minutes, seconds = (int(g) for g in time_match.group(1, 2, 3))
            fraction = time_match.group(4)
            total_seconds = hours * 3600 + minutes * 60 + seconds
            if fraction:
                total_seconds += int(fraction) / (10 ** len(fraction))
            progress['time'] = total_seconds

            if self.total_duration and self.total_duration > 0:
                progress['percentage'] = min(100.0, (total_seconds / self.total_duration) * 100)

        bitrate_match = self.bitrate_pattern.search(line)
        if bitrate_match:
            progress['bitrate'] = float(bitrate_match.group(1))

        speed_match = self.speed_pattern.search(line)
        if speed_match:
            progress['speed'] = float(speed_match.group(1))

        return progress if progress else None


async def run_ffmpeg(cmd: List[str],
                     progress_parser: Optional[FFmpegProgressParser] = None,
                     progress_callback: Optional[Callable[[Dict[str, Any]], None]] = None,
                     timeout: Optional[float] = None) -> List[str]:
    """Run an FFmpeg command, feeding status lines to the parser.

    Returns the captured stderr lines. Raises FFmpegExecutionError on a
    non-zero exit and FFmpegTimeoutError when ``timeout`` elapses.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE
    )

    stderr_lines: List[str] = []

    def handle_line(line: str) -> None:
        line = line.strip()
        if not line:
            return
        stderr_lines.append(line)
        if len(stderr_lines) > 200:
            del stderr_lines[:100]
        if progress_parser and progress_callback:
            progress = progress_parser.parse_progress(line)
            if progress:
                progress_callback(progress)

    async def read_stderr():
        # Status lines end with \r, log lines with \n
        buffer = ''
        while True:
            chunk = await process.stderr.read(4096)
            if not chunk:
                break
            buffer += chunk.decode('utf-8', errors='ignore')
            parts = re.split(r'[\r\n]', buffer)
            buffer = parts.pop()
            for part in parts:
                handle_line(part)
        handle_line(buffer)

    stderr_task = asyncio.create_task(read_stderr())

    try:
        if timeout:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        else:
            await process.wait()
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        stderr_task.cancel()
        raise FFmpegTimeoutError(f"FFmpeg execution timed out after {timeout} seconds")
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        stderr_task.cancel()
        raise

    await stderr_task

    if process.returncode != 0:
        error_msg = '\n'.join(stderr_lines[-STDERR_TAIL_LINES:])
        raise FFmpegExecutionError(
            f"FFmpeg failed with code {process.returncode}: {error_msg}",
            returncode=process.returncode
        )

    return stderr_lines


class MediaProber:
    """ffprobe wrapper."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH

    async def probe(self, path) -> SourceProbe:
        """Probe a media file for duration, dimensions, codec and bitrate."""
        path = Path(path)
        if not path.is_file():
            raise UnreadableMediaError(f"Source file not found: {path}")

        cmd = [
            self.ffprobe_path, '-v', 'quiet', '-print_format', 'json',
            '-show_format', '-show_streams', str(path)
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise UnreadableMediaError(f"FFprobe could not start: {e}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise UnreadableMediaError(
                f"FFprobe failed with code {process.returncode}: "
                f"{stderr.decode('utf-8', errors='ignore').strip()}"
            )

        try:
            info = json.loads(stdout.decode('utf-8', errors='ignore'))
        except json.JSONDecodeError as e:
            raise UnreadableMediaError(f"Failed to parse FFprobe output: {e}") from e

        return self.parse(info, path)

    @staticmethod
    def parse(info: Dict[str, Any], path=None) -> SourceProbe:
        streams = info.get('streams') or []
        video = next((s for s in streams if s.get('codec_type') == 'video'), None)
        if video is None:
            raise UnreadableMediaError(f"No video stream found in {path}")

        fmt = info.get('format') or {}
        duration = _to_float(fmt.get('duration')) or _to_float(video.get('duration')) or 0.0
        bitrate = _to_float(fmt.get('bit_rate'))

        try:
            probe = SourceProbe(
                duration=duration,
                width=int(video.get('width') or 0),
                height=int(video.get('height') or 0),
                codec=video.get('codec_name') or 'unknown',
                bitrate=int(bitrate) if bitrate else None,
                has_audio=any(s.get('codec_type') == 'audio' for s in streams),
            )
        except ValueError as e:
            raise UnreadableMediaError(f"Invalid video stream in {path}: {e}") from e

        logger.info(
            "Source probed",
            path=str(path),
            duration=probe.duration,
            resolution=f"{probe.width}x{probe.height}",
            codec=probe.codec,
            has_audio=probe.has_audio,
        )
        return probe


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
