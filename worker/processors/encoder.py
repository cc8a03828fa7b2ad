"""
Single-rendition HLS encoder with hardware and software backends.
"""
from pathlib import Path
from typing import List, Optional

import structlog

from api.config import settings
from worker.base import EncoderBackendFailure, RenditionFailed
from worker.models import EncoderBackend, RenditionOutput, RenditionSpec
from worker.utils.ffmpeg import (
    FFmpegExecutionError,
    FFmpegProgressParser,
    FFmpegTimeoutError,
    run_ffmpeg,
)
from worker.utils.progress import ProgressObserver, notify

logger = structlog.get_logger()

SEGMENT_PATTERN = "seg_%04d.ts"
PLAYLIST_NAME = "playlist.m3u8"
GOP_SIZE = 48
AUDIO_SAMPLE_RATE = 48000


class EncoderAdapter:
    """Encodes one rendition of a source into an HLS variant directory.

    The adapter never retries. A non-zero hardware exit surfaces as
    EncoderBackendFailure so the caller can decide on a software fallback.
    """

    def __init__(self, ffmpeg_path: Optional[str] = None,
                 segment_seconds: Optional[int] = None,
                 timeout: Optional[float] = None):
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.segment_seconds = segment_seconds or settings.HLS_SEGMENT_SECONDS
        self.timeout = timeout if timeout is not None else settings.ENCODE_TIMEOUT_SECONDS

    def build_command(self, source_path: str, variant_dir: Path,
                      spec: RenditionSpec, backend: EncoderBackend) -> List[str]:
        """Build the FFmpeg command for one rendition."""
        cmd = [self.ffmpeg_path, '-y', '-hide_banner', '-i', str(source_path)]
        cmd.extend(['-map', '0:v:0', '-map', '0:a:0?'])

        w, h = spec.width, spec.height
        cmd.extend([
            '-vf',
            f'scale={w}:{h}:force_original_aspect_ratio=decrease,'
            f'pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1'
        ])

        if backend == EncoderBackend.HARDWARE:
            cmd.extend([
                '-c:v', 'h264_nvenc',
                '-preset', spec.preset,
                '-rc', 'vbr',
                '-cq', str(spec.quality),
                '-b:v', f'{spec.video_bitrate}k',
                '-spatial-aq', '1',
                '-temporal-aq', '1',
            ])
        else:
            cmd.extend([
                '-c:v', 'libx264',
                '-preset', 'medium',
                '-crf', str(spec.quality + 2),
            ])

        cmd.extend([
            '-profile:v', 'high',
            '-level', '4.1',
            '-pix_fmt', 'yuv420p',
            '-maxrate', f'{spec.max_bitrate}k',
            '-bufsize', f'{spec.buffer_size}k',
            '-g', str(GOP_SIZE),
            '-keyint_min', str(GOP_SIZE),
            '-sc_threshold', '0',
        ])

        cmd.extend([
            '-c:a', 'aac',
            '-b:a', f'{spec.audio_bitrate}k',
            '-ac', '2',
            '-ar', str(AUDIO_SAMPLE_RATE),
        ])

        cmd.extend([
            '-f', 'hls',
            '-hls_time', str(self.segment_seconds),
            '-hls_list_size', '0',
            '-hls_playlist_type', 'vod',
            '-hls_segment_type', 'mpegts',
            '-hls_flags', 'independent_segments',
            '-start_number', '0',
            '-hls_segment_filename', str(variant_dir / SEGMENT_PATTERN),
            str(variant_dir / PLAYLIST_NAME),
        ])
        return cmd

    async def encode(self, source_path: str, output_dir, spec: RenditionSpec,
                     backend: EncoderBackend,
                     observer: Optional[ProgressObserver] = None,
                     duration: Optional[float] = None) -> RenditionOutput:
        """Encode ``spec`` into ``output_dir/hls_{label}``."""
        variant_dir = Path(output_dir) / spec.segment_dir
        variant_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(source_path, variant_dir, spec, backend)
        parser = FFmpegProgressParser(duration)

        def on_progress(progress):
            if 'percentage' in progress:
                notify(observer, spec.label, progress['percentage'], progress)

        logger.info(
            "Encoding rendition",
            label=spec.label,
            backend=backend.value,
            resolution=spec.resolution,
        )

        try:
            await run_ffmpeg(cmd, parser, on_progress, timeout=self.timeout)
        except FFmpegTimeoutError as e:
            logger.error("Rendition encode timed out", label=spec.label, backend=backend.value)
            raise RenditionFailed(spec.label, str(e)) from e
        except FFmpegExecutionError as e:
            logger.warning(
                "Rendition encode failed",
                label=spec.label,
                backend=backend.value,
                returncode=e.returncode,
            )
            if backend == EncoderBackend.HARDWARE:
                raise EncoderBackendFailure(spec.label, str(e)) from e
            raise RenditionFailed(spec.label, str(e)) from e
        except OSError as e:
            raise RenditionFailed(spec.label, f"FFmpeg could not start: {e}") from e

        if not (variant_dir / PLAYLIST_NAME).is_file():
            raise RenditionFailed(spec.label, "Encoder exited cleanly but wrote no playlist")

        notify(observer, spec.label, 100.0, {})
        logger.info("Rendition encoded", label=spec.label, backend=backend.value)
        return RenditionOutput.from_spec(spec, backend)
