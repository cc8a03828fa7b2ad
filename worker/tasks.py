"""
Video pipeline task: probe, select ladder, transcode, publish.
"""
import tempfile
import uuid
from pathlib import Path
from typing import Optional

import structlog

from api.config import settings
from worker.base import UnreadableMediaError
from worker.models import PipelineOptions, VideoAsset
from worker.processors.encoder import EncoderAdapter
from worker.processors.ladder import select_ladder
from worker.processors.streaming import TranscodeOrchestrator
from worker.publisher import Publisher
from worker.utils.ffmpeg import HardwareAcceleration, MediaProber
from worker.utils.progress import ProgressObserver, ProgressTracker

logger = structlog.get_logger()


class VideoPipelineTask:
    """Runs one source video through the whole pipeline.

    Each run owns a temporary working directory under ``work_dir`` that
    is removed whether the run succeeds or fails.
    """

    def __init__(self, publisher: Publisher,
                 prober: Optional[MediaProber] = None,
                 encoder: Optional[EncoderAdapter] = None,
                 hardware_mode: Optional[str] = None,
                 work_dir: Optional[Path] = None):
        self.publisher = publisher
        self.prober = prober or MediaProber()
        self.encoder = encoder or EncoderAdapter()
        self.hardware_mode = hardware_mode or settings.HARDWARE_ENCODER
        self.work_dir = Path(work_dir or settings.WORK_DIR)

    async def run(self, source_path, user_id: str, options: PipelineOptions,
                  observer: Optional[ProgressObserver] = None) -> VideoAsset:
        source_path = Path(source_path)
        if not source_path.is_file():
            raise UnreadableMediaError(f"Source file not found: {source_path}")

        video_id = uuid.uuid4().hex
        log = logger.bind(video_id=video_id, user_id=user_id)
        log.info("Pipeline started", source=str(source_path), title=options.title)

        probe = await self.prober.probe(source_path)
        ladder = select_ladder(probe.height)
        hardware_available = await HardwareAcceleration.resolve(self.hardware_mode, self.encoder.ffmpeg_path)
        log.info(
            "Ladder selected",
            tiers=[spec.label for spec in ladder],
            hardware=hardware_available,
        )

        orchestrator = TranscodeOrchestrator(
            encoder=self.encoder,
            hardware_available=hardware_available,
            observer=observer or ProgressTracker(),
        )

        self.work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f"{video_id}_", dir=self.work_dir) as temp_dir:
            output_dir = Path(temp_dir)
            manifest = await orchestrator.run(source_path, ladder, output_dir, probe)
            asset = await self.publisher.publish(
                output_dir,
                user_id,
                video_id,
                manifest,
                options,
                probe,
                source_name=source_path.name,
            )

        log.info("Pipeline completed", renditions=len(asset.renditions), partial=asset.partial)
        return asset
