"""
Transcode orchestration: schedules rendition encodes, applies the software
fallback policy and synthesizes the HLS master playlist.
"""
import asyncio
import shutil
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import aiofiles
import structlog

from api.config import settings
from worker.base import EncoderBackendFailure, NoRenditionsProducedError, RenditionFailed
from worker.models import (
    EncodeJob,
    EncoderBackend,
    EncodeStatus,
    MasterManifest,
    RenditionOutput,
    RenditionSpec,
    SourceProbe,
)
from worker.processors.encoder import EncoderAdapter
from worker.utils.progress import ProgressObserver

logger = structlog.get_logger()

MASTER_PLAYLIST = "master.m3u8"


def build_master_playlist(entries: Iterable[RenditionOutput]) -> str:
    """Render a master playlist, tallest rendition first."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for entry in sorted(entries, key=lambda e: e.height, reverse=True):
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={entry.bandwidth},RESOLUTION={entry.resolution}")
        lines.append(entry.playlist_path)
    return "\n".join(lines) + "\n"


class TranscodeOrchestrator:
    """Runs one encode per ladder tier and packages the results."""

    def __init__(self, encoder: Optional[EncoderAdapter] = None,
                 hardware_available: bool = False,
                 max_sessions: Optional[int] = None,
                 parallel_max_tiers: Optional[int] = None,
                 observer: Optional[ProgressObserver] = None):
        self.encoder = encoder or EncoderAdapter()
        self.hardware_available = hardware_available
        self.max_sessions = max_sessions or settings.HARDWARE_MAX_SESSIONS
        self.parallel_max_tiers = parallel_max_tiers or settings.HARDWARE_PARALLEL_MAX_TIERS
        self.observer = observer

    def runs_concurrently(self, ladder: List[RenditionSpec]) -> bool:
        return self.hardware_available and len(ladder) <= self.parallel_max_tiers

    async def run(self, source_path, ladder: List[RenditionSpec], output_dir,
                  probe: SourceProbe) -> MasterManifest:
        """Encode every tier, then write ``master.m3u8`` into ``output_dir``."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        initial_backend = EncoderBackend.HARDWARE if self.hardware_available else EncoderBackend.SOFTWARE
        jobs = [
            EncodeJob(source_path=str(source_path), spec=spec, backend=initial_backend)
            for spec in ladder
        ]

        concurrent = self.runs_concurrently(ladder)
        logger.info(
            "Starting transcode",
            tiers=[spec.label for spec in ladder],
            backend=initial_backend.value,
            mode="concurrent" if concurrent else "sequential",
        )

        if concurrent:
            sessions = asyncio.Semaphore(self.max_sessions)
            cpu_lock = asyncio.Lock()
            tasks = [
                asyncio.ensure_future(self._run_job(job, output_dir, probe, sessions, cpu_lock))
                for job in jobs
            ]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # No encode may keep writing into output_dir once the batch has failed
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        else:
            results = []
            for job in jobs:
                results.append(await self._run_job(job, output_dir, probe))

        entries: List[RenditionOutput] = []
        failures: Dict[str, str] = {}
        for label, output, error in results:
            if output is not None:
                entries.append(output)
            else:
                failures[label] = error

        # Only renditions whose playlist is on disk go into the master
        for entry in list(entries):
            if not (output_dir / entry.playlist_path).is_file():
                entries.remove(entry)
                failures[entry.label] = "Variant playlist missing at packaging time"

        # Drop leftovers of failed tiers so they are never published
        segment_dirs = {spec.label: spec.segment_dir for spec in ladder}
        for label in failures:
            shutil.rmtree(output_dir / segment_dirs[label], ignore_errors=True)

        if not entries:
            logger.error("Transcode produced no renditions", failures=failures)
            raise NoRenditionsProducedError(failures)

        entries.sort(key=lambda e: e.height, reverse=True)
        manifest = MasterManifest(
            entries=entries,
            failures=failures,
            partial=bool(failures),
            playlist_path=MASTER_PLAYLIST,
        )

        async with aiofiles.open(output_dir / MASTER_PLAYLIST, 'w') as f:
            await f.write(build_master_playlist(entries))

        if manifest.partial:
            logger.warning(
                "Transcode completed with missing renditions",
                produced=[e.label for e in entries],
                failures=failures,
            )
        else:
            logger.info("Transcode completed", produced=[e.label for e in entries])
        return manifest

    async def _run_job(self, job: EncodeJob, output_dir: Path, probe: SourceProbe,
                       sessions: Optional[asyncio.Semaphore] = None,
                       cpu_lock: Optional[asyncio.Lock] = None
                       ) -> Tuple[str, Optional[RenditionOutput], Optional[str]]:
        label = job.spec.label
        try:
            if job.backend == EncoderBackend.HARDWARE:
                try:
                    if sessions is not None:
                        async with sessions:
                            return label, await self._attempt(job, output_dir, probe), None
                    return label, await self._attempt(job, output_dir, probe), None
                except EncoderBackendFailure as e:
                    logger.warning(
                        "Hardware encode failed, retrying in software",
                        label=label,
                        error=e.message,
                    )
                    job = job.fallback()

            if cpu_lock is not None:
                async with cpu_lock:
                    return label, await self._attempt(job, output_dir, probe), None
            return label, await self._attempt(job, output_dir, probe), None

        except RenditionFailed as e:
            logger.error("Rendition failed", label=label, backend=job.backend.value, error=e.message)
            return label, None, e.message
        except EncoderBackendFailure as e:
            # Encoder reported a backend failure on the software path
            logger.error("Rendition failed", label=label, backend=job.backend.value, error=e.message)
            return label, None, e.message

    async def _attempt(self, job: EncodeJob, output_dir: Path, probe: SourceProbe) -> RenditionOutput:
        job.status = EncodeStatus.ENCODING
        job.attempts += 1
        try:
            output = await self.encoder.encode(
                job.source_path,
                output_dir,
                job.spec,
                job.backend,
                observer=self.observer,
                duration=probe.duration,
            )
        except (EncoderBackendFailure, RenditionFailed) as e:
            job.status = EncodeStatus.FAILED
            job.error_message = e.message
            raise
        job.status = EncodeStatus.SUCCEEDED
        return output
