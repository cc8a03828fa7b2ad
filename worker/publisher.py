"""
Publishing of packaged HLS trees to object storage and the metadata store.
"""
import asyncio
from pathlib import Path
from typing import List, Optional

import structlog

from api.config import settings
from storage.base import StorageBackend
from storage.keys import content_type_for, object_key, video_prefix
from worker.base import PublishError
from worker.models import (
    MasterManifest,
    PipelineOptions,
    RenditionRecord,
    SourceProbe,
    VideoAsset,
)

logger = structlog.get_logger()


class Publisher:
    """Uploads a packaged video and records it.

    Variant playlists and segments are uploaded first with bounded
    concurrency; the master playlist goes last so that it is never
    visible before the renditions it references.
    """

    def __init__(self, storage: StorageBackend, repository,
                 concurrency: Optional[int] = None,
                 max_attempts: Optional[int] = None,
                 retry_delay: Optional[float] = None,
                 route_prefix: Optional[str] = None):
        self.storage = storage
        self.repository = repository
        self.concurrency = concurrency or settings.UPLOAD_CONCURRENCY
        self.max_attempts = max_attempts or settings.UPLOAD_MAX_ATTEMPTS
        self.retry_delay = settings.UPLOAD_RETRY_DELAY if retry_delay is None else retry_delay
        self.route_prefix = (route_prefix or settings.HLS_ROUTE_PREFIX).rstrip("/")

    async def publish(self, output_dir, user_id: str, video_id: str,
                      manifest: MasterManifest, options: PipelineOptions,
                      probe: SourceProbe, source_name: Optional[str] = None) -> VideoAsset:
        output_dir = Path(output_dir)
        master_path = output_dir / manifest.playlist_path
        if not master_path.is_file():
            raise PublishError(f"Master playlist not found in {output_dir}")

        files = sorted(p for p in output_dir.rglob("*") if p.is_file() and p != master_path)
        logger.info(
            "Publishing video",
            video_id=video_id,
            user_id=user_id,
            files=len(files) + 1,
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(path: Path):
            async with semaphore:
                await self._upload(output_dir, path, user_id, video_id)

        results = await asyncio.gather(*(bounded(p) for p in files), return_exceptions=True)
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            logger.error("Publishing failed", video_id=video_id, failed=len(errors))
            raise errors[0]

        await self._upload(output_dir, master_path, user_id, video_id)

        asset = self.build_asset(user_id, video_id, manifest, options, probe, source_name)
        try:
            await self.repository.insert(asset)
        except Exception as e:
            logger.error("Video record insert failed", video_id=video_id, error=str(e))
            raise PublishError(f"Failed to record video metadata: {e}") from e

        logger.info("Video published", video_id=video_id, hls_url=asset.hls_url, partial=asset.partial)
        return asset

    async def _upload(self, output_dir: Path, path: Path, user_id: str, video_id: str) -> str:
        """Upload one file, retrying with linear backoff."""
        relative = path.relative_to(output_dir).as_posix()
        key = object_key(user_id, video_id, relative)
        content_type = content_type_for(relative)

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.storage.put_file(key, path, content_type)
                logger.debug("Uploaded object", key=key, attempt=attempt)
                return key
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error("Upload failed", key=key, attempts=attempt, error=str(e))
                    raise PublishError(f"Failed to upload {key}: {e}", key=key) from e
                logger.warning("Upload attempt failed, retrying", key=key, attempt=attempt, error=str(e))
                await asyncio.sleep(self.retry_delay * attempt)

    def build_asset(self, user_id: str, video_id: str, manifest: MasterManifest,
                    options: PipelineOptions, probe: SourceProbe,
                    source_name: Optional[str] = None) -> VideoAsset:
        renditions: List[RenditionRecord] = [
            RenditionRecord(
                label=entry.label,
                resolution=entry.resolution,
                playlist_path=entry.playlist_path,
                encoder=entry.encoder,
            )
            for entry in manifest.entries
        ]
        return VideoAsset(
            id=video_id,
            user_id=user_id,
            title=options.title,
            description=options.description,
            duration=probe.duration,
            storage_prefix=video_prefix(user_id, video_id),
            master_playlist=manifest.playlist_path,
            hls_url=f"{self.route_prefix}/{user_id}/{video_id}/{manifest.playlist_path}",
            renditions=renditions,
            processing_status="completed",
            partial=manifest.partial,
            category=options.category,
            genre=options.genre,
            secondary_genres=options.secondary_genres,
            sub_category=options.sub_category,
            tags=options.tags,
            visibility=options.visibility,
            original_name=source_name,
        )
