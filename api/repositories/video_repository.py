"""Video metadata repository."""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from api.models.video import Video
from api.repositories.base import BaseRepository
from worker.models import VideoAsset

logger = structlog.get_logger()


class VideoRepository(BaseRepository[Video]):
    """Create/read access to published video records."""

    def __init__(self, session_factory: async_sessionmaker):
        super().__init__(Video, session_factory)

    async def insert(self, asset: VideoAsset) -> str:
        """Persist a VideoAsset and return its id."""
        values = asset.model_dump(mode="json")
        values["created_at"] = asset.created_at
        video = await self.create(**values)
        logger.info("Video record created", video_id=video.id, user_id=video.user_id)
        return video.id

    async def get_by_id(self, video_id: str) -> Optional[VideoAsset]:
        video = await self.get(video_id)
        if video is None:
            return None
        return VideoAsset.model_validate(video)
