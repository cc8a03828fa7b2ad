"""
Integration tests for the video metadata repository
"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.models.database import create_engine_for, init_db
from api.repositories.video_repository import VideoRepository
from worker.models import EncoderBackend, RenditionRecord, VideoAsset, VideoCategory
from tests.conftest import TEST_DATABASE_URL


@pytest_asyncio.fixture
async def repository():
    engine = create_engine_for(TEST_DATABASE_URL)
    await init_db(engine)
    yield VideoRepository(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


def make_asset(video_id="vid-1", **overrides) -> VideoAsset:
    values = dict(
        id=video_id,
        user_id="user-1",
        title="Test Video",
        duration=12.5,
        storage_prefix=f"videos/user-1/{video_id}",
        hls_url=f"/hls/user-1/{video_id}/master.m3u8",
        renditions=[
            RenditionRecord(label="720p", resolution="1280x720",
                            playlist_path="hls_720p/playlist.m3u8", encoder=EncoderBackend.HARDWARE),
            RenditionRecord(label="360p", resolution="640x360",
                            playlist_path="hls_360p/playlist.m3u8", encoder=EncoderBackend.SOFTWARE),
        ],
        category=VideoCategory.DOCUMENTARIES,
        tags=["nature", "4k"],
    )
    values.update(overrides)
    return VideoAsset(**values)


class TestVideoRepository:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insert_returns_id(self, repository):
        assert await repository.insert(make_asset()) == "vid-1"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_round_trip(self, repository):
        asset = make_asset(partial=True, original_name="trip.mov")
        await repository.insert(asset)

        stored = await repository.get_by_id("vid-1")

        assert stored is not None
        assert stored.hls_url == asset.hls_url
        assert stored.category == VideoCategory.DOCUMENTARIES
        assert stored.tags == ["nature", "4k"]
        assert stored.partial is True
        assert stored.original_name == "trip.mov"
        assert [(r.label, r.encoder) for r in stored.renditions] == [
            ("720p", EncoderBackend.HARDWARE),
            ("360p", EncoderBackend.SOFTWARE),
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing(self, repository):
        assert await repository.get_by_id("nope") is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, repository):
        await repository.insert(make_asset())
        with pytest.raises(Exception):
            await repository.insert(make_asset(title="Again"))
        assert (await repository.get_by_id("vid-1")).title == "Test Video"
