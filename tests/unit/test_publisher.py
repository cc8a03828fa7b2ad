"""
Tests for publishing packaged videos
"""
import pytest

from worker.base import PublishError
from worker.models import EncoderBackend, MasterManifest, RenditionOutput
from worker.processors.ladder import RENDITION_PRESETS
from worker.processors.streaming import build_master_playlist
from worker.publisher import Publisher

PREFIX = "videos/user-1/vid-1"


@pytest.fixture
def manifest():
    entries = [
        RenditionOutput.from_spec(RENDITION_PRESETS["720p"], EncoderBackend.HARDWARE),
        RenditionOutput.from_spec(RENDITION_PRESETS["360p"], EncoderBackend.SOFTWARE),
    ]
    return MasterManifest(entries=entries, failures={"480p": "encoder exited"}, partial=True)


@pytest.fixture
def packaged_dir(tmp_path, manifest):
    """A packaged HLS tree with three segments per rendition."""
    for entry in manifest.entries:
        variant_dir = tmp_path / entry.segment_dir
        variant_dir.mkdir()
        (variant_dir / "playlist.m3u8").write_text("#EXTM3U\n")
        for index in range(3):
            (variant_dir / f"seg_{index:04d}.ts").write_bytes(b"\x47" * 188)
    (tmp_path / "master.m3u8").write_text(build_master_playlist(manifest.entries))
    return tmp_path


def make_publisher(storage, repository, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return Publisher(storage, repository, **kwargs)


class TestPublisher:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_uploads_tree_with_content_types(self, packaged_dir, manifest, options,
                                                   probe_1080, mock_storage, mock_repository):
        publisher = make_publisher(mock_storage, mock_repository)

        await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

        assert len(mock_storage.files) == 9
        assert mock_storage.files[f"{PREFIX}/master.m3u8"]["content_type"] == "application/vnd.apple.mpegurl"
        assert mock_storage.files[f"{PREFIX}/hls_720p/playlist.m3u8"]["content_type"] == \
            "application/vnd.apple.mpegurl"
        assert mock_storage.files[f"{PREFIX}/hls_360p/seg_0002.ts"]["content_type"] == "video/MP2T"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_master_uploaded_last(self, packaged_dir, manifest, options,
                                        probe_1080, mock_storage, mock_repository):
        mock_storage.delay = 0.005
        publisher = make_publisher(mock_storage, mock_repository)

        await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

        assert mock_storage.upload_order[-1] == f"{PREFIX}/master.m3u8"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, packaged_dir, manifest, options,
                                       probe_1080, mock_storage, mock_repository):
        mock_storage.delay = 0.02
        publisher = make_publisher(mock_storage, mock_repository, concurrency=3)

        await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

        assert 1 < mock_storage.max_active <= 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_upload_failure_retried(self, packaged_dir, manifest, options,
                                                    probe_1080, mock_storage, mock_repository):
        key = f"{PREFIX}/hls_720p/seg_0001.ts"
        mock_storage.fail_times(key, 2)
        publisher = make_publisher(mock_storage, mock_repository, max_attempts=3)

        await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

        assert mock_storage.attempts[key] == 3
        assert key in mock_storage.files
        mock_repository.insert.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persistent_failure_skips_master_and_record(self, packaged_dir, manifest, options,
                                                               probe_1080, mock_storage, mock_repository):
        key = f"{PREFIX}/hls_360p/playlist.m3u8"
        mock_storage.fail_always(key)
        publisher = make_publisher(mock_storage, mock_repository, max_attempts=2)

        with pytest.raises(PublishError) as exc_info:
            await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

        assert exc_info.value.key == key
        assert mock_storage.attempts[key] == 2
        assert f"{PREFIX}/master.m3u8" not in mock_storage.files
        mock_repository.insert.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_insert_failure_is_publish_error(self, packaged_dir, manifest, options,
                                                   probe_1080, mock_storage, mock_repository):
        mock_repository.insert.side_effect = RuntimeError("database is locked")
        publisher = make_publisher(mock_storage, mock_repository)

        with pytest.raises(PublishError, match="database is locked"):
            await publisher.publish(packaged_dir, "user-1", "vid-1", manifest, options, probe_1080)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_master(self, tmp_path, manifest, options, probe_1080,
                                  mock_storage, mock_repository):
        publisher = make_publisher(mock_storage, mock_repository)

        with pytest.raises(PublishError):
            await publisher.publish(tmp_path, "user-1", "vid-1", manifest, options, probe_1080)
        assert mock_storage.files == {}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_recorded_asset(self, packaged_dir, manifest, options, probe_1080,
                                  mock_storage, mock_repository):
        publisher = make_publisher(mock_storage, mock_repository, route_prefix="/hls/")

        asset = await publisher.publish(
            packaged_dir, "user-1", "vid-1", manifest, options, probe_1080, source_name="movie.mp4"
        )

        assert mock_repository.insert.await_args.args[0] is asset
        assert asset.id == "vid-1"
        assert asset.hls_url == "/hls/user-1/vid-1/master.m3u8"
        assert asset.storage_prefix == PREFIX
        assert asset.partial is True
        assert asset.duration == 10.0
        assert asset.original_name == "movie.mp4"
        assert asset.tags == ["demo"]
        assert [(r.label, r.encoder) for r in asset.renditions] == [
            ("720p", EncoderBackend.HARDWARE),
            ("360p", EncoderBackend.SOFTWARE),
        ]
