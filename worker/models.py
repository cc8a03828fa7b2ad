"""
Value types shared by the transcode pipeline
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EncoderBackend(str, Enum):
    """Encoder implementation used for a rendition."""
    HARDWARE = "hardware"
    SOFTWARE = "software"


class EncodeStatus(str, Enum):
    """Lifecycle of a single rendition encode."""
    PENDING = "pending"
    ENCODING = "encoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class VideoCategory(str, Enum):
    MOVIES = "movies"
    SERIES = "series"
    DOCUMENTARIES = "documentaries"
    ANIMATION = "animation"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"


class SourceProbe(BaseModel):
    """Technical facts about a source file, produced once per job."""

    model_config = ConfigDict(frozen=True)

    duration: float = Field(ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    codec: str
    bitrate: Optional[int] = None
    has_audio: bool = True


class RenditionSpec(BaseModel):
    """One output quality tier. Bitrates are in kbit/s."""

    model_config = ConfigDict(frozen=True)

    label: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    video_bitrate: int = Field(gt=0)
    max_bitrate: int = Field(gt=0)
    buffer_size: int = Field(gt=0)
    audio_bitrate: int = Field(gt=0)
    quality: int = Field(ge=0, le=51)
    preset: str

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def declared_bandwidth(self) -> int:
        """Declared peak bandwidth in bit/s."""
        return (self.max_bitrate + self.audio_bitrate) * 1000

    @property
    def segment_dir(self) -> str:
        return f"hls_{self.label}"

    @property
    def playlist_path(self) -> str:
        return f"{self.segment_dir}/playlist.m3u8"


class EncodeJob(BaseModel):
    """A rendition encode in flight."""

    source_path: str
    spec: RenditionSpec
    backend: EncoderBackend
    status: EncodeStatus = EncodeStatus.PENDING
    attempts: int = 0
    error_message: Optional[str] = None

    def fallback(self) -> "EncodeJob":
        """Re-create this job on the software backend."""
        return EncodeJob(
            source_path=self.source_path,
            spec=self.spec,
            backend=EncoderBackend.SOFTWARE,
            attempts=self.attempts,
        )


class RenditionOutput(BaseModel):
    """A successfully produced rendition."""

    model_config = ConfigDict(frozen=True)

    label: str
    resolution: str
    playlist_path: str
    segment_dir: str
    encoder: EncoderBackend
    bandwidth: int
    height: int

    @classmethod
    def from_spec(cls, spec: RenditionSpec, encoder: EncoderBackend) -> "RenditionOutput":
        return cls(
            label=spec.label,
            resolution=spec.resolution,
            playlist_path=spec.playlist_path,
            segment_dir=spec.segment_dir,
            encoder=encoder,
            bandwidth=spec.declared_bandwidth,
            height=spec.height,
        )


class MasterManifest(BaseModel):
    """Renditions that made it into the master playlist."""

    entries: List[RenditionOutput] = Field(min_length=1)
    failures: Dict[str, str] = Field(default_factory=dict)
    partial: bool = False
    playlist_path: str = "master.m3u8"


class PipelineOptions(BaseModel):
    """Catalogue metadata supplied with a source video."""

    title: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=2000)
    category: VideoCategory = VideoCategory.MOVIES
    genre: str = "action"
    secondary_genres: List[str] = Field(default_factory=list, max_length=2)
    sub_category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return [tag.strip() for tag in v if tag and tag.strip()]


class RenditionRecord(BaseModel):
    label: str
    resolution: str
    playlist_path: str
    encoder: EncoderBackend


class VideoAsset(BaseModel):
    """Published video as stored in the metadata store."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: str = ""
    duration: float
    storage_prefix: str
    master_playlist: str = "master.m3u8"
    hls_url: str
    renditions: List[RenditionRecord]
    processing_status: str = "completed"
    partial: bool = False
    category: VideoCategory = VideoCategory.MOVIES
    genre: str = "action"
    secondary_genres: List[str] = Field(default_factory=list)
    sub_category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC
    original_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
