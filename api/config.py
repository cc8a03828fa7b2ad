"""
Application configuration
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the delivery gateway and the transcode pipeline."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = Field(8000, gt=0)
    API_WORKERS: int = Field(1, gt=0)
    API_RELOAD: bool = False
    API_LOG_LEVEL: str = "info"

    # Delivery gateway
    HLS_ROUTE_PREFIX: str = "/hls"
    PLAYLIST_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    SEGMENT_TIMEOUT_SECONDS: float = Field(60.0, gt=0)
    VARIANT_PROBE_TIMEOUT_SECONDS: float = Field(15.0, gt=0)
    VARIANT_PROBE_BYTES: int = Field(4096, gt=0)
    UPSTREAM_MAX_ATTEMPTS: int = Field(3, ge=1)
    UPSTREAM_RETRY_DELAY: float = Field(0.2, ge=0)
    UPSTREAM_MAX_CONNECTIONS: int = Field(50, gt=0)
    UPSTREAM_MAX_KEEPALIVE: int = Field(20, ge=0)
    STREAM_CHUNK_SIZE: int = Field(64 * 1024, gt=0)

    # Object storage
    STORAGE_BACKEND: str = "s3"
    STORAGE_PUBLIC_BASE: str = "http://localhost:9000/videos-bucket"
    STORAGE_PATH: str = "./storage"
    S3_BUCKET: Optional[str] = None
    S3_ENDPOINT: Optional[str] = None
    S3_REGION: str = "auto"
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    UPLOAD_CONCURRENCY: int = Field(5, gt=0)
    UPLOAD_MAX_ATTEMPTS: int = Field(3, ge=1)
    UPLOAD_RETRY_DELAY: float = Field(1.0, ge=0)

    # Metadata store
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/videos.db"

    # Encoding
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    HARDWARE_ENCODER: str = Field("auto", pattern="^(auto|on|off)$")
    HARDWARE_MAX_SESSIONS: int = Field(3, gt=0)
    HARDWARE_PARALLEL_MAX_TIERS: int = Field(3, gt=0)
    HLS_SEGMENT_SECONDS: int = Field(4, gt=0)
    ENCODE_TIMEOUT_SECONDS: Optional[float] = None
    WORK_DIR: Path = Path("./tmp/hls_processing")
    DEFAULT_USER_ID: str = "admin"


settings = Settings()
