"""
Video record model
"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, Index, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Video(Base):
    """Published video and the renditions available for playback."""
    __tablename__ = "videos"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(255), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    duration = Column(Float, nullable=False, default=0.0)

    storage_prefix = Column(String(512), nullable=False)
    master_playlist = Column(String(255), nullable=False, default="master.m3u8")
    hls_url = Column(String(512), nullable=False)
    renditions = Column(JSON, nullable=False, default=list)
    processing_status = Column(String(20), nullable=False, default="completed")
    partial = Column(Boolean, nullable=False, default=False)

    # Catalogue
    category = Column(String(50), nullable=False, default="movies")
    genre = Column(String(50), nullable=False, default="action")
    secondary_genres = Column(JSON, nullable=False, default=list)
    sub_category = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    visibility = Column(String(20), nullable=False, default="public")
    original_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_video_user_created", "user_id", "created_at"),
        Index("idx_video_category", "category"),
    )
