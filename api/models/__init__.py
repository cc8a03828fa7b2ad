"""
Database models
"""
from .video import Video, Base
from .database import init_db, engine, AsyncSessionLocal, create_engine_for

__all__ = [
    "Video",
    "Base",
    "init_db",
    "engine",
    "AsyncSessionLocal",
    "create_engine_for",
]
