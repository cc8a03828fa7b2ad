"""
Database initialization and session management
"""
import os
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from api.config import settings
from api.models.video import Base


def create_engine_for(url: str):
    """Create an async engine configured for the database type."""
    if "sqlite" in url:
        poolclass = StaticPool if ":memory:" in url else NullPool
        return create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=poolclass,
        )
    return create_async_engine(url, pool_pre_ping=True)


engine = create_engine_for(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(db_engine=None) -> None:
    """Create tables, and the SQLite directory when needed."""
    db_engine = db_engine or engine
    url = str(db_engine.url)
    if "sqlite" in url and ":memory:" not in url:
        db_path = db_engine.url.database or ""
        db_dir = os.path.dirname(db_path)
        if db_dir:
            Path(db_dir).mkdir(parents=True, exist_ok=True)

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

