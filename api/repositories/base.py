"""Base repository implementation."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """Base repository with the create/read operations the pipeline needs."""

    def __init__(self, model: Type[T], session_factory: async_sessionmaker):
        self.model = model
        self.session_factory = session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session committed on success and rolled back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create(self, **kwargs) -> T:
        """Create a new entity."""
        async with self.session() as session:
            instance = self.model(**kwargs)
            session.add(instance)
            await session.flush()
            await session.refresh(instance)
            return instance

    async def get(self, entity_id: str) -> Optional[T]:
        """Get entity by ID."""
        async with self.session() as session:
            stmt = select(self.model).where(self.model.id == entity_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
