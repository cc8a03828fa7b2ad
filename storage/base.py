"""
Base storage backend interface
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import aiofiles

from storage.keys import public_url


class StorageBackend(ABC):
    """Abstract base class for object storage backends."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize storage backend with configuration."""
        self.config = config
        self.name = config.get("name", "unknown")
        self.public_base = config.get("public_base", "")

    @abstractmethod
    async def put_file(self, key: str, path: Path, content_type: str) -> None:
        """Store the local file at ``path`` under ``key``."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if an object exists."""
        pass

    @abstractmethod
    async def read(self, key: str, chunk_size: int = 8192) -> AsyncIterator[bytes]:
        """Read object content as chunks."""
        pass

    def public_url(self, key: str) -> str:
        """Public HTTP URL of an object."""
        if not self.public_base:
            raise NotImplementedError(f"{self.__class__.__name__} has no public base URL configured")
        return public_url(self.public_base, key)

    async def read_bytes(self, key: str) -> bytes:
        chunks = []
        async for chunk in self.read(key):
            chunks.append(chunk)
        return b"".join(chunks)


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend for development."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.base_path = Path(config.get("base_path", "./storage"))
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _full_path(self, key: str) -> Path:
        """Get full filesystem path."""
        key = key.lstrip("/")
        full_path = self.base_path / key

        # Keys must stay inside base_path
        try:
            full_path.resolve().relative_to(self.base_path.resolve())
        except ValueError:
            raise ValueError(f"Key '{key}' is outside storage boundary")

        return full_path

    async def put_file(self, key: str, path: Path, content_type: Optional[str] = None) -> None:
        """Copy a file into the storage tree."""
        dst_path = self._full_path(key)
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(path, "rb") as src_file:
            async with aiofiles.open(dst_path, "wb") as dst_file:
                while chunk := await src_file.read(64 * 1024):
                    await dst_file.write(chunk)

    async def exists(self, key: str) -> bool:
        return self._full_path(key).is_file()

    async def read(self, key: str, chunk_size: int = 8192) -> AsyncIterator[bytes]:
        """Read file in chunks."""
        full_path = self._full_path(key)
        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {key}")

        async with aiofiles.open(full_path, "rb") as f:
            while chunk := await f.read(chunk_size):
                yield chunk

