"""
Object key naming shared by the publisher and the delivery gateway.
"""
import posixpath
from typing import Optional

KEY_ROOT = "videos"


def video_prefix(user_id: str, video_id: str) -> str:
    """``videos/{userId}/{videoId}``"""
    return f"{KEY_ROOT}/{user_id}/{video_id}"


def object_key(user_id: str, video_id: str, relative_path: str) -> str:
    """Key for a file of a packaged video; ``relative_path`` uses POSIX separators."""
    relative_path = relative_path.replace("\\", "/").lstrip("/")
    return f"{video_prefix(user_id, video_id)}/{relative_path}"


def public_url(base: str, key: str) -> str:
    """Join a public storage base URL and an object key."""
    return f"{base.rstrip('/')}/{key.lstrip('/')}"


def has_parent_reference(path: str) -> bool:
    """True when any segment of ``path`` is ``..``."""
    return any(part == ".." for part in path.replace("\\", "/").split("/"))


def content_type_for(path: str, default: Optional[str] = "application/octet-stream") -> str:
    """Content type by file extension."""
    ext = posixpath.splitext(path.lower())[1]
    if ext == ".m3u8":
        return "application/vnd.apple.mpegurl"
    if ext == ".ts":
        return "video/MP2T"
    return default
