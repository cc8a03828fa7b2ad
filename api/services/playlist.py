"""
HLS playlist repair and rewriting
"""
import asyncio
import posixpath
import re
from typing import Awaitable, Callable, List, Optional, Tuple

import structlog

logger = structlog.get_logger()

STREAM_INF_TAG = "#EXT-X-STREAM-INF"
VARIANT_LINE = re.compile(r"^hls_[^\s/]+/playlist\.m3u8$")
URI_ATTRIBUTE = re.compile(r'URI="([^"]*)"')
SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
REWRITTEN_EXTENSIONS = (".m3u8", ".ts")


def is_master_playlist(path: str) -> bool:
    return posixpath.basename(path) == "master.m3u8"


def variant_entries(text: str) -> List[Tuple[int, str]]:
    """Stream-info entries whose URI line names a packaged variant playlist.

    Returns ``(index of the #EXT-X-STREAM-INF line, variant path)`` pairs.
    """
    lines = text.splitlines()
    entries = []
    for index, line in enumerate(lines[:-1]):
        if not line.strip().startswith(STREAM_INF_TAG):
            continue
        candidate = lines[index + 1].strip()
        if VARIANT_LINE.match(candidate):
            entries.append((index, candidate))
    return entries


def drop_variants(text: str, missing: List[int]) -> str:
    """Remove the stream-info lines at ``missing`` together with their URI lines."""
    if not missing:
        return text
    dropped = set()
    for index in missing:
        dropped.update((index, index + 1))
    lines = [line for i, line in enumerate(text.splitlines()) if i not in dropped]
    return _join(lines, text)


async def filter_missing_variants(text: str, master_path: str,
                                  exists: Callable[[str], Awaitable[bool]]) -> str:
    """Drop master entries whose variant playlist does not exist.

    ``exists`` receives each variant path resolved against the master's
    directory. Checks run concurrently.
    """
    entries = variant_entries(text)
    if not entries:
        return text

    base_dir = posixpath.dirname(master_path)
    results = await asyncio.gather(
        *(exists(posixpath.join(base_dir, variant)) for _, variant in entries),
        return_exceptions=True,
    )

    missing = []
    for (index, variant), result in zip(entries, results):
        if result is True:
            continue
        if isinstance(result, Exception):
            logger.warning("Variant check errored", variant=variant, error=str(result))
        missing.append(index)
        logger.warning("Dropping unavailable variant from master playlist", variant=variant)

    return drop_variants(text, missing)


def _split_query(ref: str) -> Tuple[str, str]:
    path, sep, query = ref.partition("?")
    return path, sep + query


def resolve_reference(ref: str, playlist_path: str) -> Optional[str]:
    """Resolve a relative .m3u8/.ts reference against the playlist's directory.

    Returns None when the reference is absolute, not a playlist or segment,
    or escapes the video prefix.
    """
    ref = ref.strip()
    if not ref or ref.startswith("/") or SCHEME.match(ref):
        return None
    path, query = _split_query(ref)
    if not path.lower().endswith(REWRITTEN_EXTENSIONS):
        return None
    resolved = posixpath.normpath(posixpath.join(posixpath.dirname(playlist_path), path))
    if resolved == ".." or resolved.startswith("../"):
        return None
    return resolved + query


def rewrite_playlist(text: str, route_base: str, playlist_path: str) -> str:
    """Point every relative playlist/segment reference at the gateway.

    ``route_base`` is ``/hls/{userId}/{videoId}``; ``playlist_path`` is the
    path of the playlist being rewritten relative to the video prefix.
    """
    route_base = route_base.rstrip("/")

    def route(ref: str) -> Optional[str]:
        resolved = resolve_reference(ref, playlist_path)
        return f"{route_base}/{resolved}" if resolved is not None else None

    def rewrite_attribute(match: re.Match) -> str:
        routed = route(match.group(1))
        return f'URI="{routed}"' if routed else match.group(0)

    lines = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            lines.append(line)
        elif stripped.startswith("#"):
            lines.append(URI_ATTRIBUTE.sub(rewrite_attribute, line))
        else:
            lines.append(route(stripped) or line)
    return _join(lines, text)


def _join(lines: List[str], original: str) -> str:
    joined = "\n".join(lines)
    if original.endswith(("\n", "\r")):
        joined += "\n"
    return joined
