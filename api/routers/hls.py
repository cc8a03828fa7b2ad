"""
HLS delivery endpoints
"""
from fastapi import APIRouter, Depends, Request, Response
import structlog

from api.config import settings
from api.dependencies import get_upstream
from api.services.playlist import filter_missing_variants, is_master_playlist, rewrite_playlist
from api.services.upstream import UpstreamService, UpstreamStreamingResponse
from api.utils.error_handlers import CORS_HEADERS, InvalidPath
from storage.keys import content_type_for, has_parent_reference, object_key, public_url

logger = structlog.get_logger()
router = APIRouter()

CACHE_HEADERS = {
    "Cache-Control": "public, max-age=3600",
    "Accept-Ranges": "bytes",
}

PROPAGATED_HEADERS = ("content-length", "content-range", "etag", "last-modified", "content-encoding")


def _response_headers() -> dict:
    return {**CACHE_HEADERS, **CORS_HEADERS}


@router.options("/{user_id}/{video_id}/{path:path}")
async def preflight(user_id: str, video_id: str, path: str) -> Response:
    """CORS preflight."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.get("/{user_id}/{video_id}/{path:path}")
async def serve_hls(
    user_id: str,
    video_id: str,
    path: str,
    request: Request,
    upstream: UpstreamService = Depends(get_upstream),
) -> Response:
    """Serve a playlist or segment of a published video."""
    if not path or has_parent_reference(f"{user_id}/{video_id}/{path}"):
        raise InvalidPath(request.url.path)

    key = object_key(user_id, video_id, path)
    url = public_url(settings.STORAGE_PUBLIC_BASE, key)
    content_type = content_type_for(path)

    if path.lower().endswith(".m3u8"):
        text = await upstream.fetch_text(url, timeout=settings.PLAYLIST_TIMEOUT_SECONDS)

        if is_master_playlist(path):
            async def variant_exists(variant_path: str) -> bool:
                variant_url = public_url(settings.STORAGE_PUBLIC_BASE, object_key(user_id, video_id, variant_path))
                return await upstream.playlist_exists(variant_url)

            text = await filter_missing_variants(text, path, variant_exists)

        route_base = f"{settings.HLS_ROUTE_PREFIX.rstrip('/')}/{user_id}/{video_id}"
        body = rewrite_playlist(text, route_base, path)
        return Response(content=body, media_type=content_type, headers=_response_headers())

    range_header = request.headers.get("range")
    upstream_headers = {"Range": range_header} if range_header else None
    response = await upstream.open_stream(
        url, headers=upstream_headers, timeout=settings.SEGMENT_TIMEOUT_SECONDS
    )

    headers = _response_headers()
    for name in PROPAGATED_HEADERS:
        value = response.headers.get(name)
        if value is not None:
            headers[name] = value

    status_code = 206 if range_header and response.status_code == 206 else 200
    logger.debug("Streaming object", key=key, status_code=status_code, range=range_header)
    return UpstreamStreamingResponse(
        response,
        url=url,
        chunk_size=settings.STREAM_CHUNK_SIZE,
        status_code=status_code,
        headers=headers,
        media_type=content_type,
    )
