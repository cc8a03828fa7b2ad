"""
Object store access for the delivery gateway.

All requests share one pooled ``httpx.AsyncClient``. Transient failures
are retried with linear backoff inside the request's own time budget;
HTTP error responses are never retried.
"""
import asyncio
from typing import AsyncIterator, Dict, Optional

import httpx
import structlog
from fastapi.responses import StreamingResponse

from api.config import settings
from api.utils.error_handlers import NotFound, UpstreamApplicationError, UpstreamTransientError

logger = structlog.get_logger()

TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
)

PLAYLIST_SIGNATURE = "#EXTM3U"


def create_http_client(max_connections: Optional[int] = None,
                       max_keepalive: Optional[int] = None) -> httpx.AsyncClient:
    """Create the shared keep-alive client for the object store."""
    limits = httpx.Limits(
        max_connections=max_connections or settings.UPSTREAM_MAX_CONNECTIONS,
        max_keepalive_connections=(
            settings.UPSTREAM_MAX_KEEPALIVE if max_keepalive is None else max_keepalive
        ),
    )
    return httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(settings.SEGMENT_TIMEOUT_SECONDS),
        headers={"User-Agent": f"hlsforge-gateway/{settings.VERSION}"},
    )


class UpstreamService:
    """GETs objects from the public storage endpoint."""

    def __init__(self, client: httpx.AsyncClient,
                 max_attempts: Optional[int] = None,
                 retry_delay: Optional[float] = None,
                 probe_timeout: Optional[float] = None,
                 probe_bytes: Optional[int] = None):
        self.client = client
        self.max_attempts = max_attempts or settings.UPSTREAM_MAX_ATTEMPTS
        self.retry_delay = settings.UPSTREAM_RETRY_DELAY if retry_delay is None else retry_delay
        self.probe_timeout = probe_timeout or settings.VARIANT_PROBE_TIMEOUT_SECONDS
        self.probe_bytes = probe_bytes or settings.VARIANT_PROBE_BYTES

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None,
                    timeout: float = 30.0, stream: bool = False) -> httpx.Response:
        """GET ``url`` with retries, all within ``timeout`` seconds.

        With ``stream=True`` the body is left unread and the caller owns
        closing the response.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_error = "request budget exhausted"
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            request = self.client.build_request("GET", url, headers=headers, timeout=remaining)
            try:
                response = await asyncio.wait_for(
                    self.client.send(request, stream=stream), timeout=remaining
                )
            except TRANSIENT_ERRORS as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Upstream request failed",
                    url=url,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=last_error,
                )
                if attempt >= self.max_attempts:
                    break
                delay = self.retry_delay * attempt
                if loop.time() + delay >= deadline:
                    break
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                await response.aclose()
                if response.status_code == 404:
                    raise NotFound(url)
                raise UpstreamApplicationError(url, response.status_code)

            if attempt > 1:
                logger.info("Upstream request recovered", url=url, attempt=attempt)
            return response

        raise UpstreamTransientError(url, attempt, last_error)

    async def fetch_text(self, url: str, timeout: float) -> str:
        response = await self.fetch(url, timeout=timeout)
        return response.text

    async def open_stream(self, url: str, headers: Optional[Dict[str, str]] = None,
                          timeout: float = 60.0) -> httpx.Response:
        return await self.fetch(url, headers=headers, timeout=timeout, stream=True)

    async def playlist_exists(self, url: str) -> bool:
        """True when ``url`` answers 2xx with a body starting with #EXTM3U.

        Reads only the first bytes of the object. Any error counts as absent.
        """
        headers = {"Range": f"bytes=0-{self.probe_bytes - 1}"}
        try:
            response = await asyncio.wait_for(
                self.client.get(url, headers=headers, timeout=self.probe_timeout),
                timeout=self.probe_timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("Variant probe failed", url=url, error=str(e) or type(e).__name__)
            return False

        if not response.is_success:
            logger.warning("Variant probe rejected", url=url, status_code=response.status_code)
            return False

        head = response.content[:self.probe_bytes].decode("utf-8", errors="ignore")
        return head.lstrip("\ufeff \t\r\n").startswith(PLAYLIST_SIGNATURE)


async def iter_upstream(response: httpx.Response, chunk_size: Optional[int] = None,
                        url: Optional[str] = None) -> AsyncIterator[bytes]:
    """Yield the upstream body chunk by chunk.

    An upstream failure mid-body is logged and re-raised so the client
    connection is aborted instead of silently truncated.
    """
    chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE
    try:
        async for chunk in response.aiter_raw(chunk_size):
            yield chunk
    except httpx.HTTPError as e:
        logger.error("Upstream stream interrupted", url=url, error=str(e) or type(e).__name__)
        raise
    except asyncio.CancelledError:
        logger.info("Client disconnected mid-stream", url=url)
        raise


class UpstreamStreamingResponse(StreamingResponse):
    """Streams an upstream body and closes the upstream however the response ends."""

    def __init__(self, upstream: httpx.Response, url: Optional[str] = None,
                 chunk_size: Optional[int] = None, **kwargs):
        self.upstream = upstream
        super().__init__(iter_upstream(upstream, chunk_size, url), **kwargs)

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()
            await self.upstream.aclose()
