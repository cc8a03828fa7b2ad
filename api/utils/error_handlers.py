"""
Gateway error types and exception handlers
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import structlog

logger = structlog.get_logger()

CLIENT_MESSAGE = "Failed to load video segment"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Range",
}


class GatewayError(Exception):
    """Base exception for delivery gateway errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidPath(GatewayError):
    """Request path escapes the video prefix."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid path: {path}", 400)


class UpstreamApplicationError(GatewayError):
    """Object store answered with an HTTP error; passed through verbatim."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        super().__init__(f"Upstream returned {status_code} for {url}", status_code)


class NotFound(UpstreamApplicationError):
    """Object store has no such object."""

    def __init__(self, url: str):
        super().__init__(url, 404)


class UpstreamTransientError(GatewayError):
    """Transient upstream failures outlasted the retry budget."""

    def __init__(self, url: str, attempts: int, error: str = ""):
        self.url = url
        self.attempts = attempts
        super().__init__(f"Upstream unavailable after {attempts} attempts: {error}", 502)


def error_response(status_code: int, message: str = CLIENT_MESSAGE) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=CORS_HEADERS,
    )


async def gateway_exception_handler(request: Request, exc: GatewayError):
    """Handle gateway exceptions."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Gateway error",
        error_type=type(exc).__name__,
        error_message=exc.message,
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
    )
    return error_response(exc.status_code)


async def validation_exception_handler(request: Request, exc: Exception):
    """Handle request validation exceptions."""
    logger.warning(
        "Validation error",
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return error_response(422, "Input validation failed")


async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP exception handler using the gateway envelope."""
    logger.warning(
        "HTTP error",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return error_response(exc.status_code, str(exc.detail))


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        exc_type=type(exc).__name__,
        exc_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return error_response(500)
