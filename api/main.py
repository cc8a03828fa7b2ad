"""
HLS Forge delivery gateway - Main Application
"""
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
import structlog

from api.config import settings
from api.routers import health, hls
from api.services.upstream import create_http_client
from api.utils.logger import setup_logging
from api.utils.error_handlers import (
    GatewayError, gateway_exception_handler, http_exception_handler,
    general_exception_handler, validation_exception_handler,
)

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Starting HLS Forge gateway", version=settings.VERSION)

    app.state.http_client = create_http_client()
    logger.info(
        "Configuration loaded",
        api_host=settings.API_HOST,
        api_port=settings.API_PORT,
        storage_public_base=settings.STORAGE_PUBLIC_BASE,
        max_connections=settings.UPSTREAM_MAX_CONNECTIONS,
    )

    yield

    logger.info("Shutting down HLS Forge gateway")
    await app.state.http_client.aclose()


app = FastAPI(
    title="HLS Forge Gateway",
    description="HLS delivery gateway for published videos",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# Exception handlers
app.add_exception_handler(GatewayError, gateway_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


# Include routers
app.include_router(hls.router, prefix=settings.HLS_ROUTE_PREFIX.rstrip("/"), tags=["hls"])
app.include_router(health.router, tags=["health"])


@app.get("/", tags=["root"])
async def root() -> Dict[str, Any]:
    """Root endpoint with gateway information."""
    return {
        "name": "HLS Forge Gateway",
        "version": settings.VERSION,
        "status": "operational",
        "health": "/health",
        "hls": f"{settings.HLS_ROUTE_PREFIX.rstrip('/')}/{{userId}}/{{videoId}}/master.m3u8",
    }


def main():
    """Main entry point for the gateway server."""
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        workers=settings.API_WORKERS,
        reload=settings.API_RELOAD,
        log_config=None,  # Use structlog
    )


if __name__ == "__main__":
    main()
