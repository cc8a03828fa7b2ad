"""
FastAPI dependencies
"""
from fastapi import Request

from api.services.upstream import UpstreamService


def get_upstream(request: Request) -> UpstreamService:
    """Upstream service bound to the process-wide HTTP client."""
    return UpstreamService(request.app.state.http_client)
