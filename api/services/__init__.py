"""
API services
"""
from .upstream import UpstreamService, UpstreamStreamingResponse, create_http_client

__all__ = [
    "UpstreamService",
    "create_http_client",
    "UpstreamStreamingResponse",
]
