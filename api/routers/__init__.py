"""
API routers
"""
from . import health, hls

__all__ = [
    "health",
    "hls",
]
