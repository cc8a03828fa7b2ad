"""
Health check endpoints
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter

from api.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.VERSION,
    }
