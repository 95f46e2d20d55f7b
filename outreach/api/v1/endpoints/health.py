"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from outreach.api.v1.dependencies import get_outreach_engine
from outreach.services.engine import OutreachEngine

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(engine: OutreachEngine = Depends(get_outreach_engine)) -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.

    Returns:
        Dict with status, timestamp and the active collaborators
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "outreach-engine",
        "repository": type(engine.repository).__name__,
        "text_intelligence": engine.text_intelligence.name if engine.text_intelligence else None,
        "email_provider": engine.email_provider.name,
        "voice_provider": engine.voice_provider.name,
    }
