"""
HealthyMeal Health Check Endpoints
Service and LLM provider health
"""

import time
from typing import Optional

from fastapi import APIRouter, Request

from core.database import Database
from services.openrouter_client import OpenRouterClient

router = APIRouter()


@router.get("")
async def health_check(request: Request):
    """Basic health check endpoint"""
    settings = request.app.state.settings
    database: Database = request.app.state.database
    db_healthy = await database.check_connection()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "database": "connected" if db_healthy else "disconnected",
        "timestamp": time.time(),
    }


@router.get("/ai")
async def ai_health_check(request: Request):
    """Probe the LLM provider"""
    client: Optional[OpenRouterClient] = getattr(request.app.state, "openrouter_client", None)
    if client is None:
        return {"ok": False, "latency_ms": None, "details": {"message": "AI provider is not configured"}}
    return await client.health_check()
