"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime, timezone
import logging

from app.database import get_db
from app.models.schemas import HealthCheckResponse
from app.services.gemini_service import GeminiService, get_gemini_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    ai: GeminiService = Depends(get_gemini_service),
):
    """
    Report database reachability and whether the Gemini key is configured.

    No model call is made; ``ai`` is ``"unconfigured"`` when GEMINI_API_KEY is unset.
    """
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db_status = "error"

    ai_status = "ok" if ai.is_configured else "unconfigured"

    overall_status = "healthy" if db_status == "ok" and ai_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        ai=ai_status,
        timestamp=datetime.now(timezone.utc),
    )
