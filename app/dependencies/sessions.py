"""
Session lookup dependencies and error mapping for FastAPI routes.

Draft and analyzer sessions live in process memory; unknown ids are a 404.
"""
from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.models.schemas import PreviewSettings
from app.services.analysis_queue import AnalyzerSession, analyzer_manager
from app.services.draft_pipeline import DraftSession, draft_manager
from app.services.errors import AIConfigurationError, AIServiceError, ServiceOverloadedError


async def get_draft_session(draft_id: str) -> DraftSession:
    """Resolve the ``draft_id`` path parameter. Raises 404 if unknown."""
    session = draft_manager.get(draft_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Draft {draft_id} not found",
        )
    return session


async def get_analyzer_session(session_id: str) -> AnalyzerSession:
    session = analyzer_manager.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analyzer session {session_id} not found",
        )
    return session


async def get_preview_settings(request: Request) -> PreviewSettings:
    """The display preferences loaded at startup (defaults if never loaded)."""
    return getattr(request.app.state, "preview_settings", None) or PreviewSettings()


def ai_http_error(exc: AIServiceError) -> HTTPException:
    """Map an AI-layer failure to the HTTP error surfaced to the client."""
    if isinstance(exc, ServiceOverloadedError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, AIConfigurationError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(exc))
