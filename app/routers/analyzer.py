"""
Document analyzer endpoints.

Uploaded files are queued and extracted one at a time in the background;
clients poll the session to watch per-file status, then ask a question about
the combined text of every successfully extracted file.
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from app.config import settings
from app.dependencies.sessions import ai_http_error, get_analyzer_session
from app.models.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    AnalyzerSessionResponse,
    QuickPrompt,
    ReorderFilesRequest,
)
from app.services.analysis_queue import QUICK_PROMPTS, AnalyzerSession, analyzer_manager
from app.services.errors import AIServiceError
from app.services.gemini_service import GeminiService, get_gemini_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/quick-prompts", response_model=List[QuickPrompt])
async def list_quick_prompts() -> List[QuickPrompt]:
    """Canned analysis requests offered as one-click buttons."""
    return QUICK_PROMPTS


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.post("/sessions", response_model=AnalyzerSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(ai: GeminiService = Depends(get_gemini_service)) -> AnalyzerSessionResponse:
    return analyzer_manager.create(ai).to_response()


@router.get("/sessions/{session_id}", response_model=AnalyzerSessionResponse)
async def get_session(
    session: AnalyzerSession = Depends(get_analyzer_session),
) -> AnalyzerSessionResponse:
    return session.to_response()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session: AnalyzerSession = Depends(get_analyzer_session)) -> Response:
    analyzer_manager.delete(session.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

@router.post(
    "/sessions/{session_id}/files",
    response_model=AnalyzerSessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_files(
    files: List[UploadFile] = File(...),
    session: AnalyzerSession = Depends(get_analyzer_session),
) -> AnalyzerSessionResponse:
    """
    Queue one or more files for text extraction.

    - Max size per file: MAX_FILE_SIZE (20 MB by default)
    - Extraction runs in the background; poll the session for status
    """
    uploads = []
    for upload in files:
        data = await upload.read()
        if len(data) > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"File '{upload.filename}' exceeds the maximum size of "
                    f"{settings.MAX_FILE_SIZE // (1024 * 1024)} MB."
                ),
            )
        uploads.append((upload.filename or "", upload.content_type or "", data))

    added = session.queue.add(uploads)
    logger.info("Session %s: queued %d file(s)", session.id, len(added))
    return session.to_response()


@router.delete("/sessions/{session_id}/files/{file_id}", response_model=AnalyzerSessionResponse)
async def remove_file(
    file_id: str,
    session: AnalyzerSession = Depends(get_analyzer_session),
) -> AnalyzerSessionResponse:
    if not session.queue.remove(file_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File {file_id} not found",
        )
    return session.to_response()


@router.post("/sessions/{session_id}/files/reorder", response_model=AnalyzerSessionResponse)
async def reorder_files(
    body: ReorderFilesRequest,
    session: AnalyzerSession = Depends(get_analyzer_session),
) -> AnalyzerSessionResponse:
    """Move one file; the numbering of the combined text follows the new order."""
    try:
        session.queue.reorder(body.from_index, body.to_index)
    except IndexError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File index out of range",
        )
    return session.to_response()


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@router.post("/sessions/{session_id}/analyze", response_model=AnalyzeResponse)
async def analyze(
    body: AnalyzeRequest,
    session: AnalyzerSession = Depends(get_analyzer_session),
    ai: GeminiService = Depends(get_gemini_service),
) -> AnalyzeResponse:
    """Answer the prompt about all successfully extracted files."""
    if not body.prompt.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Prompt must not be empty.",
        )

    done_files = session.queue.done_files
    if not done_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No successfully processed files to analyze.",
        )

    try:
        result = await ai.analyze(
            session.queue.combined_text(),
            body.prompt,
            body.field,
            body.tone,
            body.detail,
        )
    except AIServiceError as exc:
        logger.error("analyze error on session %s: %s", session.id, exc)
        raise ai_http_error(exc)

    return AnalyzeResponse(result=result, files_analyzed=len(done_files))
