"""
Draft workspace endpoints.

Route summary
-------------
POST   /api/drafts                                  create draft (starter document)
GET    /api/drafts/{draft_id}                       draft state incl. AI progress
DELETE /api/drafts/{draft_id}                       discard draft
PATCH  /api/drafts/{draft_id}                       update scalar fields
POST   /api/drafts/{draft_id}/pages                 add empty page
PUT    /api/drafts/{draft_id}/pages/{index}         edit raw text (schedules AI pipeline)
DELETE /api/drafts/{draft_id}/pages/{index}         remove page
POST   /api/drafts/{draft_id}/pages/{index}/proofread   AI proofread of raw text
POST   /api/drafts/{draft_id}/generate              AI draft generation
GET    /api/drafts/{draft_id}/preview               HTML preview
GET    /api/drafts/{draft_id}/export/txt            plain-text download
GET    /api/drafts/{draft_id}/export/docx           DOCX download
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import HTMLResponse

from app.dependencies.sessions import ai_http_error, get_draft_session, get_preview_settings
from app.models.schemas import (
    DocumentFieldsUpdate,
    DraftResponse,
    GenerateDraftRequest,
    PageContentUpdate,
    PreviewSettings,
)
from app.services import document_state
from app.services.document_export import (
    MEDIA_TYPES,
    export_filename,
    render_docx,
    render_plain_text,
    render_preview_html,
)
from app.services.draft_pipeline import DraftSession, draft_manager
from app.services.errors import AIServiceError
from app.services.gemini_service import GeminiService, get_gemini_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _page_not_found(index: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Page {index} not found",
    )


def _attachment(content: bytes, ext: str) -> Response:
    return Response(
        content=content,
        media_type=MEDIA_TYPES[ext],
        headers={"Content-Disposition": f'attachment; filename="{export_filename(ext)}"'},
    )


# ---------------------------------------------------------------------------
# Draft lifecycle
# ---------------------------------------------------------------------------

@router.post("", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(ai: GeminiService = Depends(get_gemini_service)) -> DraftResponse:
    """Open a new draft pre-filled with the starter document."""
    session = draft_manager.create(ai)
    session.pipeline.schedule()
    return session.to_response()


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(session: DraftSession = Depends(get_draft_session)) -> DraftResponse:
    return session.to_response()


@router.delete("/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(session: DraftSession = Depends(get_draft_session)) -> Response:
    draft_manager.delete(session.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{draft_id}", response_model=DraftResponse)
async def update_draft_fields(
    body: DocumentFieldsUpdate,
    session: DraftSession = Depends(get_draft_session),
) -> DraftResponse:
    """
    Update scalar fields.  Changing the issuing authority also refreshes its
    full name and the archive line of the recipients block.
    """
    session.document = document_state.update_fields(
        session.document, **body.model_dump(exclude_none=True)
    )
    return session.to_response()


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

@router.post("/{draft_id}/pages", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
async def add_page(session: DraftSession = Depends(get_draft_session)) -> DraftResponse:
    session.document = document_state.add_page(session.document)
    return session.to_response()


@router.put("/{draft_id}/pages/{index}", response_model=DraftResponse)
async def update_page(
    index: int,
    body: PageContentUpdate,
    session: DraftSession = Depends(get_draft_session),
) -> DraftResponse:
    """Replace a page's raw text; its AI output is cleared and recomputed after a pause."""
    try:
        session.document = document_state.set_page_raw_content(
            session.document, index, body.raw_content
        )
    except IndexError:
        raise _page_not_found(index)

    session.pipeline.schedule()
    return session.to_response()


@router.delete("/{draft_id}/pages/{index}", response_model=DraftResponse)
async def remove_page(
    index: int,
    session: DraftSession = Depends(get_draft_session),
) -> DraftResponse:
    if not 0 <= index < len(session.document.pages):
        raise _page_not_found(index)
    if len(session.document.pages) == 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A draft must keep at least one page.",
        )

    session.document = document_state.remove_page(session.document, index)
    session.pipeline.schedule()
    return session.to_response()


@router.post("/{draft_id}/pages/{index}/proofread", response_model=DraftResponse)
async def proofread_page(
    index: int,
    session: DraftSession = Depends(get_draft_session),
    ai: GeminiService = Depends(get_gemini_service),
) -> DraftResponse:
    """Run AI spelling/grammar correction on one page's raw text."""
    if not 0 <= index < len(session.document.pages):
        raise _page_not_found(index)

    page = session.document.pages[index]
    if not page.raw_content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Page has no text to proofread.",
        )
    if session.proofreading_page_index is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another page is being proofread.",
        )

    session.proofreading_page_index = index
    try:
        corrected = await ai.proofread(page.raw_content)
    except AIServiceError as exc:
        logger.error("proofread error on draft %s page %d: %s", session.id, index, exc)
        raise ai_http_error(exc)
    finally:
        session.proofreading_page_index = None

    # The page may have moved or vanished while the request was out
    current_index = document_state.find_page(session.document, page.id)
    if current_index is None:
        raise _page_not_found(index)

    session.document = document_state.set_page_raw_content(
        session.document, current_index, corrected
    )
    session.pipeline.schedule()
    return session.to_response()


# ---------------------------------------------------------------------------
# AI draft generation
# ---------------------------------------------------------------------------

@router.post("/{draft_id}/generate", response_model=DraftResponse)
async def generate_draft(
    body: GenerateDraftRequest,
    session: DraftSession = Depends(get_draft_session),
    ai: GeminiService = Depends(get_gemini_service),
) -> DraftResponse:
    """
    Ask the model for subject, body, recipients and signer title, then merge
    the non-empty fields into the document.  Page 1 receives the new body.
    """
    if session.is_generating_draft:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A draft is already being generated.",
        )

    session.is_generating_draft = True
    try:
        draft = await ai.generate_draft(
            body.purpose,
            body.data,
            session.document.document_type,
            body.field,
            body.tone,
            body.detail,
        )
    except AIServiceError as exc:
        logger.error("generate_draft error on draft %s: %s", session.id, exc)
        raise ai_http_error(exc)
    finally:
        session.is_generating_draft = False

    session.document = document_state.apply_generated_draft(session.document, draft)
    session.pipeline.schedule()
    return session.to_response()


# ---------------------------------------------------------------------------
# Preview and export
# ---------------------------------------------------------------------------

@router.get("/{draft_id}/preview", response_class=HTMLResponse)
async def preview_draft(
    session: DraftSession = Depends(get_draft_session),
    preview: PreviewSettings = Depends(get_preview_settings),
) -> HTMLResponse:
    return HTMLResponse(render_preview_html(session.document, preview))


@router.get("/{draft_id}/export/txt")
async def export_txt(session: DraftSession = Depends(get_draft_session)) -> Response:
    return _attachment(render_plain_text(session.document).encode("utf-8"), "txt")


@router.get("/{draft_id}/export/docx")
async def export_docx(
    session: DraftSession = Depends(get_draft_session),
    preview: PreviewSettings = Depends(get_preview_settings),
) -> Response:
    return _attachment(render_docx(session.document, preview), "docx")
