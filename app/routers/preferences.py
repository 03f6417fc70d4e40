"""
Display preference endpoints (preview font family and size).
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.sessions import get_preview_settings
from app.models.schemas import PreferencesUpdate, PreviewSettings
from app.services.preferences import PreferenceStore, apply_update

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=PreviewSettings)
async def get_preferences(
    preview: PreviewSettings = Depends(get_preview_settings),
) -> PreviewSettings:
    return preview


@router.put("", response_model=PreviewSettings)
async def update_preferences(
    body: PreferencesUpdate,
    request: Request,
    preview: PreviewSettings = Depends(get_preview_settings),
    db: AsyncSession = Depends(get_db),
) -> PreviewSettings:
    """Change the preview font; the new values are stored immediately."""
    try:
        updated = apply_update(preview, body)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    await PreferenceStore.save(db, updated)
    request.app.state.preview_settings = updated
    return updated
