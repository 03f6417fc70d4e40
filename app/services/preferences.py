"""
Persistence of the two display preferences (preview font family and size).
"""
from __future__ import annotations

import logging
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import Preference
from app.models.schemas import PreferencesUpdate, PreviewSettings

logger = logging.getLogger(__name__)

FONT_FAMILY_KEY = "documentPreviewFontFamily"
FONT_SIZE_KEY = "documentPreviewFontSize"

ALLOWED_FONT_FAMILIES = (
    "'Times New Roman', Times, serif",
    "Arial, sans-serif",
    "'Roboto', sans-serif",
)
ALLOWED_FONT_SIZES = ("12pt", "13pt", "14pt")


class PreferenceStore:
    """Explicit load/save boundary between the database and :class:`PreviewSettings`."""

    @staticmethod
    async def load(db: AsyncSession) -> PreviewSettings:
        """Read stored preferences; missing keys keep their defaults."""
        result = await db.execute(
            select(Preference).where(Preference.key.in_([FONT_FAMILY_KEY, FONT_SIZE_KEY]))
        )
        stored: Dict[str, str] = {row.key: row.value for row in result.scalars().all()}

        defaults = PreviewSettings()
        return PreviewSettings(
            font_family=stored.get(FONT_FAMILY_KEY) or defaults.font_family,
            font_size=stored.get(FONT_SIZE_KEY) or defaults.font_size,
        )

    @staticmethod
    async def save(db: AsyncSession, preview: PreviewSettings) -> None:
        for key, value in ((FONT_FAMILY_KEY, preview.font_family), (FONT_SIZE_KEY, preview.font_size)):
            row = await db.get(Preference, key)
            if row is None:
                db.add(Preference(key=key, value=value))
            else:
                row.value = value
        await db.commit()
        logger.info("Saved preview preferences: %s / %s", preview.font_family, preview.font_size)


def apply_update(current: PreviewSettings, update: PreferencesUpdate) -> PreviewSettings:
    """
    Merge *update* into *current*.

    Raises:
        ValueError: A value is not one of the offered choices.
    """
    if update.font_family is not None and update.font_family not in ALLOWED_FONT_FAMILIES:
        raise ValueError(f"Unsupported font family: {update.font_family!r}")
    if update.font_size is not None and update.font_size not in ALLOWED_FONT_SIZES:
        raise ValueError(f"Unsupported font size: {update.font_size!r}")

    return current.model_copy(update=update.model_dump(exclude_none=True))
