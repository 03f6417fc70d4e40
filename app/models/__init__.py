"""Database and schema models for the VanBan assistant."""
from app.models.database_models import Preference
from app.models.schemas import (
    DocumentType,
    DocumentData,
    Page,
    GeneratedDraft,
    PreviewSettings,
    StyleField,
    StyleTone,
    StyleDetail,
    FileStatus,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "Preference",
    # Pydantic schemas
    "DocumentType",
    "DocumentData",
    "Page",
    "GeneratedDraft",
    "PreviewSettings",
    "StyleField",
    "StyleTone",
    "StyleDetail",
    "FileStatus",
    "HealthCheckResponse",
]
