"""
Pydantic schemas for the document model and request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DocumentType(str, Enum):
    """Administrative document categories."""

    TO_TRINH = "TỜ TRÌNH"
    CONG_VAN = "CÔNG VĂN"
    QUYET_DINH = "QUYẾT ĐỊNH"
    BAO_CAO = "BÁO CÁO"
    THONG_BAO = "THÔNG BÁO"


# Abbreviations used in the reference line ("Số: ....../TTr-PNCKH")
DOCUMENT_TYPE_ABBREVIATIONS = {
    DocumentType.TO_TRINH: "TTr",
    DocumentType.CONG_VAN: "CV",
    DocumentType.QUYET_DINH: "QD",
    DocumentType.BAO_CAO: "BC",
    DocumentType.THONG_BAO: "TB",
}


class StyleField(str, Enum):
    """Professional domain whose terminology the AI should use."""

    DEFAULT = "default"
    LAW = "law"
    MEDICAL = "medical"
    MILITARY = "military"
    CULTURE = "culture"
    TECHNICAL = "technical"


class StyleTone(str, Enum):
    FORMAL = "formal"
    ASSERTIVE = "assertive"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"


class StyleDetail(str, Enum):
    STANDARD = "standard"
    CONCISE = "concise"
    DETAILED = "detailed"


class FileStatus(str, Enum):
    """Lifecycle of an uploaded file in the analyzer queue."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------

class Page(BaseModel):
    """One unit of body content with raw, formalized and formatted variants."""

    id: str
    raw_content: str = ""
    processed_content: str = ""
    formatted_content: str = ""


class DocumentData(BaseModel):
    """The whole document being drafted. Replaced wholesale on every edit."""

    document_type: DocumentType = DocumentType.TO_TRINH
    issuing_authority: str = ""
    issuing_authority_full: str = ""
    abstract: str = ""
    subject: str = ""
    pages: List[Page] = Field(default_factory=list)
    recipients: str = ""
    signer_title: str = ""
    signer_name: str = ""
    place: str = ""
    issue_date: date = Field(default_factory=date.today)


class GeneratedDraft(BaseModel):
    """Structured result of AI draft generation."""

    subject: str = ""
    raw_content: str = ""
    recipients: str = ""
    signer_title: str = ""


class PreviewSettings(BaseModel):
    """Display preferences applied to the preview and DOCX export."""

    font_family: str = "'Times New Roman', Times, serif"
    font_size: str = "13pt"


# ---------------------------------------------------------------------------
# Draft workspace schemas
# ---------------------------------------------------------------------------

class DraftResponse(BaseModel):
    """Draft session state, including AI pipeline progress."""

    id: str
    document: DocumentData
    processing_page_index: Optional[int] = None
    processing_message: str = ""
    proofreading_page_index: Optional[int] = None
    is_generating_draft: bool = False

    model_config = ConfigDict(from_attributes=True)


class DocumentFieldsUpdate(BaseModel):
    """Partial update of the document's scalar fields. Omitted fields are kept."""

    document_type: Optional[DocumentType] = None
    issuing_authority: Optional[str] = None
    abstract: Optional[str] = None
    subject: Optional[str] = None
    recipients: Optional[str] = None
    signer_title: Optional[str] = None
    signer_name: Optional[str] = None
    place: Optional[str] = None
    issue_date: Optional[date] = None


class PageContentUpdate(BaseModel):
    raw_content: str


class StyleOptions(BaseModel):
    """The three AI style parameters shared by generation and analysis."""

    field: StyleField = StyleField.DEFAULT
    tone: StyleTone = StyleTone.FORMAL
    detail: StyleDetail = StyleDetail.STANDARD


class GenerateDraftRequest(StyleOptions):
    """Schema for AI draft generation."""

    purpose: str = Field(..., min_length=1)
    data: str = ""


# ---------------------------------------------------------------------------
# Analyzer schemas
# ---------------------------------------------------------------------------

class QueuedFileResponse(BaseModel):
    """Schema for a file in the analyzer queue (bytes are never returned)."""

    id: str
    filename: str
    content_type: str
    size: int
    status: FileStatus
    content: str = ""
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AnalyzerSessionResponse(BaseModel):
    id: str
    files: List[QueuedFileResponse] = Field(default_factory=list)
    all_files_processed: bool = True
    successful_files_count: int = 0


class ReorderFilesRequest(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class AnalyzeRequest(StyleOptions):
    prompt: str = Field(..., min_length=1)


class AnalyzeResponse(BaseModel):
    result: str
    files_analyzed: int


class QuickPrompt(BaseModel):
    label: str
    value: str


# ---------------------------------------------------------------------------
# Preferences / health
# ---------------------------------------------------------------------------

class PreferencesUpdate(BaseModel):
    """Schema for updating display preferences. Omitted fields are kept."""

    font_family: Optional[str] = None
    font_size: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    ai: str
    timestamp: datetime
    version: str = "0.1.0"
