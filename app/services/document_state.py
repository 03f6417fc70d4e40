"""
Edit operations on the in-memory document value.

Every function takes a :class:`DocumentData` and returns a new one; the input
is never mutated, so a draft session can swap its document wholesale.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Optional

from app.models.schemas import (
    DOCUMENT_TYPE_ABBREVIATIONS,
    DocumentData,
    DocumentType,
    GeneratedDraft,
    Page,
)
from app.utils.helpers import initials, new_id, title_case_words

logger = logging.getLogger(__name__)

ARCHIVE_LINE_PREFIX = "- Lưu:"

_SAMPLE_RAW_CONTENT = (
    "Căn cứ kế hoạch công tác năm 2025, phòng Nghiên cứu Khoa học xây dựng kế hoạch "
    "tổ chức hội thảo \"Ứng dụng AI trong quản trị doanh nghiệp\". Kinh phí dự kiến "
    "50 triệu đồng. Thời gian tổ chức: Tháng 12/2025. Kính trình Ban Giám đốc phê duyệt."
)


def new_page(raw_content: str = "") -> Page:
    return Page(id=new_id("page"), raw_content=raw_content)


def default_document(today: Optional[date] = None) -> DocumentData:
    """The starter document shown when a new draft is opened."""
    return DocumentData(
        document_type=DocumentType.TO_TRINH,
        issuing_authority="PHÒNG NGHIÊN CỨU KHOA HỌC",
        issuing_authority_full="Phòng Nghiên cứu Khoa học",
        abstract="",
        subject="V/v đề nghị phê duyệt kế hoạch tổ chức hội thảo khoa học năm 2025",
        pages=[new_page(_SAMPLE_RAW_CONTENT)],
        recipients="Như trên;\n- Phòng Kế hoạch - Tài chính;\n- Lưu: VT, PNCKH.",
        signer_title="TRƯỞNG PHÒNG",
        signer_name="Nguyễn Văn A",
        place="Hà Nội",
        issue_date=today or date.today(),
    )


# ---------------------------------------------------------------------------
# Abbreviations
# ---------------------------------------------------------------------------

def document_type_abbreviation(document_type: Optional[DocumentType]) -> str:
    if document_type is None:
        return "..."
    return DOCUMENT_TYPE_ABBREVIATIONS.get(DocumentType(document_type), "...")


def organization_abbreviation(authority: str) -> str:
    """Initials of the issuing authority, or ``...`` when it is empty."""
    if not authority:
        return "..."
    return initials(authority)


def reference_line(doc: DocumentData, dots: str = "......") -> str:
    """``Số: ....../TTr-PNCKH``"""
    return (
        f"Số: {dots}/{document_type_abbreviation(doc.document_type)}"
        f"-{organization_abbreviation(doc.issuing_authority)}"
    )


# ---------------------------------------------------------------------------
# Scalar fields
# ---------------------------------------------------------------------------

def with_archive_line(recipients: str, authority_initials: str) -> str:
    """Rewrite (or append) the ``- Lưu: VT, <ORG>.`` line of the recipients block."""
    lines = recipients.split("\n")
    archive_line = f"{ARCHIVE_LINE_PREFIX} VT, {authority_initials}."
    for i, line in enumerate(lines):
        if line.strip().startswith(ARCHIVE_LINE_PREFIX):
            lines[i] = archive_line
            break
    else:
        lines.append(archive_line)
    return "\n".join(lines)


def update_fields(doc: DocumentData, **fields: Any) -> DocumentData:
    """
    Replace scalar fields; ``None`` values are ignored.

    Changing ``issuing_authority`` also recomputes ``issuing_authority_full``
    and the archive line of the recipients block.  It is applied after the
    other fields so an explicit recipients value in the same update is kept
    apart from its archive line.
    """
    if "pages" in fields:
        raise ValueError("Pages are edited through the page operations.")

    changes = {k: v for k, v in fields.items() if v is not None}
    authority = changes.pop("issuing_authority", None)
    updated = doc.model_copy(update=changes)

    if authority is not None:
        updated = updated.model_copy(
            update={
                "issuing_authority": authority,
                "issuing_authority_full": title_case_words(authority),
                "recipients": with_archive_line(updated.recipients, initials(authority)),
            }
        )
    return updated


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def _check_index(doc: DocumentData, index: int) -> None:
    if index < 0 or index >= len(doc.pages):
        raise IndexError(f"Page index {index} out of range (document has {len(doc.pages)} pages)")


def set_page_raw_content(doc: DocumentData, index: int, raw_content: str) -> DocumentData:
    """Replace one page's raw text and clear its derived fields."""
    _check_index(doc, index)
    pages: List[Page] = list(doc.pages)
    pages[index] = pages[index].model_copy(
        update={"raw_content": raw_content, "processed_content": "", "formatted_content": ""}
    )
    return doc.model_copy(update={"pages": pages})


def add_page(doc: DocumentData) -> DocumentData:
    return doc.model_copy(update={"pages": [*doc.pages, new_page()]})


def remove_page(doc: DocumentData, index: int) -> DocumentData:
    _check_index(doc, index)
    return doc.model_copy(
        update={"pages": [p for i, p in enumerate(doc.pages) if i != index]}
    )


def find_page(doc: DocumentData, page_id: str) -> Optional[int]:
    for i, page in enumerate(doc.pages):
        if page.id == page_id:
            return i
    return None


def set_page_results(
    doc: DocumentData,
    page_id: str,
    *,
    processed_content: Optional[str] = None,
    formatted_content: Optional[str] = None,
) -> DocumentData:
    """Write AI results into the page with *page_id*; unknown ids leave *doc* as is."""
    index = find_page(doc, page_id)
    if index is None:
        return doc
    update = {}
    if processed_content is not None:
        update["processed_content"] = processed_content
    if formatted_content is not None:
        update["formatted_content"] = formatted_content
    pages = list(doc.pages)
    pages[index] = pages[index].model_copy(update=update)
    return doc.model_copy(update={"pages": pages})


def next_page_to_process(doc: DocumentData) -> Optional[int]:
    """First page with non-blank raw text and no processed text yet."""
    for i, page in enumerate(doc.pages):
        if page.raw_content.strip() and not page.processed_content:
            return i
    return None


def apply_generated_draft(doc: DocumentData, draft: GeneratedDraft) -> DocumentData:
    """Merge an AI draft: non-empty fields win, page 1 gets the new body."""
    pages = list(doc.pages) or [new_page()]
    first = pages[0]
    pages[0] = first.model_copy(
        update={
            "raw_content": draft.raw_content or first.raw_content,
            "processed_content": "",
            "formatted_content": "",
        }
    )
    return doc.model_copy(
        update={
            "subject": draft.subject or doc.subject,
            "recipients": draft.recipients or doc.recipients,
            "signer_title": draft.signer_title or doc.signer_title,
            "pages": pages,
        }
    )
