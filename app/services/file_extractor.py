"""
Text extraction for files uploaded to the analyzer.

Dispatches on extension / MIME type: PDF (PyMuPDF), images (Pillow check where it can decode,
then OCR through the multimodal model), plain text, DOCX (python-docx) and
XLSX (openpyxl).  Every failure is raised as :class:`ExtractionError` with a
classified ``kind`` and a user-facing Vietnamese message.
"""
from __future__ import annotations

import enum
import io
import logging
from typing import List

import fitz  # PyMuPDF
import httpx
from docx import Document as DocxDocument
from docx.table import Table
from openpyxl import load_workbook
from PIL import Image, UnidentifiedImageError

from app.services.errors import AIServiceError

logger = logging.getLogger(__name__)


class ExtractionErrorKind(str, enum.Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    PASSWORD_PROTECTED = "password_protected"
    CORRUPT = "corrupt"
    NO_TEXT = "no_text"
    LIBRARY_UNAVAILABLE = "library_unavailable"
    NETWORK = "network"
    REMOTE = "remote"


class ExtractionError(Exception):
    """A single file could not be read; ``str(exc)`` is shown to the user."""

    def __init__(self, kind: ExtractionErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


_NETWORK_ERRORS = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
)

# Formats Pillow decodes; anything else (HEIC, AVIF, ...) goes to the model unchecked
_PILLOW_CHECKED_TYPES = frozenset({
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/bmp",
    "image/webp",
    "image/tiff",
})

PDF_PASSWORD_MESSAGE = "File PDF này được bảo vệ bằng mật khẩu. Vui lòng gỡ bỏ mật khẩu và thử lại."
PDF_CORRUPT_MESSAGE = "File PDF không hợp lệ hoặc đã bị hỏng. Vui lòng kiểm tra lại file."
PDF_NO_TEXT_MESSAGE = (
    "Không tìm thấy văn bản trong file PDF. File có thể chỉ chứa hình ảnh (cần OCR), "
    "bị mã hóa, hoặc bị lỗi."
)
IMAGE_CORRUPT_MESSAGE = "File hình ảnh không hợp lệ hoặc đã bị hỏng."
NETWORK_MESSAGE = "Lỗi mạng khi xử lý file. Vui lòng kiểm tra kết nối internet và thử lại."
DOCX_CORRUPT_MESSAGE = "Không thể đọc file .docx. File có thể bị lỗi hoặc không đúng định dạng."
DOC_UNSUPPORTED_MESSAGE = (
    "Định dạng file .doc cũ không được hỗ trợ. Vui lòng lưu file dưới dạng .docx và thử lại."
)
XLSX_CORRUPT_MESSAGE = "Không thể đọc file .xlsx. File có thể bị lỗi hoặc không đúng định dạng."
XLS_UNSUPPORTED_MESSAGE = (
    "Định dạng file .xls cũ không được hỗ trợ. Vui lòng lưu file dưới dạng .xlsx và thử lại."
)


def unsupported_message(filename: str) -> str:
    return (
        f"Định dạng file '{filename}' không được hỗ trợ. "
        "Vui lòng chọn file PNG, JPEG, TXT, PDF, DOCX, hoặc XLSX."
    )


class FileExtractor:
    """Turns an uploaded file blob into plain text."""

    def __init__(self, ai) -> None:
        self.ai = ai

    async def extract(self, data: bytes, filename: str, content_type: str) -> str:
        """
        Extract text from one file.

        Args:
            data:         Raw file bytes.
            filename:     Original file name; its extension drives dispatch.
            content_type: Declared MIME type, e.g. "image/png".

        Returns:
            The extracted text.

        Raises:
            ExtractionError: The file is unsupported or unreadable.
        """
        name = filename.lower()
        content_type = (content_type or "").lower()

        if name.endswith(".pdf"):
            return self._read_pdf(data)
        if content_type.startswith("image/"):
            return await self._read_image(data, content_type)
        if content_type == "text/plain" or name.endswith(".txt"):
            return data.decode("utf-8-sig", errors="replace")
        if name.endswith(".docx"):
            return self._read_docx(data)
        if name.endswith(".doc"):
            raise ExtractionError(ExtractionErrorKind.UNSUPPORTED_FORMAT, DOC_UNSUPPORTED_MESSAGE)
        if name.endswith(".xlsx"):
            return self._read_xlsx(data)
        if name.endswith(".xls"):
            raise ExtractionError(ExtractionErrorKind.UNSUPPORTED_FORMAT, XLS_UNSUPPORTED_MESSAGE)

        raise ExtractionError(ExtractionErrorKind.UNSUPPORTED_FORMAT, unsupported_message(name))

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _read_pdf(self, data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            logger.warning("Cannot open PDF: %s", exc)
            raise ExtractionError(ExtractionErrorKind.CORRUPT, PDF_CORRUPT_MESSAGE) from exc

        try:
            if doc.needs_pass:
                raise ExtractionError(ExtractionErrorKind.PASSWORD_PROTECTED, PDF_PASSWORD_MESSAGE)
            pages: List[str] = [page.get_text() for page in doc]
        finally:
            doc.close()

        if not any(p.strip() for p in pages):
            raise ExtractionError(ExtractionErrorKind.NO_TEXT, PDF_NO_TEXT_MESSAGE)

        if len(pages) > 1:
            return "\n\n".join(
                f"--- Trang {i} ---\n{text.strip()}" for i, text in enumerate(pages, start=1)
            )
        return pages[0].strip()

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def _read_image(self, data: bytes, content_type: str) -> str:
        if content_type in _PILLOW_CHECKED_TYPES:
            try:
                with Image.open(io.BytesIO(data)) as img:
                    img.verify()
            except (UnidentifiedImageError, OSError, SyntaxError) as exc:
                logger.warning("Image verification failed: %s", exc)
                raise ExtractionError(ExtractionErrorKind.CORRUPT, IMAGE_CORRUPT_MESSAGE) from exc

        try:
            return await self.ai.extract_text_from_image(data, content_type)
        except AIServiceError as exc:
            if isinstance(exc.__cause__, _NETWORK_ERRORS):
                raise ExtractionError(ExtractionErrorKind.NETWORK, NETWORK_MESSAGE) from exc
            raise ExtractionError(ExtractionErrorKind.REMOTE, str(exc)) from exc
        except _NETWORK_ERRORS as exc:
            raise ExtractionError(ExtractionErrorKind.NETWORK, NETWORK_MESSAGE) from exc

    # ------------------------------------------------------------------
    # Office formats
    # ------------------------------------------------------------------

    def _read_docx(self, data: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            logger.warning("Cannot open DOCX: %s", exc)
            raise ExtractionError(ExtractionErrorKind.CORRUPT, DOCX_CORRUPT_MESSAGE) from exc

        # Paragraphs and tables in body order
        parts: List[str] = []
        for block in doc.iter_inner_content():
            if isinstance(block, Table):
                for row in block.rows:
                    row_text = " | ".join(cell.text.strip() for cell in row.cells if cell.text.strip())
                    if row_text:
                        parts.append(row_text)
            elif block.text.strip():
                parts.append(block.text)
        return "\n\n".join(parts)

    def _read_xlsx(self, data: bytes) -> str:
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except Exception as exc:
            logger.warning("Cannot open XLSX: %s", exc)
            raise ExtractionError(ExtractionErrorKind.CORRUPT, XLSX_CORRUPT_MESSAGE) from exc

        out: List[str] = []
        try:
            for sheet in workbook.worksheets:
                for row in sheet.iter_rows(values_only=True):
                    cells = ["" if value is None else str(value) for value in row]
                    if any(cells):
                        out.append("\t".join(cells) + "\n")
                out.append("\n")
        finally:
            workbook.close()
        return "".join(out)
