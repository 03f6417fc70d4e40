"""
First-in-first-out extraction queue for the document analyzer.

Files are appended as ``pending``; a single worker task per queue picks them
up one at a time, runs :class:`FileExtractor` and records ``done`` or
``error`` per file.  A failing file never blocks the others.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

from app.config import settings
from app.models.schemas import AnalyzerSessionResponse, FileStatus, QueuedFileResponse, QuickPrompt
from app.services.file_extractor import ExtractionError, FileExtractor
from app.utils.helpers import new_id

logger = logging.getLogger(__name__)

FILE_SEPARATOR = "\n\n========================================\n\n"

QUICK_PROMPTS: List[QuickPrompt] = [
    QuickPrompt(
        label="Tóm tắt nội dung",
        value="Tóm tắt ngắn gọn nội dung chính của toàn bộ văn bản.",
    ),
    QuickPrompt(
        label="Liệt kê công việc",
        value=(
            "Liệt kê tất cả các đầu việc, nhiệm vụ, hoặc hành động cần thực hiện được "
            "đề cập trong văn bản này dưới dạng gạch đầu dòng."
        ),
    ),
    QuickPrompt(
        label="Xác định mục tiêu",
        value="Tóm tắt mục tiêu chính và kết quả mong đợi của văn bản này trong 1-2 câu.",
    ),
    QuickPrompt(
        label="Dự thảo phản hồi",
        value=(
            "Dựa vào nội dung văn bản, hãy soạn thảo một email/công văn phản hồi chuyên "
            "nghiệp, lịch sự để gửi cho người ban hành."
        ),
    ),
]


@dataclasses.dataclass
class QueuedFile:
    id: str
    filename: str
    content_type: str
    size: int
    data: Optional[bytes] = None
    status: FileStatus = FileStatus.PENDING
    content: str = ""
    error: Optional[str] = None

    def to_response(self) -> QueuedFileResponse:
        return QueuedFileResponse(
            id=self.id,
            filename=self.filename,
            content_type=self.content_type,
            size=self.size,
            status=self.status,
            content=self.content,
            error=self.error,
        )


class FileQueue:
    """Ordered file list plus the worker that drains its pending entries."""

    def __init__(self, extractor: FileExtractor) -> None:
        self.extractor = extractor
        self.files: List[QueuedFile] = []
        self._worker: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Queue edits
    # ------------------------------------------------------------------

    def add(self, uploads: Iterable[Tuple[str, str, bytes]]) -> List[QueuedFile]:
        """Append ``(filename, content_type, data)`` entries as pending and wake the worker."""
        added = [
            QueuedFile(
                id=new_id("file"),
                filename=filename,
                content_type=content_type,
                size=len(data),
                data=data,
            )
            for filename, content_type, data in uploads
        ]
        self.files.extend(added)
        if added:
            self._ensure_worker()
        return added

    def remove(self, file_id: str) -> bool:
        before = len(self.files)
        self.files = [f for f in self.files if f.id != file_id]
        return len(self.files) != before

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move one entry, shifting the ones in between."""
        if not (0 <= from_index < len(self.files)) or not (0 <= to_index < len(self.files)):
            raise IndexError("File index out of range")
        moved = self.files.pop(from_index)
        self.files.insert(to_index, moved)

    def get(self, file_id: str) -> Optional[QueuedFile]:
        return next((f for f in self.files if f.id == file_id), None)

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def done_files(self) -> List[QueuedFile]:
        return [f for f in self.files if f.status == FileStatus.DONE and f.content]

    @property
    def all_processed(self) -> bool:
        return all(f.status in (FileStatus.DONE, FileStatus.ERROR) for f in self.files)

    def combined_text(self) -> str:
        """Concatenate the successfully extracted files, numbered in list order."""
        blocks = []
        for number, f in enumerate(self.done_files, start=1):
            blocks.append(
                f"--- BẮT ĐẦU NỘI DUNG FILE {number}: {f.filename} ---\n\n"
                f"{f.content}\n\n"
                f"--- KẾT THÚC NỘI DUNG FILE {number} ---"
            )
        return FILE_SEPARATOR.join(blocks)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    def _next_pending(self) -> Optional[QueuedFile]:
        return next((f for f in self.files if f.status == FileStatus.PENDING), None)

    async def _drain(self) -> None:
        while True:
            entry = self._next_pending()
            if entry is None:
                return
            await self._process(entry)

    async def _process(self, entry: QueuedFile) -> None:
        entry.status = FileStatus.PROCESSING
        data, entry.data = entry.data or b"", None
        try:
            content = await self.extractor.extract(data, entry.filename, entry.content_type)
        except ExtractionError as exc:
            entry.status, entry.error = FileStatus.ERROR, exc.message
            logger.warning("Extraction failed for %s (%s): %s", entry.filename, exc.kind.value, exc.message)
        except Exception as exc:
            logger.error("Unexpected extraction failure for %s: %s", entry.filename, exc, exc_info=True)
            entry.status, entry.error = FileStatus.ERROR, str(exc) or "Đã xảy ra lỗi khi đọc file."
        else:
            entry.status, entry.content = FileStatus.DONE, content.strip()
            logger.info("Extracted %d chars from %s", len(entry.content), entry.filename)

        if entry not in self.files:
            logger.info("Dropping result for removed file %s", entry.filename)

    def cancel(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        self._worker = None

    async def wait_until_idle(self) -> None:
        while self._worker is not None and not self._worker.done():
            await asyncio.wait({self._worker})


# ---------------------------------------------------------------------------
# Analyzer sessions
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class AnalyzerSession:
    id: str
    queue: FileQueue
    last_access: float = dataclasses.field(default_factory=time.monotonic)

    def to_response(self) -> AnalyzerSessionResponse:
        return AnalyzerSessionResponse(
            id=self.id,
            files=[f.to_response() for f in self.queue.files],
            all_files_processed=self.queue.all_processed,
            successful_files_count=len(self.queue.done_files),
        )


class AnalyzerManager:
    """Registry of in-memory analyzer sessions."""

    _sessions: Dict[str, AnalyzerSession] = {}

    @classmethod
    def create(cls, ai) -> AnalyzerSession:
        cls.expire_idle()
        session = AnalyzerSession(id=new_id("analysis"), queue=FileQueue(FileExtractor(ai)))
        cls._sessions[session.id] = session
        logger.info("Analyzer session %s created", session.id)
        return session

    @classmethod
    def get(cls, session_id: str) -> Optional[AnalyzerSession]:
        session = cls._sessions.get(session_id)
        if session is not None:
            session.last_access = time.monotonic()
        return session

    @classmethod
    def delete(cls, session_id: str) -> bool:
        session = cls._sessions.pop(session_id, None)
        if session is None:
            return False
        session.queue.cancel()
        logger.info("Analyzer session %s discarded", session_id)
        return True

    @classmethod
    def expire_idle(cls, max_idle: Optional[float] = None) -> int:
        """Discard idle sessions whose queue has finished, releasing their extracted text."""
        max_idle = settings.SESSION_IDLE_SECONDS if max_idle is None else max_idle
        cutoff = time.monotonic() - max_idle
        expired = [
            s.id for s in cls._sessions.values()
            if s.last_access < cutoff and s.queue.all_processed
        ]
        for session_id in expired:
            cls.delete(session_id)
        if expired:
            logger.info("Expired %d idle analyzer session(s)", len(expired))
        return len(expired)

    @classmethod
    def shutdown(cls) -> None:
        for session_id in list(cls._sessions):
            cls.delete(session_id)


analyzer_manager = AnalyzerManager
