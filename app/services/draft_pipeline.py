"""
Debounced background processing of draft pages.

Every page edit calls :meth:`DraftPipeline.schedule`.  After a quiet period
the pipeline picks the first page that still needs processing, runs
formalize then suggest-formatting on it, writes the results back, and
schedules itself again so the remaining pages are handled one at a time.

Usage
-----
    session = draft_manager.create(ai)
    session.document = set_page_raw_content(session.document, 0, text)
    session.pipeline.schedule()
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Dict, Optional

from app.config import settings
from app.models.schemas import DocumentData, DraftResponse, Page
from app.services.document_state import (
    default_document,
    find_page,
    next_page_to_process,
    set_page_results,
)
from app.services.errors import AIServiceError
from app.utils.helpers import new_id

logger = logging.getLogger(__name__)

FORMALIZING_MESSAGE = "AI đang tinh chỉnh..."
FORMATTING_MESSAGE = "AI đang định dạng..."
PROCESSING_ERROR_MESSAGE = "Lỗi: Không thể xử lý nội dung. Vui lòng thử lại."


# ---------------------------------------------------------------------------
# Draft session (mutable state shared between routes and the pipeline task)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class DraftSession:
    id: str
    document: DocumentData
    processing_page_index: Optional[int] = None
    processing_message: str = ""
    proofreading_page_index: Optional[int] = None
    is_generating_draft: bool = False
    pipeline: Optional["DraftPipeline"] = None
    last_access: float = dataclasses.field(default_factory=time.monotonic)

    def to_response(self) -> DraftResponse:
        return DraftResponse(
            id=self.id,
            document=self.document,
            processing_page_index=self.processing_page_index,
            processing_message=self.processing_message,
            proofreading_page_index=self.proofreading_page_index,
            is_generating_draft=self.is_generating_draft,
        )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class DraftPipeline:
    """Single-page-in-flight formalize/format loop for one draft session."""

    def __init__(self, session: DraftSession, ai, debounce_seconds: Optional[float] = None) -> None:
        self.session = session
        self.ai = ai
        self.debounce_seconds = (
            settings.DRAFT_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False

    @property
    def is_busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        """
        Restart the quiet-period timer.

        While a page is in flight the call is a no-op: the run re-schedules
        itself on completion, which picks up whatever changed meanwhile.
        """
        if self._in_flight:
            return
        self._restart_timer()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait_until_idle(self) -> None:
        """Wait until no timer or page run is pending."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def _restart_timer(self) -> None:
        current = asyncio.current_task()
        if self._task is not None and not self._task.done() and self._task is not current:
            self._task.cancel()
        self._task = asyncio.create_task(self._run_after_quiet_period())

    async def _run_after_quiet_period(self) -> None:
        await asyncio.sleep(self.debounce_seconds)

        index = next_page_to_process(self.session.document)
        if index is None:
            return
        page = self.session.document.pages[index]

        processed, formatted = await self._process(index, page)
        self._store(page, processed, formatted)
        self._restart_timer()

    async def _process(self, index: int, page: Page):
        self._in_flight = True
        self.session.processing_page_index = index
        try:
            self.session.processing_message = FORMALIZING_MESSAGE
            processed = await self.ai.formalize(page.raw_content)
            if not processed or not processed.strip():
                raise AIServiceError("empty formalize result")

            self.session.processing_message = FORMATTING_MESSAGE
            formatted = await self.ai.suggest_formatting(processed)
            return processed, formatted
        except Exception as exc:
            logger.error("Draft %s: processing page %s failed: %s", self.session.id, page.id, exc)
            return PROCESSING_ERROR_MESSAGE, ""
        finally:
            self._in_flight = False
            self.session.processing_page_index = None
            self.session.processing_message = ""

    def _store(self, page: Page, processed: str, formatted: str) -> None:
        doc = self.session.document
        index = find_page(doc, page.id)
        if index is None or doc.pages[index].raw_content != page.raw_content:
            logger.info("Draft %s: discarding stale result for page %s", self.session.id, page.id)
            return
        self.session.document = set_page_results(
            doc, page.id, processed_content=processed, formatted_content=formatted
        )
        logger.info("Draft %s: page %d processed (%d chars)", self.session.id, index + 1, len(processed))


# ---------------------------------------------------------------------------
# Draft manager (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class DraftManager:
    """Registry of in-memory draft sessions."""

    _sessions: Dict[str, DraftSession] = {}

    @classmethod
    def create(cls, ai, document: Optional[DocumentData] = None) -> DraftSession:
        cls.expire_idle()
        session = DraftSession(id=new_id("draft"), document=document or default_document())
        session.pipeline = DraftPipeline(session, ai)
        cls._sessions[session.id] = session
        logger.info("Draft session %s created", session.id)
        return session

    @classmethod
    def get(cls, draft_id: str) -> Optional[DraftSession]:
        session = cls._sessions.get(draft_id)
        if session is not None:
            session.last_access = time.monotonic()
        return session

    @classmethod
    def delete(cls, draft_id: str) -> bool:
        session = cls._sessions.pop(draft_id, None)
        if session is None:
            return False
        if session.pipeline is not None:
            session.pipeline.cancel()
        logger.info("Draft session %s discarded", draft_id)
        return True

    @classmethod
    def expire_idle(cls, max_idle: Optional[float] = None) -> int:
        """Discard sessions not accessed for *max_idle* seconds, unless AI work is running."""
        max_idle = settings.SESSION_IDLE_SECONDS if max_idle is None else max_idle
        cutoff = time.monotonic() - max_idle
        expired = [
            s.id for s in cls._sessions.values()
            if s.last_access < cutoff
            and not s.is_generating_draft
            and s.proofreading_page_index is None
            and not (s.pipeline is not None and s.pipeline.is_busy)
        ]
        for draft_id in expired:
            cls.delete(draft_id)
        if expired:
            logger.info("Expired %d idle draft session(s)", len(expired))
        return len(expired)

    @classmethod
    def shutdown(cls) -> None:
        for draft_id in list(cls._sessions):
            cls.delete(draft_id)


draft_manager = DraftManager
