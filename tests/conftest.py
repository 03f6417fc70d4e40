"""
Shared fixtures for VanBan backend tests.

Uses a throwaway SQLite file for the preferences table and replaces the
Gemini service with :class:`FakeAIService` through ``app.dependency_overrides``
so no test touches the network.  The draft debounce is zero so pipelines run
as soon as the test yields to the event loop.
"""
from __future__ import annotations

import os
import tempfile
from typing import AsyncGenerator, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any app module is imported, so that
# settings and the global engine point at the test database.
_TMP_DIR = tempfile.mkdtemp(prefix="vanban-test-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["DRAFT_DEBOUNCE_SECONDS"] = "0"
os.environ.pop("GEMINI_API_KEY", None)

from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.schemas import GeneratedDraft, PreviewSettings  # noqa: E402
from app.services.analysis_queue import analyzer_manager  # noqa: E402
from app.services.draft_pipeline import draft_manager  # noqa: E402
from app.services.gemini_service import get_gemini_service  # noqa: E402


# ---------------------------------------------------------------------------
# Fake AI service
# ---------------------------------------------------------------------------

class FakeAIService:
    """
    Deterministic stand-in for GeminiService.

    Set ``fail_with`` to make every call raise that exception.
    """

    is_configured = True

    def __init__(self) -> None:
        self.fail_with: Optional[Exception] = None
        self.formalize_calls: List[str] = []
        self.analyze_calls: List[Tuple[str, str]] = []
        self.image_calls: List[Tuple[str, int]] = []
        self.draft = GeneratedDraft(
            subject="V/v tổ chức tập huấn",
            raw_content="Đề nghị tổ chức tập huấn nghiệp vụ.",
            recipients="- Như trên;\n- Lưu: VT.",
            signer_title="GIÁM ĐỐC",
        )

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def formalize(self, raw_content: str) -> str:
        self.formalize_calls.append(raw_content)
        self._maybe_fail()
        return f"Chính thức: {raw_content}"

    async def suggest_formatting(self, processed_content: str) -> str:
        self._maybe_fail()
        return f"**{processed_content}**"

    async def proofread(self, raw_content: str) -> str:
        self._maybe_fail()
        return raw_content.replace("ke hoach", "kế hoạch")

    async def generate_draft(self, purpose, data, document_type, field, tone, detail) -> GeneratedDraft:
        self._maybe_fail()
        return self.draft

    async def extract_text_from_image(self, data: bytes, mime_type: str) -> str:
        self.image_calls.append((mime_type, len(data)))
        self._maybe_fail()
        return "Văn bản trong ảnh"

    async def analyze(self, document_text, user_prompt, field, tone, detail) -> str:
        self._maybe_fail()
        self.analyze_calls.append((document_text, user_prompt))
        return "Kết quả phân tích"


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test.  Tables are dropped afterwards so
    each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def fake_ai() -> FakeAIService:
    return FakeAIService()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, fake_ai: FakeAIService
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB and AI
    dependencies overridden.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_gemini_service] = lambda: fake_ai
    app.state.preview_settings = PreviewSettings()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    draft_manager.shutdown()
    analyzer_manager.shutdown()
