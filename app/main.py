"""
Main FastAPI application for the VanBan assistant backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import AsyncSessionLocal, close_db, init_db
from app.models.schemas import PreviewSettings
from app.routers import analyzer, drafts, health, preferences
from app.services.analysis_queue import analyzer_manager
from app.services.draft_pipeline import draft_manager
from app.services.preferences import PreferenceStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> None:
    """Initialise DB tables and verify the connection."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _load_preferences(app: FastAPI) -> None:
    async with AsyncSessionLocal() as db:
        app.state.preview_settings = await PreferenceStore.load(db)
    logger.info(
        "✓ Preview preferences: %s / %s",
        app.state.preview_settings.font_family,
        app.state.preview_settings.font_size,
    )


async def _save_preferences(app: FastAPI) -> None:
    preview = getattr(app.state, "preview_settings", None)
    if preview is None:
        return
    try:
        async with AsyncSessionLocal() as db:
            await PreferenceStore.save(db, preview)
    except Exception as exc:
        logger.error("Could not save preview preferences on shutdown: %s", exc)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting VanBan assistant backend …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. Display preferences
    app.state.preview_settings = PreviewSettings()
    await _load_preferences(app)

    # 3. Gemini key (optional at startup; AI endpoints fail until it is set)
    if not settings.GEMINI_API_KEY:
        logger.error("✗ GEMINI_API_KEY is not set. AI features will be unavailable.")
    else:
        logger.info("✓ Gemini model: %s", settings.GEMINI_MODEL)

    logger.info("=" * 60)
    logger.info("  VanBan backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down VanBan backend …")
    draft_manager.shutdown()
    analyzer_manager.shutdown()
    await _save_preferences(app)
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="VanBan Assistant API",
    description=(
        "**VanBan**: AI-assisted drafting and analysis of Vietnamese "
        "administrative documents.\n\n"
        "Key endpoints:\n"
        "- `POST /api/drafts`: open a draft document\n"
        "- `PUT  /api/drafts/{id}/pages/{index}`: edit a page (AI formalizes it)\n"
        "- `POST /api/drafts/{id}/generate`: AI-generated first draft\n"
        "- `GET  /api/drafts/{id}/export/docx`: Word export\n"
        "- `POST /api/analyzer/sessions/{id}/files`: queue files for extraction\n"
        "- `POST /api/analyzer/sessions/{id}/analyze`: ask about the files\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # GET reads are only logged for preview and exports
    if request.method != "GET" or request.url.path.endswith(("/preview", "/export/txt", "/export/docx")):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,      prefix="/api/health",      tags=["Health"])
app.include_router(drafts.router,      prefix="/api/drafts",      tags=["Drafts"])
app.include_router(analyzer.router,    prefix="/api/analyzer",    tags=["Analyzer"])
app.include_router(preferences.router, prefix="/api/preferences", tags=["Preferences"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root; returns basic service info."""
    return {
        "name": "VanBan Assistant API",
        "version": "0.1.0",
        "description": "Vietnamese administrative document drafting assistant",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "drafts": "/api/drafts",
            "analyzer": "/api/analyzer",
            "quick_prompts": "/api/analyzer/quick-prompts",
            "preferences": "/api/preferences",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
