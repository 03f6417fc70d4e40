"""Tests for GET /api/health and the root endpoint."""
import pytest
from httpx import AsyncClient

from app.main import app
from app.services.gemini_service import GeminiService, get_gemini_service


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["ai"] == "ok"


@pytest.mark.asyncio
async def test_health_degraded_without_api_key(client: AsyncClient):
    app.dependency_overrides[get_gemini_service] = lambda: GeminiService(api_key="")
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ai"] == "unconfigured"
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "VanBan Assistant API"


@pytest.mark.asyncio
async def test_process_time_header(client: AsyncClient):
    resp = await client.get("/")
    assert resp.headers["x-process-time"].endswith("ms")
