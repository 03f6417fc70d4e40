"""Tests for the /api/drafts endpoints."""
import io
import logging

import pytest
from docx import Document
from httpx import AsyncClient

from app.services.draft_pipeline import draft_manager
from app.services.errors import AIConfigurationError, AIServiceError, ServiceOverloadedError


async def _create_draft(client: AsyncClient) -> dict:
    resp = await client.post("/api/drafts")
    assert resp.status_code == 201
    return resp.json()


async def _settle(draft_id: str) -> None:
    await draft_manager.get(draft_id).pipeline.wait_until_idle()


@pytest.mark.asyncio
async def test_create_draft_returns_starter_document(client: AsyncClient):
    data = await _create_draft(client)
    doc = data["document"]
    assert doc["document_type"] == "TỜ TRÌNH"
    assert doc["issuing_authority"] == "PHÒNG NGHIÊN CỨU KHOA HỌC"
    assert len(doc["pages"]) == 1
    assert data["is_generating_draft"] is False


@pytest.mark.asyncio
async def test_starter_page_is_processed_in_background(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    await _settle(draft_id)

    resp = await client.get(f"/api/drafts/{draft_id}")
    page = resp.json()["document"]["pages"][0]
    assert page["processed_content"].startswith("Chính thức: Căn cứ kế hoạch")
    assert page["formatted_content"].startswith("**Chính thức:")


@pytest.mark.asyncio
async def test_unknown_draft_is_404(client: AsyncClient):
    resp = await client.get("/api/drafts/draft-missing")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_patch_authority_updates_archive_line(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.patch(
        f"/api/drafts/{draft_id}",
        json={"issuing_authority": "VĂN PHÒNG ĐẢNG ỦY", "place": "Đà Nẵng"},
    )
    assert resp.status_code == 200
    doc = resp.json()["document"]
    assert doc["issuing_authority_full"] == "Văn Phòng Đảng Ủy"
    assert doc["recipients"].endswith("- Lưu: VT, VPĐỦ.")
    assert doc["place"] == "Đà Nẵng"


@pytest.mark.asyncio
async def test_edit_page_clears_and_reprocesses(client: AsyncClient, fake_ai):
    draft_id = (await _create_draft(client))["id"]
    await _settle(draft_id)

    resp = await client.post(f"/api/drafts/{draft_id}/pages")
    assert resp.status_code == 201
    assert len(resp.json()["document"]["pages"]) == 2

    resp = await client.put(f"/api/drafts/{draft_id}/pages/1", json={"raw_content": "Trang mới"})
    assert resp.status_code == 200
    pages = resp.json()["document"]["pages"]
    assert pages[1]["processed_content"] == ""
    assert pages[0]["processed_content"] != ""

    await _settle(draft_id)
    pages = (await client.get(f"/api/drafts/{draft_id}")).json()["document"]["pages"]
    assert pages[1]["processed_content"] == "Chính thức: Trang mới"


@pytest.mark.asyncio
async def test_edit_missing_page_is_404(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.put(f"/api/drafts/{draft_id}/pages/7", json={"raw_content": "x"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_remove_page_keeps_at_least_one(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.delete(f"/api/drafts/{draft_id}/pages/0")
    assert resp.status_code == 400

    await client.post(f"/api/drafts/{draft_id}/pages")
    resp = await client.delete(f"/api/drafts/{draft_id}/pages/0")
    assert resp.status_code == 200
    assert len(resp.json()["document"]["pages"]) == 1


@pytest.mark.asyncio
async def test_proofread_replaces_raw_text(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    await client.put(f"/api/drafts/{draft_id}/pages/0", json={"raw_content": "Trình ke hoach năm"})

    resp = await client.post(f"/api/drafts/{draft_id}/pages/0/proofread")
    assert resp.status_code == 200
    data = resp.json()
    assert data["document"]["pages"][0]["raw_content"] == "Trình kế hoạch năm"
    assert data["proofreading_page_index"] is None


@pytest.mark.asyncio
async def test_proofread_blank_page_is_rejected(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    await client.put(f"/api/drafts/{draft_id}/pages/0", json={"raw_content": "   "})
    resp = await client.post(f"/api/drafts/{draft_id}/pages/0/proofread")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_generate_draft_merges_result(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.post(
        f"/api/drafts/{draft_id}/generate",
        json={"purpose": "Tập huấn nghiệp vụ", "data": "", "tone": "neutral"},
    )
    assert resp.status_code == 200
    doc = resp.json()["document"]
    assert doc["subject"] == "V/v tổ chức tập huấn"
    assert doc["signer_title"] == "GIÁM ĐỐC"
    assert doc["pages"][0]["raw_content"] == "Đề nghị tổ chức tập huấn nghiệp vụ."
    assert doc["pages"][0]["processed_content"] == ""


@pytest.mark.asyncio
async def test_generate_requires_purpose(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.post(f"/api/drafts/{draft_id}/generate", json={"purpose": ""})
    assert resp.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (AIServiceError("400 bad prompt"), 502),
        (ServiceOverloadedError("quá tải"), 503),
        (AIConfigurationError("API key not configured."), 500),
    ],
)
async def test_generate_error_mapping(client: AsyncClient, fake_ai, error, expected):
    draft_id = (await _create_draft(client))["id"]
    await _settle(draft_id)
    fake_ai.fail_with = error

    resp = await client.post(f"/api/drafts/{draft_id}/generate", json={"purpose": "x"})
    assert resp.status_code == expected
    assert resp.json()["detail"] == str(error)

    state = (await client.get(f"/api/drafts/{draft_id}")).json()
    assert state["is_generating_draft"] is False


@pytest.mark.asyncio
async def test_exports(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    await _settle(draft_id)

    resp = await client.get(f"/api/drafts/{draft_id}/export/txt")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert 'filename="van-ban-' in resp.headers["content-disposition"]
    assert resp.text.startswith("PHÒNG NGHIÊN CỨU KHOA HỌC\tCỘNG HÒA XÃ HỘI CHỦ NGHĨA VIỆT NAM")

    resp = await client.get(f"/api/drafts/{draft_id}/export/docx")
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].endswith('.docx"')
    result = Document(io.BytesIO(resp.content))
    assert "Kính gửi: Ban Giám đốc." in [p.text for p in result.paragraphs]

    resp = await client.get(f"/api/drafts/{draft_id}/preview")
    assert resp.status_code == 200
    assert "CỘNG HÒA XÃ HỘI CHỦ NGHĨA VIỆT NAM" in resp.text


@pytest.mark.asyncio
async def test_delete_draft(client: AsyncClient):
    draft_id = (await _create_draft(client))["id"]
    resp = await client.delete(f"/api/drafts/{draft_id}")
    assert resp.status_code == 204
    assert (await client.get(f"/api/drafts/{draft_id}")).status_code == 404


@pytest.mark.asyncio
async def test_generate_while_generating_is_conflict(client: AsyncClient, fake_ai):
    draft_id = (await _create_draft(client))["id"]
    session = draft_manager.get(draft_id)
    session.is_generating_draft = True

    resp = await client.post(f"/api/drafts/{draft_id}/generate", json={"purpose": "x"})
    assert resp.status_code == 409
    assert session.document.subject != fake_ai.draft.subject

    session.is_generating_draft = False
    resp = await client.post(f"/api/drafts/{draft_id}/generate", json={"purpose": "x"})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_request_log_skips_plain_reads(client: AsyncClient, caplog):
    caplog.set_level(logging.INFO, logger="app.main")
    draft_id = (await _create_draft(client))["id"]
    await client.get(f"/api/drafts/{draft_id}")
    await client.get(f"/api/drafts/{draft_id}/preview")

    messages = [r.getMessage() for r in caplog.records if r.name == "app.main"]
    assert any(m.startswith("POST /api/drafts") for m in messages)
    assert any(m.startswith(f"GET /api/drafts/{draft_id}/preview") for m in messages)
    assert not any(m.startswith(f"GET /api/drafts/{draft_id} ") for m in messages)
