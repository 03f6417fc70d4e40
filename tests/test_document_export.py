"""Tests for markdown parsing and the plain-text / DOCX / HTML renderers."""
import io
import re
from datetime import date

import pytest
from docx import Document

from app.models.schemas import PreviewSettings
from app.services import document_state as ds
from app.services.document_export import (
    export_filename,
    render_docx,
    render_plain_text,
    render_preview_html,
)
from app.services.markdown_render import Run, parse_markdown, render_html


@pytest.fixture
def doc():
    d = ds.default_document(today=date(2025, 3, 5))
    d = ds.set_page_results(
        d,
        d.pages[0].id,
        processed_content="Dòng một\nDòng hai",
        formatted_content="Mở đầu **quan trọng**\n- Ý một\n- Ý hai\nKết luận",
    )
    d = ds.add_page(d)
    d = ds.set_page_raw_content(d, 1, "Trang hai")
    return ds.set_page_results(d, d.pages[1].id, processed_content="Nội dung trang hai")


# ---------------------------------------------------------------------------
# Markdown subset
# ---------------------------------------------------------------------------

def test_parse_markdown_groups_bullets_and_bold():
    blocks = parse_markdown("Mở đầu **quan trọng**\n- Ý một\n- Ý hai\n\nKết luận")

    assert [b.kind for b in blocks] == ["paragraph", "bullet_list", "paragraph"]
    assert blocks[0].items[0] == [Run("Mở đầu "), Run("quan trọng", bold=True)]
    assert len(blocks[1].items) == 2


def test_render_html_escapes_text():
    out = render_html(parse_markdown("a < b **<x>**"))
    assert "a &lt; b <strong>&lt;x&gt;</strong>" in out


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def test_plain_text_layout(doc):
    text = render_plain_text(doc)
    lines = text.split("\n")

    assert lines[0] == "PHÒNG NGHIÊN CỨU KHOA HỌC\tCỘNG HÒA XÃ HỘI CHỦ NGHĨA VIỆT NAM"
    assert lines[1] == "Độc lập - Tự do - Hạnh phúc"
    assert lines[2] == "Số: .../TTr-PNCKH\tHà Nội, ngày 5 tháng 3 năm 2025"
    assert lines[3] == "TỜ TRÌNH"
    assert "Kính gửi: Ban Giám đốc.\n    Dòng một\n    Dòng hai" in text
    assert "\n\n- 2 -\n\n    Nội dung trang hai" in text
    assert text.endswith("\tTRƯỞNG PHÒNG\n\t(Ký, ghi rõ họ tên)\n\n\n\tNguyễn Văn A\n")


def test_plain_text_includes_abstract(doc):
    text = render_plain_text(ds.update_fields(doc, abstract="Về việc thử nghiệm"))
    assert "\nVề việc thử nghiệm\nTỜ TRÌNH\n" in text


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def test_docx_contains_header_body_and_signature(doc):
    data = render_docx(doc, PreviewSettings(font_family="Arial, sans-serif", font_size="14pt"))
    result = Document(io.BytesIO(data))

    paragraphs = [p.text for p in result.paragraphs]
    assert "TỜ TRÌNH" in paragraphs
    assert "Kính gửi: Ban Giám đốc." in paragraphs
    assert "Mở đầu quan trọng" in paragraphs
    assert "- 2 -" in paragraphs
    assert "Nội dung trang hai" in paragraphs

    bullets = [p.text for p in result.paragraphs if p.style.name == "List Bullet"]
    assert bullets == ["Ý một", "Ý hai"]

    header, reference, footer = result.tables
    assert header.rows[0].cells[0].paragraphs[0].text == "PHÒNG NGHIÊN CỨU KHOA HỌC"
    assert reference.rows[0].cells[0].text == "Số: ....../TTr-PNCKH"
    assert "Nguyễn Văn A" in footer.rows[0].cells[1].text

    normal = result.styles["Normal"].font
    assert normal.name == "Arial"
    assert normal.size.pt == 14


def test_docx_uses_placeholders_for_empty_fields():
    empty = ds.update_fields(ds.default_document(), signer_title="", place="")
    empty = empty.model_copy(update={"signer_name": "", "subject": ""})
    result = Document(io.BytesIO(render_docx(empty, PreviewSettings())))

    footer_text = result.tables[-1].rows[0].cells[1].text
    assert "[CHỨC VỤ]" in footer_text
    assert "[Họ và tên]" in footer_text
    assert "[Trích yếu nội dung văn bản]" in [p.text for p in result.paragraphs]


# ---------------------------------------------------------------------------
# HTML preview and file names
# ---------------------------------------------------------------------------

def test_preview_html_uses_settings(doc):
    out = render_preview_html(doc, PreviewSettings(font_size="12pt"))
    assert "font-size:12pt" in out
    assert "<strong>quan trọng</strong>" in out
    assert "<li>Ý một</li>" in out


def test_export_filename_format():
    assert re.fullmatch(r"van-ban-\d+\.docx", export_filename("docx"))
