"""
Render a :class:`DocumentData` as plain text, DOCX or HTML.

All three renderers lay the document out the same way: authority and national
motto header, reference number and date line, optional abstract, document
type and subject, salutation, body pages, then recipients and signature.
"""
from __future__ import annotations

import html
import io
import logging
import re
from typing import List

from docx import Document
from docx.enum.table import WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt

from app.models.schemas import DocumentData, PreviewSettings
from app.services.document_state import reference_line
from app.services.markdown_render import Block, parse_markdown, render_html
from app.utils.helpers import timestamp_ms, vietnamese_date_line

logger = logging.getLogger(__name__)

NATIONAL_NAME = "CỘNG HÒA XÃ HỘI CHỦ NGHĨA VIỆT NAM"
NATIONAL_MOTTO = "Độc lập - Tự do - Hạnh phúc"
SALUTATION = "Kính gửi: Ban Giám đốc."
SIGNATURE_HINT = "(Ký, ghi rõ họ tên)"

AUTHORITY_PLACEHOLDER = "[CƠ QUAN BAN HÀNH]"
PLACE_PLACEHOLDER = "[Địa danh]"
TYPE_PLACEHOLDER = "[LOẠI VĂN BẢN]"
SUBJECT_PLACEHOLDER = "[Trích yếu nội dung văn bản]"
RECIPIENTS_PLACEHOLDER = "- Như trên;\n- Lưu: VT,..."
SIGNER_TITLE_PLACEHOLDER = "[CHỨC VỤ]"
SIGNER_NAME_PLACEHOLDER = "[Họ và tên]"

MEDIA_TYPES = {
    "txt": "text/plain; charset=utf-8",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def export_filename(ext: str) -> str:
    return f"van-ban-{timestamp_ms()}.{ext}"


def _type_label(doc: DocumentData) -> str:
    value = getattr(doc.document_type, "value", doc.document_type)
    return (value or TYPE_PLACEHOLDER).upper()


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def render_plain_text(doc: DocumentData) -> str:
    """
    Plain-text rendering used for copy and ``.txt`` export.

    Body pages use the formalized text (not the markdown variant), each line
    indented by four spaces.  Header lines lose their leading whitespace and
    blank header lines are dropped.
    """
    abstract = f"{doc.abstract}\n" if doc.abstract else ""
    header = (
        "\n"
        f"{doc.issuing_authority.upper()}\t{NATIONAL_NAME}\n"
        f"\t{NATIONAL_MOTTO}\n"
        f"{reference_line(doc, dots='...')}\t{vietnamese_date_line(doc.place, doc.issue_date)}\n"
        f"{abstract}\n"
        f"{_type_label(doc)}\n"
        f"{doc.subject}\n"
        "\n"
        f"{SALUTATION}\n"
    )
    parts = [re.sub(r"^\s+", "", header, flags=re.MULTILINE)]

    for index, page in enumerate(doc.pages):
        if index > 0:
            parts.append(f"\n\n- {index + 1} -\n\n")
        parts.append("\n".join(f"    {line}" for line in page.processed_content.split("\n")))

    parts.append(
        "\n"
        "Nơi nhận:\n"
        f"{doc.recipients}\n"
        f"\t{doc.signer_title.upper()}\n"
        f"\t{SIGNATURE_HINT}\n"
        "\n"
        "\n"
        f"\t{doc.signer_name}\n"
    )
    return "".join(parts)


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def _primary_font(font_family: str) -> str:
    """First family of a CSS font stack, unquoted."""
    return font_family.split(",")[0].strip().strip("'\"") or "Times New Roman"


def _font_size_pt(font_size: str) -> float:
    try:
        return float(font_size.lower().replace("pt", "").strip())
    except ValueError:
        logger.warning("Unrecognised font size %r, using 13pt", font_size)
        return 13.0


def _add_text(container, text: str, *, bold=False, italic=False, align=None):
    p = container.add_paragraph()
    if text:
        run = p.add_run(text)
        run.bold = bold
        run.italic = italic
    if align is not None:
        p.alignment = align
    return p


def _add_blocks(container, blocks: List[Block]) -> None:
    for block in blocks:
        if block.kind == "bullet_list":
            for item in block.items:
                p = container.add_paragraph(style="List Bullet")
                for run in item:
                    p.add_run(run.text).bold = run.bold
        else:
            p = container.add_paragraph()
            p.paragraph_format.first_line_indent = Inches(0.5)
            p.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
            for run in block.items[0]:
                p.add_run(run.text).bold = run.bold


def _two_column_table(document):
    # Tables without a style carry no borders in the default template
    table = document.add_table(rows=1, cols=2)
    table.alignment = WD_TABLE_ALIGNMENT.CENTER
    table.autofit = True
    return table.rows[0].cells


def render_docx(doc: DocumentData, preview: PreviewSettings) -> bytes:
    """Build the ``.docx`` export and return its bytes."""
    document = Document()

    normal = document.styles["Normal"]
    normal.font.name = _primary_font(preview.font_family)
    normal.font.size = Pt(_font_size_pt(preview.font_size))

    center = WD_ALIGN_PARAGRAPH.CENTER

    left, right = _two_column_table(document)
    left.paragraphs[0].add_run((doc.issuing_authority or AUTHORITY_PLACEHOLDER).upper()).bold = True
    left.paragraphs[0].alignment = center
    _add_text(left, "_______", align=center)
    right.paragraphs[0].add_run(NATIONAL_NAME).bold = True
    right.paragraphs[0].alignment = center
    _add_text(right, NATIONAL_MOTTO, align=center)
    _add_text(right, "___________", align=center)

    document.add_paragraph()

    left, right = _two_column_table(document)
    left.paragraphs[0].add_run(reference_line(doc))
    date_run = right.paragraphs[0].add_run(
        vietnamese_date_line(doc.place or PLACE_PLACEHOLDER, doc.issue_date)
    )
    date_run.italic = True
    right.paragraphs[0].alignment = WD_ALIGN_PARAGRAPH.RIGHT

    if doc.abstract:
        _add_text(document, doc.abstract, italic=True)

    document.add_paragraph()
    _add_text(document, _type_label(doc), bold=True, align=center)
    _add_text(document, doc.subject or SUBJECT_PLACEHOLDER, bold=True, align=center)
    document.add_paragraph()
    _add_text(document, SALUTATION, bold=True)

    for index, page in enumerate(doc.pages):
        if index > 0:
            _add_text(document, f"- {index + 1} -", bold=True, align=center)
        _add_blocks(document, parse_markdown(page.formatted_content or page.processed_content))

    document.add_paragraph()

    left, right = _two_column_table(document)
    heading = left.paragraphs[0].add_run("Nơi nhận:")
    heading.bold = True
    heading.italic = True
    for line in (doc.recipients or RECIPIENTS_PLACEHOLDER).split("\n"):
        left.add_paragraph(line)

    right.paragraphs[0].add_run((doc.signer_title or SIGNER_TITLE_PLACEHOLDER).upper()).bold = True
    right.paragraphs[0].alignment = center
    _add_text(right, SIGNATURE_HINT, italic=True, align=center)
    for _ in range(3):
        right.add_paragraph()
    _add_text(right, doc.signer_name or SIGNER_NAME_PLACEHOLDER, bold=True, align=center)

    buffer = io.BytesIO()
    document.save(buffer)
    logger.info("Rendered DOCX export: %d pages, %d bytes", len(doc.pages), buffer.tell())
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# HTML preview
# ---------------------------------------------------------------------------

def render_preview_html(doc: DocumentData, preview: PreviewSettings) -> str:
    """Standalone HTML fragment of the formatted document."""
    e = html.escape

    body = []
    for index, page in enumerate(doc.pages):
        if index > 0:
            body.append(f'<div style="text-align:center;font-weight:bold;padding:1rem 0">- {index + 1} -</div>')
        content = page.formatted_content or page.processed_content
        if content:
            body.append(render_html(parse_markdown(content)))
        else:
            body.append('<p style="text-indent:2rem;text-align:justify">...</p>')

    abstract = (
        f'<p style="font-style:italic;font-size:smaller">{e(doc.abstract)}</p>' if doc.abstract else ""
    )
    recipients = e(doc.recipients or RECIPIENTS_PLACEHOLDER).replace("\n", "<br>")
    date_line = vietnamese_date_line(doc.place or PLACE_PLACEHOLDER, doc.issue_date)

    return f"""\
<div class="document-preview" style="font-family:{e(preview.font_family)};font-size:{e(preview.font_size)};line-height:1.6;color:#000">
  <table style="width:100%;border-collapse:collapse"><tr>
    <td style="width:45%;text-align:center;font-weight:bold;vertical-align:top">
      <p style="text-transform:uppercase">{e(doc.issuing_authority or AUTHORITY_PLACEHOLDER)}</p>
      <p>_______</p>
    </td>
    <td style="width:55%;text-align:center;font-weight:bold;vertical-align:top">
      <p>{NATIONAL_NAME}</p>
      <p>{NATIONAL_MOTTO}</p>
      <p>___________</p>
    </td>
  </tr></table>
  <table style="width:100%;border-collapse:collapse"><tr>
    <td style="width:45%">{e(reference_line(doc))}</td>
    <td style="width:55%;text-align:right;font-style:italic">{e(date_line)}</td>
  </tr></table>
  {abstract}
  <div style="text-align:center;margin:1.5rem 0">
    <p style="font-weight:bold">{e(_type_label(doc))}</p>
    <p style="font-weight:bold">{e(doc.subject or SUBJECT_PLACEHOLDER)}</p>
  </div>
  <p style="font-weight:bold">{SALUTATION}</p>
  {"".join(body)}
  <table style="width:100%;border-collapse:collapse"><tr>
    <td style="width:55%;vertical-align:top">
      <p style="font-weight:bold;font-style:italic">Nơi nhận:</p>
      <div style="font-size:smaller">{recipients}</div>
    </td>
    <td style="width:45%;text-align:center;vertical-align:top">
      <p style="font-weight:bold">{e((doc.signer_title or SIGNER_TITLE_PLACEHOLDER).upper())}</p>
      <p style="font-style:italic">{SIGNATURE_HINT}</p>
      <div style="height:5rem"></div>
      <p style="font-weight:bold">{e(doc.signer_name or SIGNER_NAME_PLACEHOLDER)}</p>
    </td>
  </tr></table>
</div>
"""
