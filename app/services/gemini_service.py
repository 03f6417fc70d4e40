"""
AI drafting service backed by Google Gemini.

Uses the ``google-genai`` SDK (``client.aio.models.generate_content``) with
the model named by GEMINI_MODEL.  All prompts are module-level constants so
they can be tuned without touching logic code.  Every request goes through
:func:`app.services.retry.call_with_retry`.

Public API
----------
GeminiService.generate_draft(purpose, data, document_type, field, tone, detail) -> GeneratedDraft
GeminiService.formalize(raw_content)                                          -> str
GeminiService.suggest_formatting(processed_content)                           -> str
GeminiService.proofread(raw_content)                                          -> str
GeminiService.extract_text_from_image(data, mime_type)                        -> str
GeminiService.analyze(document_text, user_prompt, field, tone, detail)        -> str
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from google import genai
from google.genai import types
from pydantic import BaseModel

from app.config import settings
from app.models.schemas import DocumentType, GeneratedDraft
from app.services.errors import AIConfigurationError, AIServiceError
from app.services.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Style customisation
# ---------------------------------------------------------------------------

FIELD_LABELS: Dict[str, str] = {
    "default": "hành chính thông thường",
    "law": "pháp lý, luật",
    "medical": "y tế, y khoa",
    "military": "quân đội, an ninh",
    "culture": "văn hóa, giáo dục",
    "technical": "kỹ thuật, công nghệ",
}

TONE_LABELS: Dict[str, str] = {
    "formal": "trang trọng, chính thức",
    "assertive": "quả quyết, mạnh mẽ",
    "neutral": "trung lập, khách quan",
    "friendly": "thân thiện, gần gũi",
}

DETAIL_LABELS: Dict[str, str] = {
    "standard": "đầy đủ, chuẩn mực",
    "concise": "ngắn gọn, súc tích",
    "detailed": "chi tiết, cụ thể",
}


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


def build_style_prompt(field: Any, tone: Any, detail: Any) -> str:
    """Render the three style parameters as a prompt fragment."""
    field_label = FIELD_LABELS.get(_enum_value(field), "hành chính")
    tone_label = TONE_LABELS.get(_enum_value(tone), "trang trọng")
    detail_label = DETAIL_LABELS.get(_enum_value(detail), "chuẩn mực")
    return (
        "\nYêu cầu về văn phong:\n"
        f"- Chuyên ngành: Sử dụng thuật ngữ của ngành {field_label}.\n"
        f"- Giọng văn: {tone_label}.\n"
        f"- Mức độ chi tiết: {detail_label}."
    )


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_DRAFT_SYSTEM = """\
Bạn là một trợ lý ảo chuyên soạn thảo văn bản hành chính tại Việt Nam, am hiểu sâu sắc Nghị định 30/2020/NĐ-CP.
Nhiệm vụ của bạn là dựa vào mục đích, dữ liệu, loại văn bản và các tùy chỉnh văn phong người dùng cung cấp để soạn thảo các phần nội dung chính của một văn bản hoàn chỉnh.
Hãy trả về kết quả dưới dạng một đối tượng JSON tuân thủ theo cấu trúc đã định nghĩa.
- "subject": Trích yếu nội dung, ngắn gọn, trang trọng.
- "rawContent": Nội dung chính của văn bản, viết theo văn phong hành chính chuẩn mực, sử dụng các căn cứ pháp lý phù hợp nếu có thể.
- "recipients": Đề xuất nơi nhận phù hợp, mỗi nơi nhận trên một dòng, bắt đầu bằng dấu gạch ngang. Ví dụ: "- Như trên;\\n- Lưu: VT."
- "signerTitle": Đề xuất chức danh người ký phù hợp (viết IN HOA), ví dụ "TRƯỞNG PHÒNG".
"""

_DRAFT_PROMPT = """\
Hãy soạn thảo một văn bản dựa trên các thông tin sau:
- **Loại văn bản:** {document_type}
- **Mục đích chính:** {purpose}
- **Dữ liệu bổ sung (nếu có):** {data}
- **Tùy chỉnh văn phong:** {customization}
"""

_FORMALIZE_SYSTEM = """\
Bạn là một chuyên viên văn thư lưu trữ chuyên nghiệp của Việt Nam, có kiến thức sâu sắc về Nghị định 30/2020/NĐ-CP.
Nhiệm vụ của bạn là diễn giải lại nội dung văn bản thô được cung cấp thành văn phong hành chính trang trọng, mạch lạc, rõ ràng và chuẩn mực của Việt Nam, không mắc lỗi chính tả.
Chỉ trả về phần nội dung chính đã được soạn lại, không thêm "Kính gửi", "Căn cứ", tiêu đề, chữ ký hay bất kỳ phần nào khác của văn bản.
Sử dụng ngắt dòng (\\n) để tạo các đoạn văn hợp lý.
Ví dụ: nếu nhận được "phòng X đề nghị duyệt chi 10 triệu mua máy tính", bạn nên trả về một đoạn văn như: "Phòng X kính đề nghị Ban Giám đốc xem xét, phê duyệt chủ trương chi kinh phí mua sắm 01 máy vi tính để bàn với tổng giá trị dự kiến là 10.000.000 VNĐ (Mười triệu đồng chẵn) để phục vụ công tác chuyên môn."\
"""

_FORMALIZE_PROMPT = """\
Dựa trên nội dung thô sau đây, hãy soạn lại thành nội dung văn bản hành chính hoàn chỉnh, trang trọng. Giữ lại các thông tin cốt lõi như kinh phí, thời gian và mục đích.

Nội dung thô:
"{raw_content}"\
"""

_FORMATTING_SYSTEM = """\
Bạn là một chuyên gia về trình bày văn bản hành chính Việt Nam theo Nghị định 30/2020/NĐ-CP.
Nhiệm vụ của bạn là định dạng lại văn bản được cung cấp để tăng tính rõ ràng và chuyên nghiệp.
Sử dụng Markdown để định dạng. Cụ thể:
- Dùng **dấu sao kép** để **in đậm** các thông tin quan trọng như: số tiền, ngày tháng, thời hạn, địa điểm, tên riêng, hoặc các cụm từ cần nhấn mạnh.
- Dùng dấu gạch đầu dòng (- ) cho các danh sách liệt kê. Mỗi mục trên một dòng riêng.
- Giữ nguyên toàn bộ nội dung, câu chữ, và cấu trúc đoạn văn của văn bản gốc. KHÔNG được thêm, bớt, hay thay đổi bất kỳ từ nào. Chỉ thêm mã Markdown.
- KHÔNG thêm bất kỳ lời giải thích nào. Chỉ trả về văn bản đã được định dạng.\
"""

_FORMATTING_PROMPT = "Hãy định dạng văn bản sau bằng Markdown:\n\n---\n{processed_content}\n---"

_PROOFREAD_SYSTEM = """\
Bạn là một trợ lý biên tập chuyên nghiệp, chuyên về văn phong hành chính của Việt Nam. Nhiệm vụ của bạn là kiểm tra và sửa tất cả các lỗi chính tả, ngữ pháp, và dấu câu trong văn bản được cung cấp.
Hãy điều chỉnh câu văn cho mạch lạc, trang trọng và chuyên nghiệp hơn nếu cần, nhưng phải giữ nguyên tuyệt đối ý nghĩa cốt lõi của văn bản gốc.
Chỉ trả về văn bản đã được sửa lỗi hoàn chỉnh. Không thêm bất kỳ lời giải thích, ghi chú, tiêu đề, hay định dạng nào khác.\
"""

_PROOFREAD_PROMPT = "Vui lòng kiểm tra và sửa lỗi cho đoạn văn bản sau đây:\n\n---\n{raw_content}\n---"

_IMAGE_PROMPT = (
    "Trích xuất toàn bộ văn bản từ hình ảnh này. Chỉ trả về nội dung văn bản, "
    "không thêm bất kỳ lời giải thích hay định dạng nào."
)

_ANALYZE_SYSTEM = (
    "Bạn là một trợ lý AI chuyên phân tích văn bản. Dựa vào nội dung văn bản được "
    "cung cấp, yêu cầu của người dùng, và các tùy chỉnh văn phong, hãy đưa ra câu trả "
    "lời chính xác, chi tiết, hữu ích và được trình bày rõ ràng."
)

_ANALYZE_PROMPT = """\
**VĂN BẢN CẦN PHÂN TÍCH:**
---
{document_text}
---

**YÊU CẦU PHÂN TÍCH CỦA NGƯỜI DÙNG:**
---
{user_prompt}
---

**TÙY CHỈNH VĂN PHONG PHẢN HỒI:**
---
{customization}
---

Hãy thực hiện yêu cầu trên.\
"""


class DraftSchema(BaseModel):
    """Structured output requested from the model for draft generation."""

    subject: str
    rawContent: str
    recipients: str
    signerTitle: str


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class GeminiService:
    """
    Thin access layer over the Gemini model endpoint.

    Prompt assembly happens here; retry/backoff is delegated to
    :func:`call_with_retry`.  Non-rate-limit failures are re-raised as
    :class:`AIServiceError` carrying the provider's message.
    """

    DRAFT_TEMPERATURE: float = 0.6
    FORMALIZE_TEMPERATURE: float = 0.5
    FORMATTING_TEMPERATURE: float = 0.2
    PROOFREAD_TEMPERATURE: float = 0.3
    ANALYZE_TEMPERATURE: float = 0.6

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        client: Any = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model_name = model_name or settings.GEMINI_MODEL
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._client = client
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def generate_draft(
        self,
        purpose: str,
        data: str,
        document_type: DocumentType,
        field: Any = "default",
        tone: Any = "formal",
        detail: Any = "standard",
    ) -> GeneratedDraft:
        """Draft subject, body, recipients and signer title for a new document."""
        prompt = _DRAFT_PROMPT.format(
            document_type=_enum_value(document_type),
            purpose=purpose,
            data=data or "Không có",
            customization=build_style_prompt(field, tone, detail),
        )
        text = await self._generate(
            prompt,
            system_instruction=_DRAFT_SYSTEM,
            temperature=self.DRAFT_TEMPERATURE,
            response_schema=DraftSchema,
            label="generate draft",
            fallback_message="AI không thể tạo nội dung. Vui lòng thử lại với yêu cầu rõ ràng hơn.",
        )

        ok, parsed = self._parse_json_robust(text)
        if not ok or not isinstance(parsed, dict):
            logger.error("generate_draft: unparseable model output: %s", text[:300])
            raise AIServiceError(
                "AI không thể tạo nội dung. Vui lòng thử lại với yêu cầu rõ ràng hơn."
            )

        return GeneratedDraft(
            subject=str(parsed.get("subject") or "").strip(),
            raw_content=str(parsed.get("rawContent") or "").strip(),
            recipients=str(parsed.get("recipients") or "").strip(),
            signer_title=str(parsed.get("signerTitle") or "").strip(),
        )

    async def formalize(self, raw_content: str) -> str:
        """Rewrite raw notes as formal administrative prose."""
        return await self._generate(
            _FORMALIZE_PROMPT.format(raw_content=raw_content),
            system_instruction=_FORMALIZE_SYSTEM,
            temperature=self.FORMALIZE_TEMPERATURE,
            label="formalize",
            fallback_message="Không thể định dạng nội dung từ AI.",
        )

    async def suggest_formatting(self, processed_content: str) -> str:
        """
        Add markdown emphasis and bullets to formalized text.

        Falls back to *processed_content* unchanged when the model call fails.
        """
        try:
            return await self._generate(
                _FORMATTING_PROMPT.format(processed_content=processed_content),
                system_instruction=_FORMATTING_SYSTEM,
                temperature=self.FORMATTING_TEMPERATURE,
                label="suggest formatting",
                fallback_message="Không thể định dạng nội dung từ AI.",
            )
        except AIConfigurationError:
            raise
        except AIServiceError as exc:
            logger.warning("suggest_formatting: falling back to unformatted text (%s)", exc)
            return processed_content

    async def proofread(self, raw_content: str) -> str:
        """Fix spelling, grammar and punctuation while keeping the meaning."""
        text = await self._generate(
            _PROOFREAD_PROMPT.format(raw_content=raw_content),
            system_instruction=_PROOFREAD_SYSTEM,
            temperature=self.PROOFREAD_TEMPERATURE,
            label="proofread",
            fallback_message="Không thể kiểm tra chính tả & ngữ pháp bằng AI.",
        )
        return text.strip()

    async def extract_text_from_image(self, data: bytes, mime_type: str) -> str:
        """OCR an image through the multimodal model."""
        contents = [types.Part.from_bytes(data=data, mime_type=mime_type), _IMAGE_PROMPT]
        return await self._generate(
            contents,
            label="extract text",
            fallback_message="Không thể trích xuất văn bản từ hình ảnh.",
        )

    async def analyze(
        self,
        document_text: str,
        user_prompt: str,
        field: Any = "default",
        tone: Any = "formal",
        detail: Any = "standard",
    ) -> str:
        """Answer *user_prompt* about *document_text*."""
        prompt = _ANALYZE_PROMPT.format(
            document_text=document_text,
            user_prompt=user_prompt,
            customization=build_style_prompt(field, tone, detail),
        )
        return await self._generate(
            prompt,
            system_instruction=_ANALYZE_SYSTEM,
            temperature=self.ANALYZE_TEMPERATURE,
            label="analyze",
            fallback_message="Không thể phân tích văn bản.",
        )

    # ------------------------------------------------------------------
    # Core model caller
    # ------------------------------------------------------------------

    def _get_client(self) -> Any:
        if not self.api_key:
            raise AIConfigurationError("API key not configured.")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def _generate(
        self,
        contents: Any,
        *,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Any = None,
        label: str,
        fallback_message: str,
    ) -> str:
        """Call the model through the retry wrapper and return its text."""
        client = self._get_client()

        config_kwargs: Dict[str, Any] = {}
        if system_instruction is not None:
            config_kwargs["system_instruction"] = system_instruction
        if temperature is not None:
            config_kwargs["temperature"] = temperature
        if response_schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = response_schema
        config = types.GenerateContentConfig(**config_kwargs) if config_kwargs else None

        retry_kwargs: Dict[str, Any] = {"policy": self.retry_policy, "label": label}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        try:
            response = await call_with_retry(
                lambda: client.aio.models.generate_content(
                    model=self.model_name, contents=contents, config=config
                ),
                **retry_kwargs,
            )
            # .text is None when the candidate was blocked or empty
            text = response.text or ""
        except AIServiceError:
            raise
        except Exception as exc:
            logger.error("Gemini call failed (%s): %s", label, exc)
            raise AIServiceError(str(exc) or fallback_message) from exc

        logger.info("Gemini %s: %d chars returned", label, len(text))
        return text

    # ------------------------------------------------------------------
    # Robust JSON parsing
    # ------------------------------------------------------------------

    def _parse_json_robust(self, response: str) -> Tuple[bool, Any]:
        """
        Parse JSON from model output that may be wrapped in code fences or prose.

        Returns ``(success, parsed_value)``.
        """
        if not response:
            return False, None

        text = response.strip()

        ok, val = self._try_json(text)
        if ok:
            return True, val

        stripped = self._strip_code_fences(text)
        if stripped != text:
            ok, val = self._try_json(stripped)
            if ok:
                return True, val
            text = stripped

        fragment = self._extract_json_object(text)
        if fragment:
            ok, val = self._try_json(fragment)
            if ok:
                return True, val

        logger.warning("_parse_json_robust: all strategies failed. Preview: %s", response[:400])
        return False, None

    @staticmethod
    def _try_json(text: str) -> Tuple[bool, Any]:
        try:
            return True, json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return False, None

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        """Remove ```json / ``` delimiters that LLMs often wrap output in."""
        text = re.sub(r"^```(?:json)?\s*\n?", "", text, flags=re.IGNORECASE)
        text = re.sub(r"\n?```\s*$", "", text)
        return text.strip()

    @staticmethod
    def _extract_json_object(text: str) -> str:
        """Find the first balanced {...} block in *text*, ignoring braces inside strings."""
        start = text.find("{")
        if start == -1:
            return ""

        depth = 0
        in_string = False
        escape_next = False

        for i, ch in enumerate(text[start:], start=start):
            if escape_next:
                escape_next = False
                continue
            if ch == "\\" and in_string:
                escape_next = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        return ""


# ---------------------------------------------------------------------------
# Module-level singleton, used through the FastAPI dependency
# ---------------------------------------------------------------------------

_service: Optional[GeminiService] = None


def get_gemini_service() -> GeminiService:
    """FastAPI dependency returning the shared :class:`GeminiService`."""
    global _service
    if _service is None:
        _service = GeminiService()
    return _service
