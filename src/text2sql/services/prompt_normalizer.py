"""
Prompt normalization service.

Deterministic cleanup of a raw question before any LLM call:
1. Trim and collapse whitespace runs to one space
2. Expand abbreviations (whole word, case-insensitive)
3. Fix common unaccented Vietnamese typos (case-insensitive)
4. Tag the language: "vi" when a Vietnamese diacritic is present, else "en"

Normalizing an already-normalized text returns it unchanged: no
expansion produces text that another rule matches again.
"""

import re
from types import MappingProxyType
from typing import Mapping

from text2sql.domain.errors import ValidationError
from text2sql.domain.intent import NormalizedPrompt
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()


ABBREVIATIONS: Mapping[str, str] = MappingProxyType({
    "db": "database",
    "ds": "danh sách",
    "tb": "bảng",
    "kh": "khách hàng",
    "dh": "đơn hàng",
    "sp": "sản phẩm",
    "dt": "doanh thu",
    "sl": "số lượng",
})

TYPO_CORRECTIONS: Mapping[str, str] = MappingProxyType({
    "cho toi": "cho tôi",
    "bao nhieu": "bao nhiêu",
    "tat ca": "tất cả",
    "tim kiem": "tìm kiếm",
})

VIETNAMESE_DIACRITICS = frozenset("ăâđêôơưáàảãạắằẳẵặấầẩẫậ")

VIETNAMESE = "vi"
ENGLISH = "en"

_WHITESPACE_PATTERN = re.compile(r"\s+")

_ABBREVIATION_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in ABBREVIATIONS) + r")\b",
    re.IGNORECASE,
)

_TYPO_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in TYPO_CORRECTIONS) + r")\b",
    re.IGNORECASE,
)


def detect_language(text: str) -> str:
    lowered = text.lower()
    return VIETNAMESE if any(ch in VIETNAMESE_DIACRITICS for ch in lowered) else ENGLISH


class PromptNormalizer:
    """
    Deterministic question normalizer.

    Stateless; safe to share across concurrent queries.
    """

    def normalize(self, raw_text: str) -> NormalizedPrompt:
        """
        Normalize a raw question.

        Raises:
            ValidationError: If the text is empty or whitespace-only
        """
        if raw_text is None or not raw_text.strip():
            raise ValidationError("Question cannot be empty")

        text = _WHITESPACE_PATTERN.sub(" ", raw_text.strip())
        text = _ABBREVIATION_PATTERN.sub(lambda m: ABBREVIATIONS[m.group(1).lower()], text)
        text = _TYPO_PATTERN.sub(lambda m: TYPO_CORRECTIONS[m.group(1).lower()], text)

        prompt = NormalizedPrompt(
            original_text=raw_text,
            normalized_text=text,
            language_tag=detect_language(text),
        )

        logger.debug(
            "Prompt normalized",
            original_length=len(raw_text),
            normalized_length=len(text),
            language=prompt.language_tag,
            trace_id=current_trace_id(),
        )
        return prompt
