"""Unit tests for IntentAnalysisRepository."""

import pytest

from text2sql.domain.base_enums import IntentCategory
from text2sql.domain.errors import IntentAnalysisError, LLMError
from text2sql.domain.intent import NormalizedPrompt
from text2sql.repositories.intent_analysis import (
    INTENT_SYSTEM_PROMPT,
    IntentAnalysisRepository,
    parse_category,
)

from fakes import FakeLLMClient


def _prompt(text: str, language: str = "en") -> NormalizedPrompt:
    return NormalizedPrompt(original_text=text, normalized_text=text, language_tag=language)


class TestParseCategory:
    """Tests for parse_category label mapping."""

    @pytest.mark.parametrize(
        "label, category",
        [
            ("COUNT", IntentCategory.COUNT),
            ("list", IntentCategory.LIST),
            (" Schema ", IntentCategory.SCHEMA),
            ("top-n", IntentCategory.AGGREGATE),
            ("SUM", IntentCategory.AGGREGATE),
            ("select", IntentCategory.LIST),
        ],
    )
    def test_known_labels(self, label, category):
        assert parse_category(label) == category

    @pytest.mark.parametrize("label", ["WEATHER", "", None])
    def test_unknown_label(self, label):
        with pytest.raises(IntentAnalysisError):
            parse_category(label)


class TestAnalyze:
    """Tests for IntentAnalysisRepository.analyze."""

    async def test_plain_json(self):
        llm = FakeLLMClient([
            '{"category": "COUNT", "target": "customers", "entities": ["orders"], '
            '"filters": [{"field": "customers.city", "operator": "=", "value": "Hà Nội"}], '
            '"confidence": 0.9}'
        ])
        repo = IntentAnalysisRepository(llm)

        intent = await repo.analyze(_prompt("How many customers live in Hà Nội?"))

        assert intent.category == IntentCategory.COUNT
        assert intent.target == "customers"
        assert intent.extracted_entities == ["orders"]
        assert intent.filters[0].field == "customers.city"
        assert intent.filters[0].value == "Hà Nội"
        assert intent.confidence == 0.9
        assert intent.question == "How many customers live in Hà Nội?"
        assert not intent.needs_clarification

    async def test_fenced_json_with_prose(self):
        llm = FakeLLMClient(['Here is the intent:\n```json\n{"category": "LIST", "target": "products"}\n```'])

        intent = await IntentAnalysisRepository(llm).analyze(_prompt("list products"))

        assert intent.category == IntentCategory.LIST
        assert intent.target == "products"

    async def test_camel_case_keys(self):
        llm = FakeLLMClient([
            '{"intent": "DETAIL", "relatedEntities": [{"name": "orders"}], '
            '"needsClarification": true, "clarificationQuestion": "Which order?"}'
        ])

        intent = await IntentAnalysisRepository(llm).analyze(_prompt("show the order"))

        assert intent.category == IntentCategory.DETAIL
        assert intent.extracted_entities == ["orders"]
        assert intent.needs_clarification
        assert intent.clarification_question == "Which order?"

    async def test_confidence_clamped_and_tolerant(self):
        llm = FakeLLMClient([
            '{"category": "COUNT", "confidence": 7}',
            '{"category": "COUNT", "confidence": "high"}',
        ])
        repo = IntentAnalysisRepository(llm)

        assert (await repo.analyze(_prompt("q"))).confidence == 1.0
        assert (await repo.analyze(_prompt("q"))).confidence is None

    async def test_filters_without_field_dropped(self):
        llm = FakeLLMClient(['{"category": "LIST", "filters": [{"value": "x"}, "bad", {"field": "status"}]}'])

        intent = await IntentAnalysisRepository(llm).analyze(_prompt("q"))

        assert [(f.field, f.operator, f.value) for f in intent.filters] == [("status", "=", "")]

    async def test_not_json(self):
        llm = FakeLLMClient(["I think you want a count."])

        with pytest.raises(IntentAnalysisError, match="parse"):
            await IntentAnalysisRepository(llm).analyze(_prompt("q"))

    async def test_unknown_category(self):
        llm = FakeLLMClient(['{"category": "FORECAST"}'])

        with pytest.raises(IntentAnalysisError, match="FORECAST"):
            await IntentAnalysisRepository(llm).analyze(_prompt("q"))

    async def test_llm_failure_wrapped(self):
        llm = FakeLLMClient([LLMError("rate limited")])

        with pytest.raises(IntentAnalysisError, match="rate limited"):
            await IntentAnalysisRepository(llm).analyze(_prompt("q"))

    async def test_prompt_contents(self):
        llm = FakeLLMClient(['{"category": "SCHEMA"}'])

        await IntentAnalysisRepository(llm).analyze(
            _prompt("Có bao nhiêu bảng trong database?", "vi"),
            available_tables=["customers", "orders"],
        )

        call = llm.calls[0]
        assert call["system"] == INTENT_SYSTEM_PROMPT
        assert "Question (vi): Có bao nhiêu bảng trong database?" in call["user"]
        assert "Known tables: customers, orders" in call["user"]
