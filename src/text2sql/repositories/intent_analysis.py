"""
Intent Analysis Repository.

Classifies a normalized question with the LLM:
- Prompt building (fixed system prompt + question + known tables)
- LLM interaction
- Tolerant JSON parsing into an Intent
"""

from typing import Any, Dict, List, Optional

from text2sql.domain.base_enums import IntentCategory
from text2sql.domain.errors import IntentAnalysisError, LLMError
from text2sql.domain.intent import FilterCondition, Intent, NormalizedPrompt
from text2sql.infrastructure.llm_client import LLMClient
from text2sql.utils.llm_output import extract_json_object
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()


INTENT_SYSTEM_PROMPT = """You analyze Vietnamese or English questions about a relational database
and extract a structured intent for SQL generation.

Respond with ONLY a JSON object, no markdown and no explanation:
{
  "category": "LIST" | "COUNT" | "AGGREGATE" | "DETAIL" | "SCHEMA",
  "target": "<main table or entity, or null>",
  "entities": ["<other tables or entities mentioned>"],
  "metrics": ["<measures such as SUM(total_amount)>"],
  "filters": [{"field": "<table.column>", "operator": "=", "value": "<literal>"}],
  "confidence": <number between 0 and 1>,
  "needs_clarification": <true | false>,
  "clarification_question": "<question to ask the user, or null>"
}

Categories:
- LIST: list records
- COUNT: count records
- AGGREGATE: sums, averages, minimum/maximum, top N, grouping, trends
- DETAIL: one specific record
- SCHEMA: questions about the database structure itself (tables, columns)

Set needs_clarification only when the question cannot be answered without
more information from the user. Answer in the language of the question."""


# Finer-grained labels some models return, folded into the five categories
CATEGORY_ALIASES: Dict[str, IntentCategory] = {
    "SUM": IntentCategory.AGGREGATE,
    "AVG": IntentCategory.AGGREGATE,
    "AVERAGE": IntentCategory.AGGREGATE,
    "MIN_MAX": IntentCategory.AGGREGATE,
    "TOP_N": IntentCategory.AGGREGATE,
    "GROUP_BY": IntentCategory.AGGREGATE,
    "TREND": IntentCategory.AGGREGATE,
    "COMPARISON": IntentCategory.AGGREGATE,
    "RANKING": IntentCategory.AGGREGATE,
    "PERCENTAGE": IntentCategory.AGGREGATE,
    "SELECT": IntentCategory.LIST,
    "DESCRIBE": IntentCategory.SCHEMA,
}


def parse_category(value: Any) -> IntentCategory:
    """Map an LLM category label onto IntentCategory (case-insensitive)."""
    label = str(value or "").strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return IntentCategory(label)
    except ValueError:
        pass
    if label in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[label]
    raise IntentAnalysisError(f"Unknown intent category: {value!r}", details={"category": value})


def _as_string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    items: List[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name") or item.get("alias") or item.get("calculation")
        if item:
            items.append(str(item))
    return items


def _parse_filters(value: Any) -> List[FilterCondition]:
    filters: List[FilterCondition] = []
    for item in value or []:
        if not isinstance(item, dict) or not item.get("field"):
            continue
        filters.append(FilterCondition(
            field=str(item["field"]),
            operator=str(item.get("operator") or "="),
            value="" if item.get("value") is None else str(item["value"]),
        ))
    return filters


def _parse_confidence(value: Any) -> Optional[float]:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    return min(max(confidence, 0.0), 1.0)


class IntentAnalysisRepository:
    """
    Repository for LLM-based intent classification.

    The LLM client owns retries; this class fails fast with
    IntentAnalysisError on a failed call or unusable output.
    """

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def analyze(
        self,
        prompt: NormalizedPrompt,
        available_tables: Optional[List[str]] = None,
    ) -> Intent:
        """
        Classify a normalized question.

        Args:
            prompt: Output of the PromptNormalizer
            available_tables: Optional table names to steer the target guess

        Returns:
            Intent for the question

        Raises:
            IntentAnalysisError: If the LLM call fails or its output cannot be parsed
        """
        trace_id = current_trace_id()
        user_prompt = self._build_prompt(prompt, available_tables)

        logger.debug("Calling LLM for intent analysis", prompt_length=len(user_prompt), trace_id=trace_id)

        try:
            response = await self.llm_client.complete_with_system_prompt(INTENT_SYSTEM_PROMPT, user_prompt)
        except LLMError as e:
            raise IntentAnalysisError(f"Intent analysis failed: {e.message}") from e

        data = extract_json_object(response)
        if data is None:
            logger.error("Intent response is not JSON", response=response[:500], trace_id=trace_id)
            raise IntentAnalysisError("Failed to parse intent analysis response", details={"response": response[:500]})

        intent = self._parse_intent(data, prompt.normalized_text)

        logger.info(
            "Intent analyzed",
            category=intent.category.value,
            target=intent.target,
            needs_clarification=intent.needs_clarification,
            trace_id=trace_id,
        )
        return intent

    def _build_prompt(self, prompt: NormalizedPrompt, available_tables: Optional[List[str]]) -> str:
        lines = [f"Question ({prompt.language_tag}): {prompt.normalized_text}"]
        if available_tables:
            lines.append(f"Known tables: {', '.join(available_tables)}")
        lines.append("Respond with JSON only:")
        return "\n".join(lines)

    def _parse_intent(self, data: Dict[str, Any], question: str) -> Intent:
        category = parse_category(data.get("category") or data.get("intent"))
        target = data.get("target")
        entities = data.get("entities", data.get("relatedEntities"))
        clarification = data.get("clarification_question") or data.get("clarificationQuestion")
        needs_clarification = bool(data.get("needs_clarification", data.get("needsClarification", False)))

        return Intent(
            category=category,
            question=question,
            target=str(target) if target else None,
            extracted_entities=_as_string_list(entities),
            metrics=_as_string_list(data.get("metrics")),
            filters=_parse_filters(data.get("filters")),
            confidence=_parse_confidence(data.get("confidence")),
            needs_clarification=needs_clarification,
            clarification_question=str(clarification) if clarification else None,
        )
