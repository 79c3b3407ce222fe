"""
Question-side domain models: the normalized prompt and its classified intent.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base_enums import IntentCategory


class NormalizedPrompt(BaseModel):
    """Cleaned question text plus detected language; immutable once created."""

    model_config = ConfigDict(frozen=True)

    original_text: str
    normalized_text: str
    language_tag: str = Field(..., description="'vi' when Vietnamese diacritics are present, else 'en'")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FilterCondition(BaseModel):
    """A single filter the user asked for, e.g. city = 'Hanoi'."""

    model_config = ConfigDict(frozen=True)

    field: str
    operator: str = "="
    value: str = ""


class Intent(BaseModel):
    """Classification of a normalized question."""

    model_config = ConfigDict(frozen=True)

    category: IntentCategory
    question: str = Field(..., description="Normalized question text the intent was derived from")
    target: Optional[str] = Field(default=None, description="Main table or entity the question is about")
    extracted_entities: List[str] = Field(default_factory=list)
    metrics: List[str] = Field(default_factory=list)
    filters: List[FilterCondition] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
