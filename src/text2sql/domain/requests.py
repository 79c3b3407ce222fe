"""
API request models for the text-to-SQL agent.

These models define the structure for all incoming API requests,
ensuring type safety and validation at API boundaries.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QueryRequest(BaseModel):
    """Request model for answering a natural-language question."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: str = Field(
        ...,
        description="Natural-language question about the connected database. "
                    "Example: 'Có bao nhiêu khách hàng ở Hà Nội?'",
        min_length=1,
        max_length=4000,
    )
    conversation_id: Optional[str] = Field(
        default=None,
        description="Optional conversation identifier, echoed into logs for correlation",
        max_length=200,
    )

