"""
Pipeline state for the query orchestration state machine.

The orchestrator is the sole mutator of this state; each query gets
its own instance.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base_enums import PipelineStage
from .execution import CorrectionAttempt, ExecutionOutcome, GeneratedSql
from .intent import Intent, NormalizedPrompt
from .schema_documents import SchemaContext


@dataclass
class PipelineState:
    """
    Mutable per-query state passed through orchestrator steps.

    Tracks every intermediate artifact plus the processing trail and the
    correction counter.
    """

    # Input
    question: str
    conversation_id: Optional[str] = None

    # Current state machine position
    stage: PipelineStage = PipelineStage.NORMALIZING

    # Stage artifacts
    prompt: Optional[NormalizedPrompt] = None
    intent: Optional[Intent] = None
    context: Optional[SchemaContext] = None
    current_sql: Optional[GeneratedSql] = None
    outcome: Optional[ExecutionOutcome] = None
    answer_text: str = ""

    # Cross-stage accumulation
    processing_steps: List[str] = field(default_factory=list)
    correction_attempts: List[CorrectionAttempt] = field(default_factory=list)

    # Error tracking
    error_message: Optional[str] = None
    error_stage: Optional[PipelineStage] = None

    @property
    def correction_attempt_count(self) -> int:
        return len(self.correction_attempts)
