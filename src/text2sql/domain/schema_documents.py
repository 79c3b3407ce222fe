"""
Schema documents stored in the similarity index.

A SchemaDocument is the searchable text form of one schema object
(table, column or foreign-key relationship). Its id is derived from the
object's identity so that re-indexing an unchanged schema upserts the
same points instead of adding new ones.

Metadata is a flat string-to-string mapping so that every index backend
can store and filter on it without type coercion.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base_enums import NODE_TYPE_RANK, NodeType


class SchemaDocument(BaseModel):
    """One searchable schema object."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier derived from schema identity")
    kind: NodeType = Field(..., description="Table, column or relationship")
    content: str = Field(..., description="Text that is embedded and shown to the LLM")
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def table_names(self) -> List[str]:
        """Tables this document belongs to (two for a relationship)."""
        if self.kind == NodeType.RELATIONSHIP:
            names = [self.metadata.get("from_table", ""), self.metadata.get("to_table", "")]
            return [n for i, n in enumerate(names) if n and n not in names[:i]]
        table_name = self.metadata.get("table_name")
        return [table_name] if table_name else []

    @property
    def kind_rank(self) -> int:
        return NODE_TYPE_RANK[self.kind]


class EmbeddingPoint(BaseModel):
    """A document together with its embedding vector, ready for upsert."""

    document: SchemaDocument
    vector: List[float]


class ScoredDocument(BaseModel):
    """A document returned by a similarity query."""

    model_config = ConfigDict(frozen=True)

    document: SchemaDocument
    score: float = Field(..., description="Cosine similarity, higher is closer")


class SchemaContext(BaseModel):
    """
    Ranked, size-bounded schema context for a single query.

    Documents are grouped per table; ``table_names`` holds the retained
    tables in descending score order and ``documents`` the flattened
    (document, score) sequence in that same table order.
    """

    documents: List[ScoredDocument] = Field(default_factory=list)
    table_names: List[str] = Field(default_factory=list)
    table_scores: Dict[str, float] = Field(default_factory=dict)

    # True when the similarity index or embedding call failed
    degraded: bool = False
    error_message: Optional[str] = None

    # "retrieval" or "full_schema_scan"
    source: str = "retrieval"

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def documents_for(self, table_name: str) -> List[SchemaDocument]:
        lowered = table_name.lower()
        return [
            item.document for item in self.documents
            if lowered in (t.lower() for t in item.document.table_names)
        ]

    def column_names(self) -> List[str]:
        """Qualified ``table.column`` names of every column document in the context."""
        names: List[str] = []
        for item in self.documents:
            doc = item.document
            if doc.kind == NodeType.COLUMN:
                names.append(f"{doc.metadata.get('table_name')}.{doc.metadata.get('column_name')}")
        return names
