"""
Schema context retrieval service.

Given a question, returns a ranked, size-bounded schema context from
the similarity index:

1. Embed the question
2. Query the top_k nearest documents across all kinds
3. Drop documents scoring below minimum_score
4. Group by referenced table (a relationship counts for both ends)
5. Order tables by best score desc; ties prefer a Table document over a
   Column over a Relationship, then table name
6. Keep the first max_context_tables tables
7. Per table: its Table document first (fetched by id when it was not
   among the hits), then its retained Column/Relationship documents

An unreachable index or embedding provider yields an empty, degraded
context instead of an error. Read-only.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from text2sql.config import RetrievalConfig
from text2sql.domain.base_enums import NodeType
from text2sql.domain.errors import EmbeddingError, VectorStoreError
from text2sql.domain.schema_documents import SchemaContext, SchemaDocument, ScoredDocument
from text2sql.infrastructure.embedding_client import EmbeddingClient
from text2sql.repositories.vector_repository import VectorRepository
from text2sql.services.schema_indexer import table_document_id
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()


def rank_tables(scored: List[ScoredDocument]) -> List[Tuple[str, float]]:
    """
    Tables ordered by (best score desc, kind rank of best document, name).

    Returns:
        (table_name, best_score) pairs
    """
    best: Dict[str, Tuple[float, int]] = {}
    for item in scored:
        for table_name in item.document.table_names:
            candidate = (item.score, item.document.kind_rank)
            current = best.get(table_name)
            if current is None or candidate[0] > current[0] or (
                candidate[0] == current[0] and candidate[1] < current[1]
            ):
                best[table_name] = candidate

    ordered = sorted(best.items(), key=lambda entry: (-entry[1][0], entry[1][1], entry[0]))
    return [(table_name, score) for table_name, (score, _) in ordered]


class SchemaContextRetriever:
    """
    Service for retrieving schema context for a question.

    Stateless apart from its collaborators; safe to share across
    concurrent queries.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_repository: VectorRepository,
        config: RetrievalConfig,
    ):
        self.embeddings = embedding_client
        self.vector_repo = vector_repository
        self.config = config

    async def retrieve(
        self,
        question: str,
        top_k: Optional[int] = None,
        minimum_score: Optional[float] = None,
        max_context_tables: Optional[int] = None,
    ) -> SchemaContext:
        """
        Retrieve a ranked schema context.

        Arguments default to the retrieval configuration.

        Returns:
            SchemaContext (empty and degraded when a collaborator failed)
        """
        trace_id = current_trace_id()
        top_k = top_k or self.config.top_k
        minimum_score = self.config.minimum_score if minimum_score is None else minimum_score
        max_context_tables = max_context_tables or self.config.max_context_tables

        try:
            vector = await self.embeddings.embed_text(question)
            results = await self.vector_repo.query(vector, top_k)
        except (EmbeddingError, VectorStoreError) as e:
            logger.warning(
                "Schema retrieval unavailable, returning empty context",
                error=e.message,
                error_type=type(e).__name__,
                trace_id=trace_id,
            )
            return SchemaContext(degraded=True, error_message=e.message)

        kept = [item for item in results if item.score >= minimum_score]
        ranked = rank_tables(kept)[:max_context_tables]

        if not ranked:
            logger.info(
                "No schema documents above threshold",
                hits=len(results),
                minimum_score=minimum_score,
                trace_id=trace_id,
            )
            return SchemaContext()

        by_table: Dict[str, List[ScoredDocument]] = defaultdict(list)
        for item in sorted(kept, key=lambda i: (-i.score, i.document.kind_rank, i.document.id)):
            for table_name in item.document.table_names:
                by_table[table_name].append(item)

        table_docs = await self._table_documents(ranked, by_table)

        documents: List[ScoredDocument] = []
        seen_ids = set()
        for table_name, score in ranked:
            table_doc = table_docs.get(table_name)
            if table_doc is not None and table_doc.document.id not in seen_ids:
                seen_ids.add(table_doc.document.id)
                documents.append(table_doc)
            for item in by_table[table_name]:
                if item.document.kind == NodeType.TABLE or item.document.id in seen_ids:
                    continue
                seen_ids.add(item.document.id)
                documents.append(item)

        context = SchemaContext(
            documents=documents,
            table_names=[table_name for table_name, _ in ranked],
            table_scores=dict(ranked),
        )

        logger.info(
            "Schema context retrieved",
            hits=len(results),
            kept=len(kept),
            tables=context.table_names,
            documents=len(documents),
            trace_id=trace_id,
        )
        return context

    async def _table_documents(
        self,
        ranked: List[Tuple[str, float]],
        by_table: Dict[str, List[ScoredDocument]],
    ) -> Dict[str, ScoredDocument]:
        """Table document per retained table; missing ones are fetched by id with the table's best score."""
        found: Dict[str, ScoredDocument] = {}
        missing: Dict[str, Tuple[str, float]] = {}

        for table_name, score in ranked:
            items = by_table[table_name]
            table_hit = next(
                (
                    i for i in items
                    if i.document.kind == NodeType.TABLE and i.document.metadata.get("table_name") == table_name
                ),
                None,
            )
            if table_hit is not None:
                found[table_name] = table_hit
                continue
            schema_name = self._schema_of(items, table_name)
            missing[table_document_id(schema_name, table_name)] = (table_name, score)

        if not missing:
            return found

        try:
            fetched: List[SchemaDocument] = await self.vector_repo.fetch(list(missing))
        except VectorStoreError as e:
            logger.warning("Could not fetch table documents", error=e.message, trace_id=current_trace_id())
            return found

        for document in fetched:
            table_name, score = missing[document.id]
            found[table_name] = ScoredDocument(document=document, score=score)
        return found

    @staticmethod
    def _schema_of(items: List[ScoredDocument], table_name: str) -> str:
        for item in items:
            schema_name = item.document.metadata.get("schema_name")
            if schema_name:
                return schema_name
        logger.debug("No schema name on documents, assuming public", table_name=table_name)
        return "public"
