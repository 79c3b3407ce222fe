"""
Schema indexing service.

Transforms a schema snapshot into searchable documents (one per table,
column and foreign-key relationship), embeds them in rate-limited
batches and upserts them into the similarity index.

Document ids are derived from schema identity, never from insertion
order, so indexing an unchanged schema twice writes the same points.
"""

import asyncio
from typing import Awaitable, Callable, List, Tuple

from text2sql.config import SchemaIndexingConfig
from text2sql.domain.base_enums import NodeType
from text2sql.domain.errors import EmbeddingError
from text2sql.domain.responses import IndexSchemaStats
from text2sql.domain.schema_documents import EmbeddingPoint, SchemaDocument
from text2sql.domain.schema_nodes import ColumnNode, RelationshipNode, SchemaSnapshot, TableNode
from text2sql.infrastructure.embedding_client import EmbeddingClient
from text2sql.repositories.vector_repository import VectorRepository
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()

SleepFunc = Callable[[float], Awaitable[None]]


# (substrings, purpose); first match wins, "id" is matched exactly
COLUMN_PURPOSE_HEURISTICS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("name",), "name information"),
    (("email",), "email address"),
    (("phone",), "phone number"),
    (("address",), "address information"),
    (("date",), "date information"),
    (("amount", "price"), "monetary value"),
    (("quantity", "count"), "quantity or count"),
    (("status",), "status information"),
    (("description",), "description text"),
)


# -------------------------
# Document ids
# -------------------------

def table_document_id(schema_name: str, table_name: str) -> str:
    return f"table:{schema_name}.{table_name}"


def column_document_id(schema_name: str, table_name: str, column_name: str) -> str:
    return f"column:{schema_name}.{table_name}.{column_name}"


def relationship_document_id(relationship: RelationshipNode) -> str:
    return (
        f"relationship:{relationship.from_table}.{relationship.from_column}"
        f"->{relationship.to_table}.{relationship.to_column}"
    )


# -------------------------
# Document builders
# -------------------------

def guess_column_purpose(column_name: str) -> str:
    lowered = column_name.lower()
    if lowered == "id":
        return "unique identifier"
    for keywords, purpose in COLUMN_PURPOSE_HEURISTICS:
        if any(keyword in lowered for keyword in keywords):
            return purpose
    return lowered


def build_table_document(table: TableNode) -> SchemaDocument:
    """'Table customers in schema public has columns: id (integer, PK), name (text)'"""
    column_list = ", ".join(
        f"{c.column_name} ({c.data_type}{', PK' if c.is_primary_key else ''}{', FK' if c.is_foreign_key else ''})"
        for c in table.columns
    )
    return SchemaDocument(
        id=table_document_id(table.schema_name, table.table_name),
        kind=NodeType.TABLE,
        content=f"Table {table.table_name} in schema {table.schema_name} has columns: {column_list}",
        metadata={
            "node_type": NodeType.TABLE.value,
            "schema_name": table.schema_name,
            "table_name": table.table_name,
            "column_count": str(len(table.columns)),
        },
    )


def build_column_document(table: TableNode, column: ColumnNode) -> SchemaDocument:
    pk_info = " (Primary Key)" if column.is_primary_key else ""
    fk_info = " (Foreign Key)" if column.is_foreign_key else ""
    return SchemaDocument(
        id=column_document_id(table.schema_name, table.table_name, column.column_name),
        kind=NodeType.COLUMN,
        content=(
            f"Column {column.column_name} in table {table.table_name} is of type "
            f"{column.data_type}{pk_info}{fk_info} and stores {guess_column_purpose(column.column_name)}"
        ),
        metadata={
            "node_type": NodeType.COLUMN.value,
            "schema_name": table.schema_name,
            "table_name": table.table_name,
            "column_name": column.column_name,
            "data_type": column.data_type,
            "is_primary_key": str(column.is_primary_key).lower(),
            "is_foreign_key": str(column.is_foreign_key).lower(),
        },
    )


def build_relationship_document(relationship: RelationshipNode, schema_name: str) -> SchemaDocument:
    return SchemaDocument(
        id=relationship_document_id(relationship),
        kind=NodeType.RELATIONSHIP,
        content=(
            f"{relationship.from_table}.{relationship.from_column} references "
            f"{relationship.to_table}.{relationship.to_column}, linking "
            f"{relationship.from_table.lower()} to {relationship.to_table.lower()}"
        ),
        metadata={
            "node_type": NodeType.RELATIONSHIP.value,
            "schema_name": relationship.schema_name or schema_name,
            "from_table": relationship.from_table,
            "from_column": relationship.from_column,
            "to_table": relationship.to_table,
            "to_column": relationship.to_column,
        },
    )


def build_documents(snapshot: SchemaSnapshot) -> List[SchemaDocument]:
    """
    One document per table, column and relationship.

    Order: tables (each followed by its columns), then relationships.
    Duplicate ids (e.g. a composite FK listed twice) are dropped.
    """
    documents: List[SchemaDocument] = []
    seen = set()
    default_schema = snapshot.tables[0].schema_name if snapshot.tables else "public"

    def _add(document: SchemaDocument) -> None:
        if document.id not in seen:
            seen.add(document.id)
            documents.append(document)

    for table in snapshot.tables:
        _add(build_table_document(table))
        for column in table.columns:
            _add(build_column_document(table, column))

    for relationship in snapshot.relationships:
        _add(build_relationship_document(relationship, default_schema))

    return documents


class SchemaIndexer:
    """
    Service that indexes a schema snapshot into the similarity index.

    Embedding calls are strictly sequential with a mandatory pause
    between them. Concurrent index_schema calls in one process are
    serialized by a lock.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_repository: VectorRepository,
        config: SchemaIndexingConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize schema indexer.

        Args:
            embedding_client: Client used to embed document text
            vector_repository: Similarity index to write to
            config: Batch size and inter-call delay
            sleep: Awaitable sleep, replaceable in tests
        """
        self.embeddings = embedding_client
        self.vector_repo = vector_repository
        self.config = config
        self._sleep = sleep
        self._lock = asyncio.Lock()

        logger.info(
            "SchemaIndexer initialized",
            batch_size=config.batch_size,
            inter_call_delay_seconds=config.inter_call_delay_seconds,
            trace_id=current_trace_id(),
        )

    async def index_schema(self, snapshot: SchemaSnapshot) -> IndexSchemaStats:
        """
        Index every table, column and relationship of a snapshot.

        Steps:
        1. Build documents (deterministic ids and text)
        2. Embed in batches of ``batch_size``, pausing between calls
        3. Ensure the collection matches the embedding dimension
           (dropped and recreated on mismatch)
        4. Upsert all points in one transaction

        Returns:
            IndexSchemaStats with per-kind counts

        Raises:
            EmbeddingError: If embedding fails or vector lengths disagree
            VectorStoreError: If the similarity index cannot be written
        """
        async with self._lock:
            return await self._index_schema_locked(snapshot)

    async def _index_schema_locked(self, snapshot: SchemaSnapshot) -> IndexSchemaStats:
        trace_id = current_trace_id()
        documents = build_documents(snapshot)

        counts = {kind: 0 for kind in NodeType}
        for document in documents:
            counts[document.kind] += 1

        logger.info(
            "Starting schema indexing",
            database=snapshot.database_name,
            tables=counts[NodeType.TABLE],
            columns=counts[NodeType.COLUMN],
            relationships=counts[NodeType.RELATIONSHIP],
            trace_id=trace_id,
        )

        if not documents:
            logger.warning("Schema snapshot has no tables, nothing to index", trace_id=trace_id)
            return IndexSchemaStats(
                collection=self.vector_repo.collection_name,
                tables_indexed=0,
                columns_indexed=0,
                relationships_indexed=0,
                total_documents=0,
            )

        vectors = await self._embed_documents(documents)

        dimension = len(vectors[0])
        if any(len(vector) != dimension for vector in vectors):
            raise EmbeddingError("Embedding model returned vectors of different lengths")

        recreated = await self.vector_repo.ensure_collection(dimension)
        points = [EmbeddingPoint(document=d, vector=v) for d, v in zip(documents, vectors)]
        written = await self.vector_repo.upsert(points)

        stats = IndexSchemaStats(
            collection=self.vector_repo.collection_name,
            tables_indexed=counts[NodeType.TABLE],
            columns_indexed=counts[NodeType.COLUMN],
            relationships_indexed=counts[NodeType.RELATIONSHIP],
            total_documents=written,
            dimension=dimension,
            collection_recreated=recreated,
        )

        logger.info(
            "Schema indexing complete",
            collection=stats.collection,
            total_documents=stats.total_documents,
            dimension=dimension,
            collection_recreated=recreated,
            trace_id=trace_id,
        )
        return stats

    async def _embed_documents(self, documents: List[SchemaDocument]) -> List[List[float]]:
        trace_id = current_trace_id()
        batch_size = self.config.batch_size
        vectors: List[List[float]] = []

        for batch_number, start in enumerate(range(0, len(documents), batch_size), start=1):
            if batch_number > 1:
                await self._sleep(self.config.inter_call_delay_seconds)

            batch = documents[start:start + batch_size]
            logger.debug(
                f"Embedding batch {batch_number}",
                batch_size=len(batch),
                progress=f"{start + len(batch)}/{len(documents)}",
                trace_id=trace_id,
            )
            batch_vectors = await self.embeddings.embed_batch([d.content for d in batch])
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding count mismatch in batch {batch_number}: "
                    f"sent {len(batch)}, got {len(batch_vectors)}"
                )
            vectors.extend(batch_vectors)

        return vectors

    async def clear_index(self) -> bool:
        """
        Remove the backing collection entirely.

        Safe when the collection does not exist.

        Returns:
            True if a collection was dropped
        """
        async with self._lock:
            existed = await self.vector_repo.delete_collection()
        logger.info("Schema index cleared", collection=self.vector_repo.collection_name, existed=existed)
        return existed
