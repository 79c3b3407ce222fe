"""
Vector repository: the pgvector similarity index.

One PostgreSQL table per collection holds schema documents and their
embeddings. Document ids are stable strings, so indexing is an upsert.
Uses a shared DatabaseClient for connection pooling.
"""

import json
import re
from typing import List, Optional, Sequence

from text2sql.config import VectorStoreConfig
from text2sql.config_constants import PGVECTOR_OPS_MAP, DistanceStrategy
from text2sql.domain.errors import VectorStoreError
from text2sql.domain.schema_documents import EmbeddingPoint, SchemaDocument, ScoredDocument
from text2sql.infrastructure.database_client import DatabaseClient
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()


# PostgreSQL identifier length limit
MAX_IDENTIFIER_LENGTH = 63

# pgvector HNSW indexes support at most this many dimensions
HNSW_MAX_DIMENSIONS = 2000


def build_collection_name(base_name: str, database_name: str) -> str:
    """
    Collection (table) name scoped to one target database.

    Lowercased, non [a-z0-9_] characters replaced by "_", truncated to
    PostgreSQL's identifier limit. The result is safe to interpolate.
    """
    raw = f"{base_name}_{database_name}".lower()
    sanitized = re.sub(r"[^a-z0-9_]+", "_", raw).strip("_")
    if not sanitized or sanitized[0].isdigit():
        sanitized = f"c_{sanitized}"
    return sanitized[:MAX_IDENTIFIER_LENGTH]


def to_vector_literal(vector: Sequence[float]) -> str:
    """pgvector text format: '[0.1,0.2,0.3]'."""
    return f"[{','.join(str(float(x)) for x in vector)}]"


class VectorRepository:
    """
    Similarity index over pgvector.

    Handles setup (extension, table, HNSW index) and runtime operations
    (upsert, query, fetch, delete).

    Usage:
        repo = VectorRepository(db_client, config, "schema_embeddings_shop")
        recreated = await repo.ensure_collection(1536)
        await repo.upsert(points)
        results = await repo.query(vector, top_k=5)
    """

    def __init__(
        self,
        db_client: DatabaseClient,
        config: VectorStoreConfig,
        collection_name: str,
    ):
        """
        Initialize vector repository.

        Args:
            db_client: Shared database client for the embeddings database
            config: Vector store configuration
            collection_name: Sanitized table name (see build_collection_name)
        """
        self.db = db_client
        self.config = config
        self.collection_name = collection_name

        logger.info(
            "VectorRepository initialized",
            collection=collection_name,
            use_hnsw=config.use_hnsw,
            distance_strategy=str(config.distance_strategy),
            trace_id=current_trace_id(),
        )

    async def ensure_collection(self, dimension: int) -> bool:
        """
        Make sure the collection exists with the given vector dimension.

        Drops and recreates the table when the stored dimension differs.

        Returns:
            True if the collection was (re)created, False if it already matched

        Raises:
            VectorStoreError: If setup fails
        """
        if dimension < 1:
            raise VectorStoreError(f"Vector dimension must be >= 1, got {dimension}")

        trace_id = current_trace_id()

        try:
            async with self.db.acquire_connection() as conn:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector;")

                current_dimension = await self._stored_dimension(conn)
                if current_dimension == dimension:
                    logger.info(
                        "Collection already matches dimension",
                        collection=self.collection_name,
                        dimension=dimension,
                        trace_id=trace_id,
                    )
                    return False

                async with conn.transaction():
                    if current_dimension is not None:
                        logger.warning(
                            "Vector dimension changed, recreating collection",
                            collection=self.collection_name,
                            stored_dimension=current_dimension,
                            new_dimension=dimension,
                            trace_id=trace_id,
                        )
                        await conn.execute(f"DROP TABLE IF EXISTS {self.collection_name} CASCADE;")

                    await conn.execute(
                        f"""
                        CREATE TABLE {self.collection_name} (
                            id TEXT PRIMARY KEY,
                            kind TEXT NOT NULL CHECK (kind IN ('table', 'column', 'relationship')),
                            content TEXT NOT NULL,
                            embedding vector({dimension}) NOT NULL,
                            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                        );
                        """
                    )
                    await conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{self.collection_name}_kind "
                        f"ON {self.collection_name}(kind);"
                    )
                    if self.config.use_hnsw:
                        await self._create_hnsw_index(conn, dimension)

            logger.info(
                "Collection created",
                collection=self.collection_name,
                dimension=dimension,
                trace_id=trace_id,
            )
            return True

        except VectorStoreError:
            raise
        except Exception as e:
            logger.error(
                "Failed to ensure collection",
                collection=self.collection_name,
                error=str(e),
                trace_id=trace_id,
                exc_info=True,
            )
            raise VectorStoreError(f"Failed to ensure collection: {e}") from e

    async def upsert(self, points: List[EmbeddingPoint]) -> int:
        """
        Insert or update points in one transaction.

        Returns:
            Number of points written

        Raises:
            VectorStoreError: If the write fails
        """
        if not points:
            return 0

        trace_id = current_trace_id()
        sql = f"""
            INSERT INTO {self.collection_name} (id, kind, content, embedding, metadata)
            VALUES ($1, $2, $3, $4::vector, $5::jsonb)
            ON CONFLICT (id) DO UPDATE SET
                kind = EXCLUDED.kind,
                content = EXCLUDED.content,
                embedding = EXCLUDED.embedding,
                metadata = EXCLUDED.metadata,
                updated_at = CURRENT_TIMESTAMP;
        """
        records = [
            (
                point.document.id,
                point.document.kind.value,
                point.document.content,
                to_vector_literal(point.vector),
                json.dumps(point.document.metadata, sort_keys=True),
            )
            for point in points
        ]

        try:
            async with self.db.acquire_connection() as conn:
                async with conn.transaction():
                    await conn.executemany(sql, records)
        except Exception as e:
            logger.error(
                "Failed to upsert points",
                collection=self.collection_name,
                count=len(points),
                error=str(e),
                trace_id=trace_id,
                exc_info=True,
            )
            raise VectorStoreError(f"Failed to upsert points: {e}") from e

        logger.info("Points upserted", collection=self.collection_name, count=len(points), trace_id=trace_id)
        return len(points)

    async def query(self, vector: Sequence[float], top_k: int) -> List[ScoredDocument]:
        """
        Return the ``top_k`` nearest documents with similarity scores.

        A missing collection yields an empty list.

        Raises:
            VectorStoreError: If the search fails
        """
        if top_k < 1:
            raise VectorStoreError(f"top_k must be >= 1, got {top_k}")

        trace_id = current_trace_id()
        distance_operator = self._get_distance_operator()

        try:
            async with self.db.acquire_connection() as conn:
                if await self._stored_dimension(conn) is None:
                    logger.info("Collection does not exist, nothing to search", collection=self.collection_name, trace_id=trace_id)
                    return []

                rows = await conn.fetch(
                    f"""
                    SELECT id, kind, content, metadata,
                        embedding {distance_operator} $1::vector AS distance
                    FROM {self.collection_name}
                    ORDER BY distance ASC
                    LIMIT $2;
                    """,
                    to_vector_literal(vector),
                    top_k,
                )
        except Exception as e:
            logger.error(
                "Failed to search similar vectors",
                collection=self.collection_name,
                error=str(e),
                trace_id=trace_id,
                exc_info=True,
            )
            raise VectorStoreError(f"Failed to search similar vectors: {e}") from e

        results = [
            ScoredDocument(
                document=self._row_to_document(row),
                score=self._distance_to_similarity(float(row["distance"])),
            )
            for row in rows
        ]

        logger.info("Similar vectors found", result_count=len(results), trace_id=trace_id)
        return results

    async def fetch(self, ids: List[str]) -> List[SchemaDocument]:
        """
        Fetch documents by id (missing ids are skipped).

        Raises:
            VectorStoreError: If the lookup fails
        """
        if not ids:
            return []

        try:
            async with self.db.acquire_connection() as conn:
                if await self._stored_dimension(conn) is None:
                    return []
                rows = await conn.fetch(
                    f"SELECT id, kind, content, metadata FROM {self.collection_name} "
                    f"WHERE id = ANY($1::text[]);",
                    list(ids),
                )
        except Exception as e:
            logger.error("Failed to fetch documents", error=str(e), trace_id=current_trace_id())
            raise VectorStoreError(f"Failed to fetch documents: {e}") from e

        by_id = {row["id"]: self._row_to_document(row) for row in rows}
        return [by_id[doc_id] for doc_id in ids if doc_id in by_id]

    async def collection_exists(self) -> bool:
        try:
            async with self.db.acquire_connection() as conn:
                return await self._stored_dimension(conn) is not None
        except Exception as e:
            raise VectorStoreError(f"Failed to check collection: {e}") from e

    async def delete_collection(self) -> bool:
        """
        Drop the collection table.

        Returns:
            True if the collection existed

        Raises:
            VectorStoreError: If the drop fails
        """
        trace_id = current_trace_id()
        try:
            async with self.db.acquire_connection() as conn:
                existed = await self._stored_dimension(conn) is not None
                await conn.execute(f"DROP TABLE IF EXISTS {self.collection_name} CASCADE;")
        except Exception as e:
            logger.error(
                "Failed to drop collection",
                collection=self.collection_name,
                error=str(e),
                trace_id=trace_id,
                exc_info=True,
            )
            raise VectorStoreError(f"Failed to drop collection: {e}") from e

        logger.info("Collection dropped", collection=self.collection_name, existed=existed, trace_id=trace_id)
        return existed

    async def count(self) -> int:
        try:
            async with self.db.acquire_connection() as conn:
                if await self._stored_dimension(conn) is None:
                    return 0
                return await conn.fetchval(f"SELECT COUNT(*) FROM {self.collection_name};")
        except Exception as e:
            raise VectorStoreError(f"Failed to count documents: {e}") from e

    # -------------------------
    # Private helper methods
    # -------------------------

    async def _stored_dimension(self, conn) -> Optional[int]:
        """Declared dimension of the embedding column; None when the table is absent."""
        # pgvector stores the dimension as the column's type modifier
        return await conn.fetchval(
            """
            SELECT a.atttypmod
            FROM pg_attribute a
            WHERE a.attrelid = to_regclass($1)
                AND a.attname = 'embedding'
                AND NOT a.attisdropped;
            """,
            self.collection_name,
        )

    async def _create_hnsw_index(self, conn, dimension: int) -> None:
        if dimension > HNSW_MAX_DIMENSIONS:
            logger.warning(
                "Dimension too large for HNSW, using sequential scan",
                dimension=dimension,
                max_dimensions=HNSW_MAX_DIMENSIONS,
            )
            return

        ops_class = PGVECTOR_OPS_MAP[self.config.distance_strategy]
        await conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {self.collection_name}_hnsw_idx
            ON {self.collection_name}
            USING hnsw (embedding {ops_class})
            WITH (m = {self.config.hnsw_m}, ef_construction = {self.config.hnsw_ef_construction});
            """
        )
        logger.info("HNSW index created", collection=self.collection_name)

    @staticmethod
    def _row_to_document(row) -> SchemaDocument:
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return SchemaDocument(
            id=row["id"],
            kind=row["kind"],
            content=row["content"],
            metadata={str(k): str(v) for k, v in (metadata or {}).items()},
        )

    def _get_distance_operator(self) -> str:
        """
        Get the pgvector distance operator for the configured strategy.

        Returns:
            SQL operator string (e.g., '<->', '<=>', '<#>')
        """
        if self.config.distance_strategy == DistanceStrategy.COSINE:
            return "<=>"  # Cosine distance
        elif self.config.distance_strategy == DistanceStrategy.EUCLIDEAN:
            return "<->"  # L2 distance
        else:  # MAX_INNER_PRODUCT
            return "<#>"  # Negative inner product

    def _distance_to_similarity(self, distance: float) -> float:
        """
        Convert distance to similarity score.

        For cosine distance: similarity = 1 - distance
        For L2 distance: similarity = 1 / (1 + distance)
        For inner product: similarity = -distance (pgvector returns negative)
        """
        if self.config.distance_strategy == DistanceStrategy.COSINE:
            return 1.0 - distance
        elif self.config.distance_strategy == DistanceStrategy.EUCLIDEAN:
            return 1.0 / (1.0 + distance)
        else:  # MAX_INNER_PRODUCT
            return -distance
