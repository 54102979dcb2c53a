"""
Vector search functionality using pgvector for course-scoped semantic search
"""

import logging
import time
from typing import List, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import CourseChunk
from database.schemas import ChunkMatch
from etl.error_handling import InputValidationError, PipelineStage, StoreError
from monitoring.metrics import observe as metrics_observe, inc as metrics_inc

logger = logging.getLogger(__name__)
perf_logger = structlog.get_logger("vector_search_performance")


def build_nearest_query(course_id: UUID, query_vector: Sequence[float], k: int):
    """Build the similarity query: nearest chunks of one course by cosine distance"""
    distance_expr = CourseChunk.embedding.cosine_distance(list(query_vector))
    similarity_expr = (1 - distance_expr).label('similarity')

    return (
        select(
            CourseChunk.id,
            CourseChunk.course_id,
            CourseChunk.file_id,
            CourseChunk.chunk_index,
            CourseChunk.content,
            similarity_expr,
        )
        .where(CourseChunk.course_id == course_id)
        .order_by(distance_expr.asc(), CourseChunk.chunk_index.asc())
        .limit(k)
    )


class VectorSearchService:
    """Service for performing vector similarity searches with pgvector"""

    def __init__(self, session: AsyncSession, dimensions: int):
        self.session = session
        self.dimensions = dimensions

    async def nearest_chunks(
        self,
        course_id: UUID,
        query_vector: Sequence[float],
        k: int
    ) -> List[ChunkMatch]:
        """
        Return the ``k`` chunks of ``course_id`` closest to ``query_vector``

        Results are ordered by descending similarity (1 - cosine distance).

        Raises:
            InputValidationError: If k is smaller than 1
            StoreError: On dimension mismatch or database failure
        """
        if k < 1:
            raise InputValidationError(f"k must be at least 1, got {k}")
        if len(query_vector) != self.dimensions:
            raise StoreError(
                f"Query vector must be {self.dimensions}-dimensional, got {len(query_vector)}",
                stage=PipelineStage.VECTOR_SEARCH,
            )

        start_time = time.perf_counter()
        stmt = build_nearest_query(course_id, query_vector, k)

        try:
            result = await self.session.execute(stmt)
            rows = result.fetchall()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database error in similarity search: {e}")
            await metrics_inc("vector_search_errors_total")
            raise StoreError(
                f"Vector search failed: {e}", stage=PipelineStage.VECTOR_SEARCH
            ) from e

        matches = [
            ChunkMatch(
                chunk_id=row.id,
                course_id=row.course_id,
                file_id=row.file_id,
                chunk_index=row.chunk_index,
                content=row.content,
                similarity=float(row.similarity),
            )
            for row in rows
        ]

        query_time_ms = (time.perf_counter() - start_time) * 1000
        await metrics_observe("vector_search_query_ms", query_time_ms)
        perf_logger.info(
            "Vector search completed",
            course_id=str(course_id),
            k=k,
            results=len(matches),
            query_time_ms=round(query_time_ms, 2),
        )
        return matches
