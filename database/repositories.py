"""
Repository layer for course file lookup and chunk storage
"""

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import CourseChunk, CourseFile, EMBEDDING_DIM
from database.schemas import ChunkCreate, ChunkMatch
from database.vector_search import VectorSearchService
from etl.error_handling import (
    DuplicateChunksError,
    NotFoundError,
    PipelineStage,
    StoreError,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = '23505'
CHUNK_UNIQUE_CONSTRAINT = 'uq_course_chunks_file_chunk_index'


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = getattr(error, 'orig', None)
    code = getattr(orig, 'sqlstate', None) or getattr(orig, 'pgcode', None)
    if code == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(error).lower()
    return CHUNK_UNIQUE_CONSTRAINT in message or 'duplicate key' in message


class CourseFileRepository:
    """Read-only access to uploaded course files"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_file(self, file_id: UUID) -> Optional[CourseFile]:
        try:
            stmt = select(CourseFile).where(CourseFile.id == file_id)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error retrieving course file {file_id}: {e}")
            raise StoreError(f"Error retrieving course file: {e}", stage=PipelineStage.LOOKUP) from e

    async def get_file_location(self, course_id: UUID, file_id: UUID) -> str:
        """
        Resolve a course file to its storage object path

        Raises:
            NotFoundError: If the file does not exist, belongs to another
                course, or has no storage path
            StoreError: On database failure
        """
        course_file = await self.get_file(file_id)

        if course_file is None or course_file.course_id != course_id:
            raise NotFoundError(
                "File not found for this course",
                details={'course_id': str(course_id), 'file_id': str(file_id)},
            )

        path = (course_file.file_path or '').strip()
        if not path:
            raise NotFoundError(
                "File has no storage path",
                details={'file_id': str(file_id)},
            )
        return path


class ChunkRepository:
    """Bulk insert and nearest-neighbour queries over course chunks"""

    def __init__(self, session: AsyncSession, dimensions: int = EMBEDDING_DIM):
        self.session = session
        self.dimensions = dimensions
        self.vector_search = VectorSearchService(session, dimensions)

    def _validate_records(self, records: Sequence[ChunkCreate]) -> None:
        for record in records:
            if len(record.embedding) != self.dimensions:
                raise StoreError(
                    f"Chunk {record.chunk_index} embedding has {len(record.embedding)} "
                    f"dimensions, expected {self.dimensions}",
                    details={'file_id': str(record.file_id), 'chunk_index': record.chunk_index},
                )

    async def insert_chunks(self, records: Sequence[ChunkCreate]) -> int:
        """
        Insert all records in one statement; either every row lands or none

        Returns:
            Number of rows inserted

        Raises:
            DuplicateChunksError: If a (file_id, chunk_index) pair already exists
            StoreError: On any other database failure
        """
        records = list(records)
        if not records:
            return 0

        self._validate_records(records)

        values: List[dict] = [
            {
                'course_id': record.course_id,
                'file_id': record.file_id,
                'chunk_index': record.chunk_index,
                'content': record.content,
                'embedding': record.embedding,
            }
            for record in records
        ]

        try:
            await self.session.execute(insert(CourseChunk).values(values))
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if _is_unique_violation(e):
                logger.info(f"Chunks already stored for file {records[0].file_id}")
                raise DuplicateChunksError(
                    "Chunks for this file are already stored",
                    details={'file_id': str(records[0].file_id)},
                ) from e
            logger.error(f"Integrity error inserting chunks: {e}")
            raise StoreError(f"Database integrity error: {e}") from e
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.error(f"Database error inserting chunks: {e}")
            raise StoreError(f"Database error: {e}") from e

        logger.info(f"Inserted {len(records)} chunks for file {records[0].file_id}")
        return len(records)

    async def query_nearest(self, course_id: UUID, query_vector: Sequence[float], k: int) -> List[ChunkMatch]:
        """Nearest chunks of one course, most similar first"""
        return await self.vector_search.nearest_chunks(course_id, query_vector, k)
