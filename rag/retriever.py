"""
Course-scoped retrieval: embed the question and fetch the nearest chunks.
"""

import logging
import time
from typing import List
from uuid import UUID

from database.schemas import ChunkMatch
from etl.error_handling import InputValidationError
from monitoring.metrics import observe as metrics_observe
from rag.interfaces import ChunkStore, Embedder

DEFAULT_MATCH_COUNT = 6


class Retriever:
    def __init__(self, embedder: Embedder, chunk_store: ChunkStore):
        self.logger = logging.getLogger(__name__)
        self.embedder = embedder
        self.chunk_store = chunk_store

    async def retrieve(self, course_id: UUID, question: str, k: int = DEFAULT_MATCH_COUNT) -> List[ChunkMatch]:
        """
        Find the ``k`` chunks of ``course_id`` most similar to ``question``

        An empty list is a valid result. Matches are returned with
        non-increasing similarity.

        Raises:
            InputValidationError: If k is smaller than 1 or the question is blank
            ProviderError: If the question cannot be embedded
            StoreError: If the similarity query fails
        """
        if k < 1:
            raise InputValidationError(f"matchCount must be at least 1, got {k}")
        if not question or not question.strip():
            raise InputValidationError("Question cannot be empty")

        start_time = time.perf_counter()
        vectors = await self.embedder.embed([question])
        matches = await self.chunk_store.query_nearest(course_id, vectors[0], k)

        # Stable sort keeps the store's tie order
        matches = sorted(matches, key=lambda m: m.similarity, reverse=True)

        await metrics_observe("retrieval_seconds", time.perf_counter() - start_time)
        self.logger.info(f"Retrieved {len(matches)} chunks for course {course_id} (k={k})")
        return matches
