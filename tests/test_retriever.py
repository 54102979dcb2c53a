"""
Tests for course-scoped retrieval.
"""

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from database.schemas import ChunkMatch
from etl.error_handling import InputValidationError, PipelineStage, ProviderError, StoreError
from rag.retriever import Retriever

from tests.conftest import FakeEmbedder


class TestRetriever:

    @pytest.mark.asyncio
    async def test_results_are_course_scoped(self, embedder, chunk_store):
        course_a, course_b = uuid4(), uuid4()
        chunk_store.add(course_a, uuid4(), 0, "Photosynthesis occurs in chloroplasts.")
        chunk_store.add(course_b, uuid4(), 0, "Photosynthesis occurs in chloroplasts, course B copy.")
        chunk_store.add(course_b, uuid4(), 0, "Light energy drives photosynthesis.")

        matches = await Retriever(embedder, chunk_store).retrieve(course_a, "Where does photosynthesis occur?", k=6)

        assert len(matches) == 1
        assert all(m.course_id == course_a for m in matches)

    @pytest.mark.asyncio
    async def test_ordered_by_similarity_and_limited(self, embedder, chunk_store, course_id):
        for index, text in enumerate([
            "Light energy is converted to chemical energy.",
            "Photosynthesis occurs in chloroplasts.",
            "Mitochondria release stored energy.",
            "Unrelated text about grammar.",
        ]):
            chunk_store.add(course_id, uuid4(), index, text)

        matches = await Retriever(embedder, chunk_store).retrieve(course_id, "Where does photosynthesis occur?", k=3)

        assert len(matches) == 3
        similarities = [m.similarity for m in matches]
        assert similarities == sorted(similarities, reverse=True)
        assert matches[0].content == "Photosynthesis occurs in chloroplasts."
        assert embedder.calls == [["Where does photosynthesis occur?"]]

    @pytest.mark.asyncio
    async def test_unsorted_store_results_are_sorted(self, course_id):
        low = ChunkMatch(chunk_id=uuid4(), course_id=course_id, file_id=uuid4(),
                         chunk_index=0, content="low", similarity=0.2)
        high = ChunkMatch(chunk_id=uuid4(), course_id=course_id, file_id=uuid4(),
                          chunk_index=1, content="high", similarity=0.9)
        store = AsyncMock()
        store.query_nearest = AsyncMock(return_value=[low, high])

        matches = await Retriever(FakeEmbedder(), store).retrieve(course_id, "question", k=2)

        assert [m.content for m in matches] == ["high", "low"]

    @pytest.mark.asyncio
    async def test_empty_course_returns_empty_list(self, embedder, chunk_store, course_id):
        assert await Retriever(embedder, chunk_store).retrieve(course_id, "anything?") == []

    @pytest.mark.asyncio
    async def test_invalid_k(self, embedder, chunk_store, course_id):
        with pytest.raises(InputValidationError):
            await Retriever(embedder, chunk_store).retrieve(course_id, "question", k=0)
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_embedding_error_propagates(self, chunk_store, course_id):
        retriever = Retriever(FakeEmbedder(error=ProviderError("down")), chunk_store)
        with pytest.raises(ProviderError) as exc_info:
            await retriever.retrieve(course_id, "question")
        assert exc_info.value.stage == PipelineStage.EMBED

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, embedder, course_id):
        store = AsyncMock()
        store.query_nearest = AsyncMock(
            side_effect=StoreError("db down", stage=PipelineStage.VECTOR_SEARCH)
        )
        with pytest.raises(StoreError) as exc_info:
            await Retriever(embedder, store).retrieve(course_id, "question")
        assert exc_info.value.stage == PipelineStage.VECTOR_SEARCH
