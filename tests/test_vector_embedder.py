"""
Tests for VectorEmbedder batching, ordering, caching and error handling.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from etl.error_handling import PipelineStage, ProviderError
from etl.vector_embedder import EmbeddingCache, VectorEmbedder
from monitoring.metrics import MetricsRegistry


def _session_returning(response):
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=context)
    return session


class TestVectorEmbedder:

    @pytest.fixture
    def embedder(self):
        return VectorEmbedder(api_key="test_api_key", dimensions=2, batch_size=2, enable_cache=False)

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            VectorEmbedder(api_key="")

    def test_batch_size_capped_at_provider_limit(self):
        embedder = VectorEmbedder(api_key="k", batch_size=500)
        assert embedder.batch_size == 100

    def test_payload_shape(self, embedder):
        request = embedder._request_for("a")
        assert request["content"]["parts"][0]["text"] == "a"
        assert request["outputDimensionality"] == 2
        assert request["model"] == "models/text-embedding-004"

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self, embedder):
        with patch.object(embedder, "_post_batch", new=AsyncMock()) as post:
            assert await embedder.embed([]) == []
            post.assert_not_called()

    @pytest.mark.asyncio
    async def test_batches_preserve_order(self, embedder):
        texts = ["one", "three", "fiver", "sixsix", "z"]
        calls = []

        async def fake_post(batch):
            calls.append(list(batch))
            return [[float(len(t)), 0.0] for t in batch]

        with patch.object(embedder, "_post_batch", side_effect=fake_post):
            vectors = await embedder.embed(texts)

        assert calls == [["one", "three"], ["fiver", "sixsix"], ["z"]]
        assert [v[0] for v in vectors] == [3.0, 5.0, 5.0, 6.0, 1.0]
        assert MetricsRegistry.instance().counter_value("embedding_texts_total") == 5

    @pytest.mark.asyncio
    async def test_count_mismatch_raises(self, embedder):
        with patch.object(embedder, "_post_batch", new=AsyncMock(return_value=[[1.0, 2.0]])):
            with pytest.raises(ProviderError) as exc_info:
                await embedder.embed(["a", "b"])
        assert exc_info.value.stage == PipelineStage.EMBED

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self, embedder):
        with patch.object(embedder, "_post_batch", new=AsyncMock(return_value=[[1.0, 2.0, 3.0]])):
            with pytest.raises(ProviderError):
                await embedder.embed(["a"])

    @pytest.mark.asyncio
    async def test_provider_error_counted(self, embedder):
        with patch.object(embedder, "_post_batch", new=AsyncMock(side_effect=ProviderError("quota"))):
            with pytest.raises(ProviderError):
                await embedder.embed(["a"])
        registry = MetricsRegistry.instance()
        assert registry.counter_value("provider_errors_total", {"provider": "embedding"}) == 1

    @pytest.mark.asyncio
    async def test_cache_hits_spliced_in_place(self):
        embedder = VectorEmbedder(api_key="k", dimensions=2, batch_size=10, enable_cache=True)
        embedder.cache.set("cached", embedder.model, [9.0, 9.0])
        post = AsyncMock(side_effect=lambda batch: [[float(len(t)), 0.0] for t in batch])

        with patch.object(embedder, "_post_batch", new=post):
            vectors = await embedder.embed(["ab", "cached", "abcd"])

        post.assert_awaited_once_with(["ab", "abcd"])
        assert vectors == [[2.0, 0.0], [9.0, 9.0], [4.0, 0.0]]

    @pytest.mark.asyncio
    async def test_post_batch_non_200(self, embedder):
        response = MagicMock()
        response.status = 429
        response.text = AsyncMock(return_value="quota exceeded")
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.closed = False
        session.post = MagicMock(return_value=context)
        embedder.session = session

        with pytest.raises(ProviderError) as exc_info:
            await embedder._post_batch(["a"])
        assert exc_info.value.details["status"] == 429

    @pytest.mark.asyncio
    async def test_post_batch_parses_values(self, embedder):
        response = MagicMock()
        response.status = 200
        response.json = AsyncMock(return_value={"embeddings": [{"values": [0.1, 0.2]}, {"values": [0.3, 0.4]}]})
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.closed = False
        session.post = MagicMock(return_value=context)
        embedder.session = session

        vectors = await embedder._post_batch(["a", "b"])
        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        url = session.post.call_args[0][0]
        assert url.endswith("models/text-embedding-004:batchEmbedContents")

    @pytest.mark.asyncio
    async def test_non_json_body_is_provider_error(self, embedder):
        response = MagicMock()
        response.status = 200
        response.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>", 0))
        embedder.session = _session_returning(response)

        with pytest.raises(ProviderError) as exc_info:
            await embedder.embed(["a"])

        assert exc_info.value.stage == PipelineStage.EMBED
        registry = MetricsRegistry.instance()
        assert registry.counter_value("provider_errors_total", {"provider": "embedding"}) == 1

    @pytest.mark.asyncio
    async def test_non_numeric_values_are_provider_error(self, embedder):
        response = MagicMock()
        response.status = 200
        response.json = AsyncMock(return_value={"embeddings": [{"values": ["x", None]}]})
        embedder.session = _session_returning(response)

        with pytest.raises(ProviderError) as exc_info:
            await embedder.embed(["a"])

        assert exc_info.value.stage == PipelineStage.EMBED
        registry = MetricsRegistry.instance()
        assert registry.counter_value("provider_errors_total", {"provider": "embedding"}) == 1


class TestEmbeddingCache:

    def test_set_get_and_eviction(self):
        cache = EmbeddingCache(max_size=2)
        cache.set("a", "m", [1.0])
        cache.set("b", "m", [2.0])
        assert cache.get("a", "m") == [1.0]
        cache.set("c", "m", [3.0])
        assert cache.size() == 2
        assert cache.get("c", "m") == [3.0]
        assert cache.get("b", "m") is None
        assert cache.get("a", "m") == [1.0]

    def test_model_is_part_of_key(self):
        cache = EmbeddingCache()
        cache.set("a", "m1", [1.0])
        assert cache.get("a", "m2") is None

    def test_expired_entries_are_misses(self):
        cache = EmbeddingCache(ttl_hours=0)
        cache.set("a", "m", [1.0])
        with patch("etl.vector_embedder.time.monotonic", return_value=10**9):
            assert cache.get("a", "m") is None
        assert cache.size() == 0
