"""
Vector Embedding Service
Integrates with the Google Generative Language API for text embedding generation
"""

import asyncio
import hashlib
import logging
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp

from etl.error_handling import ProviderError, PipelineStage
from monitoring.metrics import inc as metrics_inc, observe as metrics_observe

logger = logging.getLogger(__name__)

# batchEmbedContents accepts at most this many requests per call
PROVIDER_MAX_BATCH = 100

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class EmbeddingCache:
    """
    In-process LRU cache of embeddings, keyed by model and text.
    Entries older than ``ttl_hours`` are treated as misses.
    """

    def __init__(self, max_size: int = 10000, ttl_hours: float = 24):
        self.max_size = max_size
        self.ttl_seconds = ttl_hours * 3600
        self._entries: "OrderedDict[str, Tuple[List[float], float]]" = OrderedDict()

    @staticmethod
    def _key(text: str, model: str) -> str:
        return hashlib.sha256(f"{model}:{text}".encode()).hexdigest()

    def get(self, text: str, model: str) -> Optional[List[float]]:
        key = self._key(text, model)
        entry = self._entries.get(key)
        if entry is None:
            return None

        vector, stored_at = entry
        if time.monotonic() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return vector

    def set(self, text: str, model: str, embedding: List[float]) -> None:
        key = self._key(text, model)
        self._entries[key] = (embedding, time.monotonic())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)


class VectorEmbedder:
    """
    Google embedding service with optional caching

    ``embed`` returns one vector per input text, in input order. Failures are
    raised as ProviderError and are never retried here.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "models/text-embedding-004",
        dimensions: Optional[int] = 768,
        batch_size: int = PROVIDER_MAX_BATCH,
        timeout_seconds: float = 30.0,
        enable_cache: bool = True,
        cache_ttl_hours: float = 24,
        base_url: str = DEFAULT_BASE_URL,
    ):
        if not api_key:
            raise ValueError("Google API key is required. Set GOOGLE_API_KEY environment variable.")

        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.batch_size = max(1, min(batch_size, PROVIDER_MAX_BATCH))
        self.timeout_seconds = timeout_seconds
        self.endpoint = f"{base_url.rstrip('/')}/{model}:batchEmbedContents"
        self.cache = EmbeddingCache(ttl_hours=cache_ttl_hours) if enable_cache else None
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _client(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds, connect=10),
                headers={'Content-Type': 'application/json', 'x-goog-api-key': self.api_key},
            )
        return self.session

    def _request_for(self, text: str) -> Dict[str, Any]:
        request: Dict[str, Any] = {"model": self.model, "content": {"parts": [{"text": text}]}}
        if self.dimensions:
            request["outputDimensionality"] = self.dimensions
        return request

    @staticmethod
    def _parse_vectors(data: Any) -> List[List[float]]:
        embeddings = data.get('embeddings') if isinstance(data, dict) else None
        if not isinstance(embeddings, list):
            raise ProviderError("No embedding data in API response", stage=PipelineStage.EMBED)

        vectors = []
        for item in embeddings:
            values = item.get('values') if isinstance(item, dict) else None
            if not isinstance(values, list) or not values:
                raise ProviderError("Invalid embedding format received", stage=PipelineStage.EMBED)
            try:
                vectors.append([float(v) for v in values])
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    "Non-numeric embedding values received", stage=PipelineStage.EMBED
                ) from e
        return vectors

    async def _post_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """One batchEmbedContents call for at most PROVIDER_MAX_BATCH texts"""
        payload = {"requests": [self._request_for(text) for text in texts]}
        try:
            async with self._client().post(self.endpoint, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise ProviderError(
                        f"Embedding API error {response.status}",
                        stage=PipelineStage.EMBED,
                        details={'status': response.status, 'body': body[:500]},
                    )
                try:
                    data = await response.json()
                except ValueError as e:
                    raise ProviderError(
                        "Embedding API returned a non-JSON body", stage=PipelineStage.EMBED
                    ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"Embedding request failed: {e}", stage=PipelineStage.EMBED) from e
        except asyncio.TimeoutError as e:
            raise ProviderError("Embedding request timed out", stage=PipelineStage.EMBED) from e

        return self._parse_vectors(data)

    def _check_shape(self, texts: Sequence[str], vectors: List[List[float]]) -> None:
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Embedding count mismatch: sent {len(texts)} texts, received {len(vectors)} vectors",
                stage=PipelineStage.EMBED,
            )
        if not self.dimensions:
            return
        for index, vector in enumerate(vectors):
            if len(vector) != self.dimensions:
                raise ProviderError(
                    f"Embedding {index} has {len(vector)} dimensions, expected {self.dimensions}",
                    stage=PipelineStage.EMBED,
                )

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for texts, preserving order

        Returns:
            One vector per text; vector ``i`` belongs to ``texts[i]``

        Raises:
            ProviderError: On network, quota, model or response-shape failures
        """
        texts = list(texts)
        if not texts:
            return []

        started = time.perf_counter()
        results: List[Optional[List[float]]] = [None] * len(texts)
        if self.cache is not None:
            for index, text in enumerate(texts):
                results[index] = self.cache.get(text, self.model)
        missing = [index for index, vector in enumerate(results) if vector is None]

        logger.info(
            f"Embedding {len(texts)} texts ({len(texts) - len(missing)} cached) "
            f"in batches of {self.batch_size}"
        )

        try:
            for offset in range(0, len(missing), self.batch_size):
                positions = missing[offset:offset + self.batch_size]
                batch = [texts[i] for i in positions]
                vectors = await self._post_batch(batch)
                self._check_shape(batch, vectors)
                for position, vector in zip(positions, vectors):
                    results[position] = vector
                    if self.cache is not None:
                        self.cache.set(texts[position], self.model, vector)
        except ProviderError:
            await metrics_inc("provider_errors_total", labels={"provider": "embedding"})
            raise

        await metrics_inc("embedding_texts_total", len(texts))
        await metrics_observe("embedding_seconds", time.perf_counter() - started)
        return results

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        logger.info("VectorEmbedder resources cleaned up")
