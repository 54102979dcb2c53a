"""
Shared fixtures and deterministic fakes for the pipeline tests
"""

import math
import re
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

import pytest

from database.schemas import ChunkCreate, ChunkMatch
from etl.error_handling import (
    DuplicateChunksError,
    FetchError,
    NotFoundError,
    PipelineError,
    ProviderError,
)
from monitoring.metrics import MetricsRegistry

# Words mapped onto a few concept axes; anything else lands on the last axis
CONCEPTS = {
    "where": 0, "occur": 0, "occurs": 0, "located": 0, "chloroplasts": 0, "in": 0,
    "energy": 1, "light": 1, "chemical": 1, "converts": 1,
    "photosynthesis": 2,
}
FAKE_DIM = 4


def keyword_vector(text: str) -> List[float]:
    vector = [0.0] * FAKE_DIM
    for word in re.findall(r"[a-z]+", text.lower()):
        vector[CONCEPTS.get(word, FAKE_DIM - 1)] += 1.0
    if not any(vector):
        vector[FAKE_DIM - 1] = 1.0
    return vector


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbedder:
    """Concept-keyword embedder; records every call"""

    def __init__(self, error: Optional[PipelineError] = None, drop_last: bool = False):
        self.calls: List[List[str]] = []
        self.error = error
        self.drop_last = drop_last

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.error:
            raise self.error
        vectors = [keyword_vector(t) for t in texts]
        return vectors[:-1] if self.drop_last else vectors


class FakeChunkStore:
    """In-memory chunk table with the (file_id, chunk_index) uniqueness rule"""

    def __init__(self, insert_error: Optional[PipelineError] = None):
        self.rows: Dict[Tuple[UUID, int], dict] = {}
        self.insert_error = insert_error
        self.insert_calls = 0
        self.queries: List[Tuple[UUID, int]] = []

    async def insert_chunks(self, records: Sequence[ChunkCreate]) -> int:
        self.insert_calls += 1
        if self.insert_error:
            raise self.insert_error
        keys = [(r.file_id, r.chunk_index) for r in records]
        if any(key in self.rows for key in keys):
            raise DuplicateChunksError("Chunks for this file are already stored")
        for record in records:
            self.rows[(record.file_id, record.chunk_index)] = {
                "id": uuid4(),
                "course_id": record.course_id,
                "file_id": record.file_id,
                "chunk_index": record.chunk_index,
                "content": record.content,
                "embedding": list(record.embedding),
            }
        return len(records)

    def add(self, course_id: UUID, file_id: UUID, chunk_index: int, content: str) -> None:
        self.rows[(file_id, chunk_index)] = {
            "id": uuid4(),
            "course_id": course_id,
            "file_id": file_id,
            "chunk_index": chunk_index,
            "content": content,
            "embedding": keyword_vector(content),
        }

    async def query_nearest(self, course_id: UUID, query_vector: Sequence[float], k: int) -> List[ChunkMatch]:
        self.queries.append((course_id, k))
        scored = [
            ChunkMatch(
                chunk_id=row["id"],
                course_id=row["course_id"],
                file_id=row["file_id"],
                chunk_index=row["chunk_index"],
                content=row["content"],
                similarity=cosine_similarity(query_vector, row["embedding"]),
            )
            for row in self.rows.values()
            if row["course_id"] == course_id
        ]
        scored.sort(key=lambda m: m.similarity, reverse=True)
        return scored[:k]


class FakeFileLocator:
    def __init__(self):
        self.files: Dict[UUID, Tuple[UUID, str]] = {}

    def add(self, course_id: UUID, file_id: UUID, path: str) -> None:
        self.files[file_id] = (course_id, path)

    async def get_file_location(self, course_id: UUID, file_id: UUID) -> str:
        entry = self.files.get(file_id)
        if entry is None or entry[0] != course_id:
            raise NotFoundError("File not found for this course")
        return entry[1]


class FakeFileFetcher:
    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self.objects = objects or {}
        self.paths: List[str] = []

    async def fetch(self, path: str) -> bytes:
        self.paths.append(path)
        if path not in self.objects:
            raise FetchError("Could not download file from storage")
        return self.objects[path]


class FakeGenerator:
    def __init__(self, answer: str = "Photosynthesis happens in the chloroplasts.",
                 error: Optional[ProviderError] = None):
        self.answer = answer
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def generate(self, system_role: str, prompt: str) -> str:
        self.calls.append((system_role, prompt))
        if self.error:
            raise self.error
        return self.answer


@pytest.fixture(autouse=True)
def reset_metrics():
    MetricsRegistry.instance().reset()
    yield
    MetricsRegistry.instance().reset()


@pytest.fixture
def course_id():
    return uuid4()


@pytest.fixture
def file_id():
    return uuid4()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def chunk_store():
    return FakeChunkStore()


@pytest.fixture
def file_locator():
    return FakeFileLocator()


@pytest.fixture
def file_fetcher():
    return FakeFileFetcher()


@pytest.fixture
def generator():
    return FakeGenerator()
