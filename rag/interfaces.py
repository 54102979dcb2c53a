"""
Capability interfaces for the ingestion and question-answering pipelines.

Each external collaborator is described by a Protocol so services depend on
the capability rather than a concrete client.
"""

from typing import List, Protocol, Sequence
from uuid import UUID

from database.schemas import ChunkCreate, ChunkMatch


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """One vector per text, in input order."""


class ChunkStore(Protocol):
    async def insert_chunks(self, records: Sequence[ChunkCreate]) -> int:
        """Insert all records atomically and return the inserted count."""

    async def query_nearest(self, course_id: UUID, query_vector: Sequence[float], k: int) -> List[ChunkMatch]:
        """Nearest chunks of one course, most similar first."""


class FileLocator(Protocol):
    async def get_file_location(self, course_id: UUID, file_id: UUID) -> str:
        """Storage path of a file that belongs to the course."""


class FileFetcher(Protocol):
    async def fetch(self, path: str) -> bytes:
        """Raw bytes of the stored object."""


class AnswerGenerator(Protocol):
    async def generate(self, system_role: str, prompt: str) -> str:
        """Single completion for the prompt under the given system role."""
