"""
Ingestion Orchestrator
Runs one course file through lookup, fetch, validation, chunking, embedding
and storage, reporting the stage at which anything went wrong
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from database.schemas import ChunkCreate
from etl.error_handling import (
    ChunkingError,
    DuplicateChunksError,
    EmptyContentError,
    PipelineError,
    PipelineStage,
    ProviderError,
)
from etl.logging_config import StageTimer, get_pipeline_logger
from etl.text_chunker import DEFAULT_MAX_CHARS, chunk_text
from monitoring.metrics import inc as metrics_inc, observe as metrics_observe
from rag.interfaces import ChunkStore, Embedder, FileFetcher, FileLocator


@dataclass
class IngestionResult:
    """Outcome of a successful ingestion run"""
    ok: bool
    stage: str
    message: str
    chunks_inserted: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "ok": self.ok,
            "stage": self.stage,
            "message": self.message,
        }
        if self.chunks_inserted is not None:
            body["chunksInserted"] = self.chunks_inserted
        if self.details:
            body["details"] = self.details
        return body


def decode_document(raw: bytes) -> str:
    """
    Decode fetched bytes into document text

    Raises:
        EmptyContentError: If the bytes are not UTF-8 text, contain NUL
            characters, or hold nothing but whitespace
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise EmptyContentError(
            "File is not readable as UTF-8 text",
            details={"position": e.start},
        ) from e

    if "\x00" in text:
        raise EmptyContentError("File appears to be binary, not text")

    if not text.strip():
        raise EmptyContentError("File appears to be empty or not readable as text")

    return text


class IngestionOrchestrator:
    """
    Ingest a single course file

    Stages run in strict order and each failure is terminal: no retries and no
    cleanup of earlier stages. Re-ingesting an already stored file is reported
    as ``already-ingested``.
    """

    def __init__(
        self,
        file_locator: FileLocator,
        file_fetcher: FileFetcher,
        embedder: Embedder,
        chunk_store: ChunkStore,
        max_chars: int = DEFAULT_MAX_CHARS,
    ):
        self.file_locator = file_locator
        self.file_fetcher = file_fetcher
        self.embedder = embedder
        self.chunk_store = chunk_store
        self.max_chars = max_chars

    async def ingest(self, course_id: UUID, file_id: UUID) -> IngestionResult:
        """
        Run the ingestion pipeline for one file

        Raises:
            PipelineError: Tagged with the stage that failed
        """
        plog = get_pipeline_logger(__name__, course_id=course_id, file_id=file_id)
        start_time = time.perf_counter()

        try:
            result = await self._run(plog, course_id, file_id)
        except PipelineError as e:
            await metrics_inc("ingestion_runs_total", labels={"stage": e.stage.value, "ok": False})
            raise

        await metrics_inc("ingestion_runs_total", labels={"stage": result.stage, "ok": True})
        await metrics_observe("ingestion_seconds", time.perf_counter() - start_time)
        return result

    async def _run(self, plog, course_id: UUID, file_id: UUID) -> IngestionResult:
        with StageTimer(plog, PipelineStage.LOOKUP.value):
            path = await self.file_locator.get_file_location(course_id, file_id)

        with StageTimer(plog, PipelineStage.FETCH.value):
            raw = await self.file_fetcher.fetch(path)

        with StageTimer(plog, PipelineStage.VALIDATE.value):
            text = decode_document(raw)

        with StageTimer(plog, PipelineStage.CHUNKING.value):
            chunks = chunk_text(text, self.max_chars)
            if not chunks:
                raise ChunkingError("No chunks produced from file contents")
        plog.info(f"Produced {len(chunks)} chunks", extra={"chunk_count": len(chunks)})

        with StageTimer(plog, PipelineStage.EMBED.value):
            vectors = await self.embedder.embed(chunks)
            if len(vectors) != len(chunks):
                raise ProviderError(
                    f"Embedding count mismatch: {len(chunks)} chunks, {len(vectors)} vectors",
                    details={"chunks": len(chunks), "vectors": len(vectors)},
                )

        records = self._build_records(course_id, file_id, chunks, vectors)

        try:
            with StageTimer(plog, PipelineStage.INSERT.value):
                inserted = await self.chunk_store.insert_chunks(records)
        except DuplicateChunksError:
            plog.info("File already ingested; keeping existing chunks")
            return IngestionResult(
                ok=True,
                stage=PipelineStage.ALREADY_INGESTED.value,
                message="File has already been ingested",
            )

        plog.info(f"Ingestion complete: {inserted} chunks stored", extra={"chunk_count": inserted})
        return IngestionResult(
            ok=True,
            stage=PipelineStage.DONE.value,
            message="Ingestion complete",
            chunks_inserted=inserted,
        )

    @staticmethod
    def _build_records(
        course_id: UUID,
        file_id: UUID,
        chunks: List[str],
        vectors: List[List[float]],
    ) -> List[ChunkCreate]:
        return [
            ChunkCreate(
                course_id=course_id,
                file_id=file_id,
                chunk_index=index,
                content=content,
                embedding=vector,
            )
            for index, (content, vector) in enumerate(zip(chunks, vectors))
        ]
