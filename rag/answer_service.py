"""
Question answering over course materials: retrieve, build the prompt, generate.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from database.schemas import ChunkMatch
from etl.error_handling import PipelineStage
from monitoring.metrics import inc as metrics_inc
from rag.interfaces import AnswerGenerator
from rag.prompt_builder import SYSTEM_ROLE, build_prompt
from rag.retriever import DEFAULT_MATCH_COUNT, Retriever

NO_MATERIALS_ANSWER = (
    "I couldn't find any relevant course materials for this question yet. "
    "Try uploading notes or homework first."
)

PREVIEW_CHARS = 200


@dataclass
class AnswerResult:
    ok: bool
    stage: str
    answer: str
    sources: List[Dict[str, Any]] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "stage": self.stage,
            "answer": self.answer,
            "sources": self.sources,
        }


def source_reference(match: ChunkMatch) -> Dict[str, Any]:
    return {
        "chunkId": str(match.chunk_id),
        "fileId": str(match.file_id),
        "similarity": match.similarity,
        "preview": match.content[:PREVIEW_CHARS],
    }


class AnswerService:
    def __init__(self, retriever: Retriever, generator: AnswerGenerator):
        self.logger = logging.getLogger(__name__)
        self.retriever = retriever
        self.generator = generator

    async def answer(
        self,
        course_id: UUID,
        question: str,
        match_count: Optional[int] = DEFAULT_MATCH_COUNT
    ) -> AnswerResult:
        """
        Answer a student question from the course's stored materials

        When nothing is retrieved the language model is not called and a
        fixed no-materials answer is returned under stage ``no-matches``.

        Raises:
            PipelineError: Staged errors from retrieval or generation
        """
        k = match_count or DEFAULT_MATCH_COUNT
        matches = await self.retriever.retrieve(course_id, question, k)

        if not matches:
            self.logger.info(f"No course materials matched for course {course_id}")
            await metrics_inc("ask_requests_total", labels={"stage": PipelineStage.NO_MATCHES.value})
            return AnswerResult(
                ok=True,
                stage=PipelineStage.NO_MATCHES.value,
                answer=NO_MATERIALS_ANSWER,
                sources=[],
            )

        prompt = build_prompt(question, matches)
        answer = await self.generator.generate(SYSTEM_ROLE, prompt)

        await metrics_inc("ask_requests_total", labels={"stage": PipelineStage.DONE.value})
        return AnswerResult(
            ok=True,
            stage=PipelineStage.DONE.value,
            answer=answer,
            sources=[source_reference(m) for m in matches],
        )
