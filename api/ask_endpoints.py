"""
FastAPI Endpoints for Course Questions
"""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_answer_service_factory
from api.responses import (
    error_response,
    method_check_response,
    parse_body,
    read_json_body,
    unexpected_response,
)
from database.schemas import AskRequest
from etl.config import RETRIEVAL_CONFIG
from etl.error_handling import PipelineError
from monitoring.metrics import inc as metrics_inc
from rag.answer_service import AnswerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Ask"])


def resolve_match_count(requested) -> int:
    """Default when absent, capped at the configured maximum"""
    if requested is None:
        return RETRIEVAL_CONFIG['default_match_count']
    return min(requested, RETRIEVAL_CONFIG['max_match_count'])


@router.get("/ask")
async def ask_method_check(request: Request) -> JSONResponse:
    return method_check_response(request.method)


@router.post("/ask")
async def ask(
    request: Request,
    build_service: Callable[[], AnswerService] = Depends(get_answer_service_factory),
) -> JSONResponse:
    """
    Answer a student question from the course's ingested materials

    Body: ``{"courseId": "<uuid>", "question": "...", "matchCount": 6}``.
    """
    try:
        payload = await read_json_body(request)
        body = parse_body(AskRequest, payload, "Missing courseId or question in request body")
        service = build_service()
        result = await service.answer(
            body.course_id, body.question, resolve_match_count(body.match_count)
        )
        return JSONResponse(status_code=200, content=result.to_response())

    except PipelineError as e:
        logger.warning(f"Ask failed at {e.stage.value}: {e.message}", extra={"stage": e.stage.value})
        await metrics_inc("ask_requests_total", labels={"stage": e.stage.value})
        return error_response(e)
    except Exception as e:
        return unexpected_response(e)
