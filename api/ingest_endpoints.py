"""
FastAPI Endpoints for Course File Ingestion
"""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_ingestion_orchestrator_factory
from api.responses import (
    error_response,
    method_check_response,
    parse_body,
    read_json_body,
    unexpected_response,
)
from database.schemas import IngestFileRequest
from etl.error_handling import PipelineError
from etl.ingestion_orchestrator import IngestionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Ingestion"])


@router.get("/ingest-file")
async def ingest_file_method_check(request: Request) -> JSONResponse:
    return method_check_response(request.method)


@router.post("/ingest-file")
async def ingest_file(
    request: Request,
    build_orchestrator: Callable[[], IngestionOrchestrator] = Depends(get_ingestion_orchestrator_factory),
) -> JSONResponse:
    """
    Chunk, embed and store one uploaded course file

    Body: ``{"courseId": "<uuid>", "fileId": "<uuid>"}``. Every response is a
    staged JSON body; ``stage`` names the step that finished or failed.
    """
    logger.info("Ingest route hit")
    try:
        payload = await read_json_body(request)
        body = parse_body(
            IngestFileRequest, payload, "Missing courseId or fileId in request body"
        )
        orchestrator = build_orchestrator()
        result = await orchestrator.ingest(body.course_id, body.file_id)
        return JSONResponse(status_code=200, content=result.to_response())

    except PipelineError as e:
        logger.warning(f"Ingestion failed at {e.stage.value}: {e.message}", extra={"stage": e.stage.value})
        return error_response(e)
    except Exception as e:
        return unexpected_response(e)


@router.api_route("/ingest-debug", methods=["GET", "POST"])
async def ingest_debug(request: Request) -> JSONResponse:
    """Echo the method and JSON body back to the caller"""
    raw = await request.body()
    try:
        body = await read_json_body(request) if raw.strip() else None
    except PipelineError:
        body = raw.decode("utf-8", errors="replace")

    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "message": "Debug route is working",
            "method": request.method,
            "body": body,
        },
    )
