"""
Staged JSON responses shared by the ingestion and ask endpoints
"""

import json
import logging
from typing import Any, Dict, List, Type, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from etl.error_handling import (
    InputValidationError,
    PipelineError,
    PipelineStage,
    classify_error,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def method_check_response(method: str) -> JSONResponse:
    """Non-POST calls still get a JSON body so clients can always parse it"""
    return JSONResponse(
        status_code=200,
        content={
            "ok": False,
            "stage": PipelineStage.METHOD_CHECK.value,
            "message": "This route expects POST",
            "receivedMethod": method,
        },
    )


def error_response(error: PipelineError) -> JSONResponse:
    body: Dict[str, Any] = {
        "ok": False,
        "stage": error.stage.value,
        "error": error.message,
    }
    if error.details:
        body["details"] = error.details
    return JSONResponse(status_code=error.status_code, content=body)


def unexpected_response(error: Exception) -> JSONResponse:
    error_type, severity = classify_error(error)
    logger.error(
        f"Unexpected server error: {error}",
        exc_info=error,
        extra={"stage": PipelineStage.UNEXPECTED.value, "error_type": error_type.value},
    )
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "stage": PipelineStage.UNEXPECTED.value,
            "error": "Unexpected server error",
            "details": {"message": str(error), "severity": severity.value},
        },
    )


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON; an empty body reads as an empty object"""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InputValidationError("Request body must be valid JSON") from e


def _describe_errors(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in error.errors()
    ]


def parse_body(model: Type[ModelT], payload: Any, missing_message: str) -> ModelT:
    """
    Validate a JSON payload against ``model``

    Raises:
        InputValidationError: With ``missing_message`` when required fields are
            absent, or a field-level description otherwise
    """
    if not isinstance(payload, dict):
        raise InputValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        problems = _describe_errors(e)
        if any(err.get("type") == "missing" for err in e.errors()):
            raise InputValidationError(missing_message, details={"errors": problems}) from e
        raise InputValidationError("Invalid request body", details={"errors": problems}) from e
