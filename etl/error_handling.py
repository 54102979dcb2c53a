"""
Pipeline error handling utilities: staged error taxonomy and classification
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PipelineStage(str, Enum):
    """Stage tags reported by the ingestion and ask endpoints"""
    METHOD_CHECK = "method-check"
    INPUT_VALIDATION = "input-validation"
    ENV_CHECK = "env-check"
    LOOKUP = "lookup"
    FETCH = "fetch"
    VALIDATE = "validate"
    CHUNKING = "chunking"
    EMBED = "embed"
    INSERT = "insert"
    ALREADY_INGESTED = "already-ingested"
    VECTOR_SEARCH = "vector-search"
    NO_MATCHES = "no-matches"
    GENERATE = "generate"
    DONE = "done"
    UNEXPECTED = "unexpected"


class PipelineError(Exception):
    """Base error for a failed pipeline stage.

    Carries the stage tag and the HTTP status the endpoints answer with.
    """

    default_stage: PipelineStage = PipelineStage.UNEXPECTED
    status_code: int = 500

    def __init__(
        self,
        message: str,
        stage: Optional[PipelineStage] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.stage = stage or self.default_stage
        self.details = details or {}
        super().__init__(message)


class InputValidationError(PipelineError):
    default_stage = PipelineStage.INPUT_VALIDATION
    status_code = 400


class ConfigurationError(PipelineError):
    default_stage = PipelineStage.ENV_CHECK
    status_code = 500


class NotFoundError(PipelineError):
    default_stage = PipelineStage.LOOKUP
    status_code = 404


class FetchError(PipelineError):
    default_stage = PipelineStage.FETCH
    status_code = 502


class EmptyContentError(PipelineError):
    default_stage = PipelineStage.VALIDATE
    status_code = 400


class ChunkingError(PipelineError):
    default_stage = PipelineStage.CHUNKING
    status_code = 400


class ProviderError(PipelineError):
    """Embedding or language-model call failed"""
    default_stage = PipelineStage.EMBED
    status_code = 502


class StoreError(PipelineError):
    """Persistence or similarity query failed"""
    default_stage = PipelineStage.INSERT
    status_code = 500


class DuplicateChunksError(StoreError):
    """Chunks for this (file_id, chunk_index) already exist"""
    status_code = 409


class ErrorType(str, Enum):
    VALIDATION = "validation_error"
    NETWORK = "network_error"
    DATABASE = "database_error"
    EXTERNAL_API = "external_api_error"
    TIMEOUT = "timeout_error"
    UNKNOWN = "unknown_error"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


def classify_error(error: Exception) -> Tuple[ErrorType, Severity]:
    """Classify an error for logging.

    Returns: (error_type, severity)
    """
    if isinstance(error, (InputValidationError, EmptyContentError, ChunkingError, NotFoundError)):
        return (ErrorType.VALIDATION, Severity.INFO)
    if isinstance(error, FetchError):
        return (ErrorType.NETWORK, Severity.WARNING)
    if isinstance(error, ProviderError):
        return (ErrorType.EXTERNAL_API, Severity.WARNING)
    if isinstance(error, StoreError):
        return (ErrorType.DATABASE, Severity.CRITICAL)

    message = str(error).lower()

    # Timeouts
    if any(k in message for k in ["timeout", "timed out", "deadline"]):
        return (ErrorType.TIMEOUT, Severity.WARNING)

    # Network
    if any(k in message for k in ["connection", "network", "dns", "socket"]):
        return (ErrorType.NETWORK, Severity.WARNING)

    # Database
    if any(k in message for k in ["database", "sqlalchemy", "deadlock", "connection pool"]):
        return (ErrorType.DATABASE, Severity.CRITICAL)

    # External API
    if any(k in message for k in ["api", "rate limit", "quota", "service unavailable", "429", "503"]):
        return (ErrorType.EXTERNAL_API, Severity.WARNING)

    return (ErrorType.UNKNOWN, Severity.WARNING)
