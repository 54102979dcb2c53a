"""
Pipeline Logging Configuration
Logging setup for the ingestion and question-answering pipelines
"""

import json
import logging
import logging.handlers
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

# Extra record attributes copied into the JSON log entry
CONTEXT_FIELDS = ('stage', 'course_id', 'file_id', 'operation', 'error_type', 'chunk_count')

PIPELINE_LOGGERS = ('etl', 'database', 'rag', 'api')

NOISY_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool', 'aiohttp.access', 'urllib3')

PLAIN_FORMAT = '[%(asctime)s] %(levelname)s in %(name)s: %(message)s'


class PipelineFormatter(logging.Formatter):
    """One JSON object per record, carrying any pipeline context on it"""

    def __init__(self):
        super().__init__()
        self.hostname = os.getenv('HOSTNAME', 'localhost')
        self.pid = os.getpid()

    def format(self, record):
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'hostname': self.hostname,
            'process_id': self.pid,
        }
        entry.update({
            name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)
        })
        if hasattr(record, 'duration'):
            entry['duration_seconds'] = record.duration

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': self.formatException(record.exc_info),
            }

        if record.levelno <= logging.DEBUG:
            entry['source'] = f"{record.filename}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, ensure_ascii=False, default=str)


class PipelineLoggerAdapter(logging.LoggerAdapter):
    """Merges bound pipeline context with any per-call ``extra``"""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **(kwargs.get('extra') or {})}
        return msg, kwargs


def _rotating_handler(path: Path, level: int, max_bytes: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups)
    handler.setLevel(level)
    return handler


def setup_logging(
    log_level: str = "INFO",
    enable_file_logging: bool = False,
    enable_console_logging: bool = True,
    enable_structured_logging: bool = True,
    log_dir: str = "logs",
    log_rotation_size: int = 10 * 1024 * 1024,
    log_retention_count: int = 5
) -> None:
    """
    Configure the root logger for the service

    Args:
        log_level: Logging level name, unknown names fall back to INFO
        enable_file_logging: Also write ``pipeline.log`` and ``pipeline_errors.log`` under ``log_dir``
        enable_console_logging: Write to stdout
        enable_structured_logging: Emit JSON lines and route structlog through stdlib
        log_dir: Directory for log files
        log_rotation_size: Bytes per file before rotating
        log_retention_count: Rotated files to keep
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: List[logging.Handler] = []
    if enable_console_logging:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        handlers.append(console)

    if enable_file_logging:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating_handler(
            directory / "pipeline.log", level, log_rotation_size, log_retention_count
        ))
        handlers.append(_rotating_handler(
            directory / "pipeline_errors.log", logging.ERROR, log_rotation_size, log_retention_count
        ))

    if enable_structured_logging:
        formatter: logging.Formatter = PipelineFormatter()
        setup_structured_logging()
    else:
        formatter = logging.Formatter(PLAIN_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={'operation': 'setup_logging'},
    )


def setup_structured_logging() -> None:
    """Render structlog events as JSON through the stdlib handlers"""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_pipeline_logger(name: str, **context: Any) -> PipelineLoggerAdapter:
    """
    Logger that stamps every record with pipeline context,
    e.g. ``get_pipeline_logger(__name__, course_id=..., file_id=...)``.
    ``None`` values are left out.
    """
    bound = {key: str(value) for key, value in context.items() if value is not None}
    return PipelineLoggerAdapter(logging.getLogger(name), bound)


class StageTimer:
    """Logs start, completion or failure, and duration of one pipeline stage"""

    def __init__(self, logger: logging.LoggerAdapter, stage: str, log_level: int = logging.INFO):
        self.logger = logger
        self.stage = stage
        self.log_level = log_level
        self.duration: float = 0.0
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.log_level, f"{self.stage}: started", extra={'stage': self.stage})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._started
        extra = {'stage': self.stage, 'duration': round(self.duration, 4)}
        if exc_type is None:
            self.logger.log(self.log_level, f"{self.stage}: done in {self.duration:.2f}s", extra=extra)
        else:
            extra['error_type'] = exc_type.__name__
            self.logger.warning(f"{self.stage}: failed after {self.duration:.2f}s: {exc_val}", extra=extra)
        return False
