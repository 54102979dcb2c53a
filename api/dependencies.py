"""
Service wiring for the API

Provider clients are created lazily from configuration, held on the
application state for the app's lifetime, and closed at shutdown.
Request-scoped services are built per request around a database session.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db_session
from database.repositories import ChunkRepository, CourseFileRepository
from etl.config import (
    ASK_REQUIRED_SETTINGS,
    CHUNKING_CONFIG,
    EMBEDDING_CONFIG,
    GENERATION_CONFIG,
    INGESTION_REQUIRED_SETTINGS,
    STORAGE_CONFIG,
    get_setting,
    require_settings,
)
from etl.file_fetcher import StorageFileFetcher
from etl.ingestion_orchestrator import IngestionOrchestrator
from etl.vector_embedder import VectorEmbedder
from rag.answer_service import AnswerService
from rag.response_generator import ResponseGenerator
from rag.retriever import Retriever

logger = logging.getLogger(__name__)


class ServiceContainer:
    """App-scoped provider clients"""

    def __init__(self):
        self._embedder: Optional[VectorEmbedder] = None
        self._fetcher: Optional[StorageFileFetcher] = None
        self._generator: Optional[ResponseGenerator] = None

    def embedder(self) -> VectorEmbedder:
        if self._embedder is None:
            self._embedder = VectorEmbedder(
                api_key=get_setting('GOOGLE_API_KEY'),
                model=EMBEDDING_CONFIG['model'],
                dimensions=EMBEDDING_CONFIG['dimensions'],
                batch_size=EMBEDDING_CONFIG['batch_size'],
                timeout_seconds=EMBEDDING_CONFIG['timeout_seconds'],
                enable_cache=EMBEDDING_CONFIG['enable_cache'],
                cache_ttl_hours=EMBEDDING_CONFIG['cache_ttl_hours'],
            )
        return self._embedder

    def file_fetcher(self) -> StorageFileFetcher:
        if self._fetcher is None:
            self._fetcher = StorageFileFetcher(
                storage_url=get_setting('STORAGE_URL'),
                service_key=get_setting('STORAGE_SERVICE_KEY'),
                bucket=STORAGE_CONFIG['bucket'],
                timeout_seconds=STORAGE_CONFIG['timeout_seconds'],
            )
        return self._fetcher

    def generator(self) -> ResponseGenerator:
        if self._generator is None:
            self._generator = ResponseGenerator(
                api_key=get_setting('GEMINI_API_KEY'),
                model_name=GENERATION_CONFIG['model'],
                temperature=GENERATION_CONFIG['temperature'],
                max_output_tokens=GENERATION_CONFIG['max_output_tokens'],
            )
        return self._generator

    async def close(self) -> None:
        if self._embedder is not None:
            await self._embedder.close()
        if self._fetcher is not None:
            await self._fetcher.close()
        logger.info("Service clients closed")


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, 'services', None)
    if services is None:
        services = ServiceContainer()
        request.app.state.services = services
    return services


def get_ingestion_orchestrator_factory(
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_db_session),
) -> Callable[[], IngestionOrchestrator]:
    """
    Deferred builder so the endpoint validates input before the env-check

    The returned callable raises ConfigurationError when ingestion settings
    are missing, before any provider client is created.
    """
    def build() -> IngestionOrchestrator:
        require_settings(*INGESTION_REQUIRED_SETTINGS)
        return IngestionOrchestrator(
            file_locator=CourseFileRepository(session),
            file_fetcher=services.file_fetcher(),
            embedder=services.embedder(),
            chunk_store=ChunkRepository(session),
            max_chars=CHUNKING_CONFIG['max_chars'],
        )

    return build


def get_answer_service_factory(
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_db_session),
) -> Callable[[], AnswerService]:
    def build() -> AnswerService:
        require_settings(*ASK_REQUIRED_SETTINGS)
        retriever = Retriever(services.embedder(), ChunkRepository(session))
        return AnswerService(retriever, services.generator())

    return build
