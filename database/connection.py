"""
Database connection utilities for the Course Tutor RAG service
Owns the async engine, request-scoped sessions and schema bootstrap
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

load_dotenv()

logger = logging.getLogger(__name__)

Base = declarative_base()

ASYNC_DRIVER = 'postgresql+asyncpg://'
_PLAIN_SCHEMES = ('postgres://', 'postgresql://')


def to_async_url(url: str) -> str:
    """Point a plain postgres URL at the asyncpg driver; other URLs pass through"""
    for scheme in _PLAIN_SCHEMES:
        if url.startswith(scheme):
            return ASYNC_DRIVER + url[len(scheme):]
    return url


@dataclass
class DatabaseConfig:
    """Connection settings, read from DATABASE_URL or the DB_* variables"""
    url: Optional[str] = None
    host: str = 'localhost'
    port: int = 5432
    name: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 3600
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=os.getenv('DATABASE_URL') or None,
            host=os.getenv('DB_HOST', 'localhost'),
            port=int(os.getenv('DB_PORT', '5432')),
            name=os.getenv('DB_NAME'),
            user=os.getenv('DB_USER'),
            password=os.getenv('DB_PASSWORD'),
            pool_size=int(os.getenv('DB_POOL_SIZE', '10')),
            max_overflow=int(os.getenv('DB_MAX_OVERFLOW', '20')),
            pool_timeout=int(os.getenv('DB_POOL_TIMEOUT', '30')),
            pool_recycle=int(os.getenv('DB_POOL_RECYCLE', '3600')),
            echo=os.getenv('DB_ECHO', 'false').lower() == 'true',
        )

    @property
    def async_url(self) -> str:
        if self.url:
            return to_async_url(self.url)
        return f"{ASYNC_DRIVER}{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


class DatabaseManager:
    """Lazily builds one async engine and hands out sessions bound to it"""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig.from_env()
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            cfg = self.config
            self._engine = create_async_engine(
                cfg.async_url,
                pool_size=cfg.pool_size,
                max_overflow=cfg.max_overflow,
                pool_timeout=cfg.pool_timeout,
                pool_recycle=cfg.pool_recycle,
                echo=cfg.echo,
                pool_pre_ping=True,
            )
        return self._engine

    @property
    def sessions(self) -> async_sessionmaker:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._sessions

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on clean exit and rolls back on error"""
        async with self.sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}")
                raise

    async def _scalar(self, sql: str):
        async with self.session() as session:
            result = await session.execute(text(sql))
            return result.scalar()

    async def ping(self) -> bool:
        try:
            return await self._scalar("SELECT 1") == 1
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database ping failed: {e}")
            return False

    async def has_pgvector(self) -> bool:
        try:
            return bool(await self._scalar(
                "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'vector')"
            ))
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"pgvector extension check failed: {e}")
            return False

    async def create_schema(self) -> None:
        """Create the vector extension and any missing tables and indexes"""
        # Registers the mapped tables on Base.metadata
        import database.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None


db_manager = DatabaseManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session"""
    async with db_manager.session() as session:
        yield session


async def init_database() -> bool:
    """
    Bootstrap the schema and verify the database is usable.
    Returns False instead of raising so the service can still start.
    """
    try:
        await db_manager.create_schema()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database initialization failed: {e}")
        return False

    if not await db_manager.has_pgvector():
        logger.error("pgvector extension is not available after initialization")
        return False

    if not await db_manager.ping():
        logger.error("Database connectivity check failed after initialization")
        return False

    logger.info("Database initialized")
    return True
