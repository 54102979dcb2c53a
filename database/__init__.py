"""
Database package for the Course Tutor RAG service
Provides connection management, models, repositories and vector search
"""

from .connection import (
    DatabaseConfig,
    DatabaseManager,
    db_manager,
    get_db_session,
    init_database,
    Base
)

from .models import (
    CourseFile,
    CourseChunk,
    EMBEDDING_DIM
)

from .schemas import (
    ChunkCreate,
    ChunkMatch
)

__all__ = [
    # Connection utilities
    'DatabaseConfig',
    'DatabaseManager',
    'db_manager',
    'get_db_session',
    'init_database',
    'Base',

    # Models
    'CourseFile',
    'CourseChunk',
    'EMBEDDING_DIM',

    # Schemas
    'ChunkCreate',
    'ChunkMatch',
]
