"""
SQLAlchemy ORM models for the Course Tutor RAG service
Defines the course_files lookup table and the course_chunks vector table
"""

from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy import String, Integer, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func
from pgvector.sqlalchemy import Vector

from database.connection import Base
from etl.config import EMBEDDING_CONFIG

EMBEDDING_DIM = EMBEDDING_CONFIG['dimensions']


class CourseFile(Base):
    """Uploaded course document; written by the upload flow, read-only here"""
    __tablename__ = 'course_files'

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.current_timestamp())

    chunks: Mapped[List["CourseChunk"]] = relationship(
        "CourseChunk", back_populates="file", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<CourseFile(id={self.id}, course_id={self.course_id}, file_name='{self.file_name}')>"


class CourseChunk(Base):
    """One retrievable segment of a course file with its embedding"""
    __tablename__ = 'course_chunks'

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey('course_files.id', ondelete='CASCADE'), nullable=False
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[List[float]] = mapped_column(Vector(EMBEDDING_DIM), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.current_timestamp())

    file: Mapped["CourseFile"] = relationship("CourseFile", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint('file_id', 'chunk_index', name='uq_course_chunks_file_chunk_index'),
        Index('ix_course_chunks_course_id', 'course_id'),
        Index(
            'ix_course_chunks_embedding_hnsw',
            'embedding',
            postgresql_using='hnsw',
            postgresql_ops={'embedding': 'vector_cosine_ops'},
        ),
    )

    def __repr__(self):
        return f"<CourseChunk(id={self.id}, file_id={self.file_id}, chunk_index={self.chunk_index})>"
