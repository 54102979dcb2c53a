"""
Pydantic models for data validation in the Course Tutor RAG service
Defines chunk records, similarity matches and the API request bodies
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChunkCreate(BaseModel):
    """Chunk record ready to be stored"""
    course_id: UUID
    file_id: UUID
    chunk_index: int = Field(..., ge=0, description="0-based position within the file's chunks")
    content: str = Field(..., min_length=1)
    embedding: List[float] = Field(..., min_length=1)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError("Chunk content cannot be blank")
        return v


class ChunkMatch(BaseModel):
    """A stored chunk returned by a similarity query"""
    model_config = ConfigDict(from_attributes=True)

    chunk_id: UUID
    course_id: UUID
    file_id: UUID
    chunk_index: int
    content: str
    similarity: float


# API bodies use camelCase on the wire
class IngestFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: UUID = Field(..., alias='courseId')
    file_id: UUID = Field(..., alias='fileId')


class AskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: UUID = Field(..., alias='courseId')
    question: str = Field(..., min_length=1)
    match_count: Optional[int] = Field(None, alias='matchCount', ge=1)

    @field_validator('question')
    @classmethod
    def validate_question(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Question cannot be empty")
        return v
