"""
Subject (course) and subject data schemas.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import AliasChoices, BaseModel, Field, field_serializer
from models.models import as_utc


class SubjectCreate(BaseModel):
    """Schema for creating (or upserting) a subject."""
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=128)


class SubjectUpdate(BaseModel):
    """Schema for renaming a subject."""
    slug: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class SubjectRead(BaseModel):
    """Subject as listed for its owner."""
    slug: str
    name: str
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    shared_by_username: Optional[str] = Field(None, serialization_alias="sharedByUsername")

    @field_serializer("created_at")
    def _utc(self, value: Optional[datetime]) -> Optional[str]:
        return as_utc(value).isoformat() if value else None

    class Config:
        from_attributes = True


class SubjectDataWrite(BaseModel):
    """Full subject data blob for a slug; used by PUT and sync."""
    slug: str = Field(..., min_length=1, max_length=128)
    data: Dict[str, Any]


class ReviewCreate(BaseModel):
    """A spaced-repetition review of one lesson."""
    slug: str = Field(..., min_length=1)
    topic_name: str = Field(..., min_length=1, validation_alias=AliasChoices("topicName", "topic_name"))
    lesson_index: int = Field(..., ge=0, validation_alias=AliasChoices("lessonIndex", "lesson_index"))
    quality: int = Field(..., ge=0, le=5, description="0 = forgot, 3 = okay, 5 = perfect")
