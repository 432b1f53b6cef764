"""
Course sharing and exam snipe history schemas.
"""
from typing import Any, Dict, List, Optional
from pydantic import AliasChoices, BaseModel, Field


class ShareCreate(BaseModel):
    """Share the caller's course identified by ``slug``."""
    slug: str = Field(..., min_length=1)


class ExamHistorySave(BaseModel):
    """Upsert an exam snipe result on (user, slug)."""
    slug: str = ""
    course_name: str = Field("", validation_alias=AliasChoices("courseName", "course_name"))
    subject_slug: Optional[str] = Field(None, validation_alias=AliasChoices("subjectSlug", "subject_slug"))
    file_names: List[str] = Field(default_factory=list, validation_alias=AliasChoices("fileNames", "file_names"))
    results: Dict[str, Any] = Field(default_factory=dict)


class ExamHistoryRename(BaseModel):
    slug: str = ""
    course_name: str = Field("", validation_alias=AliasChoices("courseName", "course_name"))
