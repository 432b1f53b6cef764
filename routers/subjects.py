"""
Subject (course) routes: listing, upsert, rename and deletion.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException
from core.security import get_current_active_user, get_optional_user
from db_config import get_async_db
from models.models import User
from schemas.subject import SubjectCreate, SubjectRead, SubjectUpdate
from services.subject_service import SubjectService

router = APIRouter(prefix="/api/subjects", tags=["Subjects"])


def _require_slug(slug: Optional[str]) -> str:
    slug = (slug or "").strip()
    if not slug:
        raise BadRequestException("Missing slug")
    return slug


@router.get("")
async def list_subjects(
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """The caller's subjects, newest first; empty for anonymous callers."""
    if current_user is None:
        return {"ok": True, "subjects": []}
    rows = await SubjectService(db).list_subjects(current_user.id)
    return {
        "ok": True,
        "subjects": [SubjectRead.model_validate(row).model_dump(by_alias=True) for row in rows],
    }


@router.post("")
async def create_subject(
    payload: SubjectCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Create the subject, or rename it if the slug already exists.

    Free accounts are limited in how many subjects they can create.
    """
    subject = await SubjectService(db).upsert_subject(current_user, payload.slug, payload.name)
    return {"ok": True, "subject": SubjectRead.model_validate(subject).model_dump(by_alias=True)}


@router.put("")
async def rename_subject(
    payload: SubjectUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    await SubjectService(db).rename_subject(current_user.id, payload.slug, payload.name)
    return {"ok": True}


@router.delete("")
async def delete_subject(
    slug: Optional[str] = Query(None),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Delete a subject together with its data and linked exam history."""
    await SubjectService(db).delete_subject(current_user.id, _require_slug(slug))
    return {"ok": True}


@router.delete("/data")
async def delete_subject_data(
    slug: Optional[str] = Query(None),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    await SubjectService(db).delete_subject_data(current_user.id, _require_slug(slug))
    return {"ok": True}
