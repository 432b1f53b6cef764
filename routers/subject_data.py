"""
Subject data routes: the per-course JSON blob the client keeps in sync.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.subject import SubjectDataWrite
from services.subject_service import SubjectService

router = APIRouter(prefix="/api/subject-data", tags=["Subject Data"])


@router.get("")
async def get_subject_data(
    slug: Optional[str] = Query(None),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    if not slug:
        raise BadRequestException("Missing slug")
    data = await SubjectService(db).get_data(current_user.id, slug)
    return {"ok": True, "data": data}


@router.put("")
async def save_subject_data(
    payload: SubjectDataWrite,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Replace the stored blob; inline file bytes and raw lesson JSON are dropped first."""
    data = await SubjectService(db).save_data(current_user.id, payload.slug, payload.data)
    return {"ok": True, "data": data}


@router.post("/sync")
async def sync_subject_data(
    payload: SubjectDataWrite,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    data = await SubjectService(db).sync_data(current_user.id, payload.slug, payload.data)
    return {"ok": True, "data": data}
