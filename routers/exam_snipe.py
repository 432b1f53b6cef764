"""
Exam Snipe routes: analyse past exams and manage the saved analyses.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from core.file_utils import read_uploads
from core.rate_limiting import check_rate_limit
from core.security import get_current_active_user, get_optional_user
from db_config import get_async_db
from models.models import User
from schemas.sharing import ExamHistoryRename, ExamHistorySave
from services.ai_manager import AIManager, get_ai_manager
from services.exam_snipe_service import ExamSnipeService
from services.subscription_service import record_api_call

router = APIRouter(prefix="/api/exam-snipe", tags=["Exam Snipe"])


@router.post("")
async def analyze_exams(
    request: Request,
    exams: Optional[List[UploadFile]] = File(None),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """
    Rank the concepts that recur across the uploaded exams by points earned
    per hour of study.
    """
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    files = await read_uploads(exams or [])
    data = await ExamSnipeService(db, ai_manager).analyze(files)
    if current_user is not None:
        await record_api_call(db, current_user.id)
    return {"ok": True, "data": data}


@router.get("/history")
async def list_history(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    history = await ExamSnipeService(db).list_history(current_user.id)
    return {"ok": True, "history": history}


@router.post("/history")
async def save_history(
    payload: ExamHistorySave,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    record = await ExamSnipeService(db).save_history(current_user.id, payload)
    return {"ok": True, "record": record}


@router.patch("/history")
async def rename_history(
    payload: ExamHistoryRename,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    record = await ExamSnipeService(db).rename_history(current_user.id, payload.slug, payload.course_name)
    return {"ok": True, "record": record}


@router.delete("/history")
async def delete_history(
    slug: Optional[str] = Query(None),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    await ExamSnipeService(db).delete_history(current_user.id, slug)
    return {"ok": True}
