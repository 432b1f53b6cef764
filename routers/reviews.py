"""
Spaced-repetition review routes.
"""
import copy
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException, ResourceNotFoundException
from core.logging import get_logger
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.subject import ReviewCreate
from services.spaced_repetition import get_lessons_due_for_review, get_upcoming_reviews, mark_lesson_reviewed, now_ms
from services.subject_service import SubjectService

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])
logger = get_logger("app")


@router.post("")
async def record_review(
    payload: ReviewCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Record a review of one lesson and return its next schedule."""
    service = SubjectService(db)
    stored = await service.get_data(current_user.id, payload.slug)
    if stored is None:
        raise ResourceNotFoundException("Subject data not found")

    # Copied so the JSON column sees a new value
    data = copy.deepcopy(stored)
    schedule = mark_lesson_reviewed(data, payload.topic_name, payload.lesson_index, payload.quality)
    await service.save_data(current_user.id, payload.slug, data)

    logger.info(
        "Lesson reviewed",
        user_id=current_user.id,
        slug=payload.slug,
        quality=payload.quality,
        interval_days=schedule["interval"],
    )
    return {"ok": True, "schedule": schedule}


@router.get("")
async def list_reviews(
    slug: Optional[str] = Query(None),
    days: float = Query(7, ge=0, le=365),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    if not slug:
        raise BadRequestException("Missing slug")
    data = await SubjectService(db).get_data(current_user.id, slug)
    now = now_ms()
    return {
        "ok": True,
        "due": get_lessons_due_for_review(data, now),
        "upcoming": get_upcoming_reviews(data, days, now),
    }
