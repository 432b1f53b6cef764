"""
Feedback routes: any signed-in user can submit, testers triage.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException, ResourceNotFoundException
from core.logging import get_logger
from core.rate_limiting import rate_limit
from core.security import get_current_active_user, require_tester_user
from db_config import get_async_db
from models.models import Feedback, User, as_utc
from schemas.admin import FeedbackCreate, FeedbackDelete, FeedbackUpdate

router = APIRouter(prefix="/api/feedback", tags=["Feedback"])
logger = get_logger("app")


@router.post("", dependencies=[Depends(rate_limit("default"))])
async def submit_feedback(
    payload: FeedbackCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    message = payload.message.strip()
    if not message:
        raise BadRequestException("Message is required")

    db.add(Feedback(user_id=current_user.id, message=message, page=(payload.page or "").strip() or "unknown"))
    await db.commit()
    logger.info("Feedback submitted", user_id=current_user.id)
    return {"ok": True, "message": "Feedback submitted successfully"}


@router.get("")
async def list_feedback(
    tester: User = Depends(require_tester_user),
    db: AsyncSession = Depends(get_async_db),
):
    """All feedback, newest first, with the submitter's name and email."""
    result = await db.execute(
        select(Feedback, User.username, User.email)
        .outerjoin(User, User.id == Feedback.user_id)
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
    )
    feedback = [
        {
            "id": item.id,
            "userId": item.user_id,
            "message": item.message,
            "page": item.page,
            "done": item.done,
            "createdAt": as_utc(item.created_at).isoformat() if item.created_at else None,
            "user": {"username": username, "email": email} if username else None,
        }
        for item, username, email in result.all()
    ]
    return {"ok": True, "feedback": feedback}


async def _get_feedback(db: AsyncSession, feedback_id: int) -> Feedback:
    item = await db.get(Feedback, feedback_id)
    if item is None:
        raise ResourceNotFoundException("Feedback not found")
    return item


@router.patch("")
async def update_feedback(
    payload: FeedbackUpdate,
    tester: User = Depends(require_tester_user),
    db: AsyncSession = Depends(get_async_db),
):
    item = await _get_feedback(db, payload.id)
    item.done = payload.done
    await db.commit()
    return {"ok": True, "message": "Feedback updated successfully"}


@router.delete("")
async def delete_feedback(
    payload: FeedbackDelete,
    tester: User = Depends(require_tester_user),
    db: AsyncSession = Depends(get_async_db),
):
    item = await _get_feedback(db, payload.id)
    await db.delete(item)
    await db.commit()
    return {"ok": True, "message": "Feedback deleted successfully"}
