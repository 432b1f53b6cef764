"""
Course sharing routes: publish a snapshot, view it, and copy it into an account.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.rate_limiting import check_rate_limit
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.sharing import ShareCreate
from services.sharing_service import SharingService

router = APIRouter(prefix="/api/courses/share", tags=["Sharing"])


@router.post("")
async def share_course(
    payload: ShareCreate,
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Publish a read-only snapshot of one of the caller's courses.

    Personal practice logs are left out; exam snipes linked to the course
    travel with it.
    """
    check_rate_limit(request, "share", current_user.id)
    share_id, share_url = await SharingService(db).create_share(current_user, payload.slug, str(request.url))
    return {"ok": True, "shareId": share_id, "shareUrl": share_url}


@router.get("/{share_id}")
async def get_shared_course(share_id: str, db: AsyncSession = Depends(get_async_db)):
    course = await SharingService(db).get_shared(share_id)
    return {"ok": True, "course": course}


@router.post("/{share_id}/save")
async def save_shared_course(
    share_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Copy a shared course, and its exam snipes, into the caller's account under fresh slugs."""
    slug, name = await SharingService(db).save_shared(current_user, share_id)
    return {"ok": True, "slug": slug, "name": name}
