"""
Admin routes: subscription resets, user management and the tester data view.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.rate_limiting import check_rate_limit
from core.security import get_current_admin_user, require_tester_user
from db_config import get_async_db
from models.models import User
from schemas.admin import AdminApplyPromoCode, AdminUserDelete, AdminUserUpdate
from schemas.user import AdminUserRead
from services.admin_service import AdminService

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _admin_user(user: User) -> dict:
    return AdminUserRead.model_validate(user).model_dump(by_alias=True, mode="json")


@router.post("/reset-subscriptions")
async def reset_subscriptions(
    request: Request,
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Move every account back to Free and delete all promo codes."""
    check_rate_limit(request, "admin", admin_user.id)
    result = await AdminService(db).reset_subscriptions()
    return {"ok": True, **result}


@router.get("/users")
async def list_users(
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    users = await AdminService(db).list_users()
    return {"ok": True, "users": [_admin_user(user) for user in users]}


@router.patch("/users")
async def update_user(
    payload: AdminUserUpdate,
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    user = await AdminService(db).update_user(payload)
    return {"ok": True, "user": _admin_user(user)}


@router.post("/users")
async def apply_promo_code(
    payload: AdminApplyPromoCode,
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    message = await AdminService(db).apply_promo_code(payload.user_id, payload.promo_code)
    return {"ok": True, "message": message}


@router.delete("/users")
async def delete_user(
    payload: AdminUserDelete,
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Permanently delete an account and everything it owns."""
    message = await AdminService(db).delete_user(payload.user_id, admin_user)
    return {"ok": True, "message": message}


@router.get("/data")
async def data_overview(
    tester: User = Depends(require_tester_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Everything stored for the calling tester's own account."""
    data = await AdminService(db).data_overview(tester.id)
    return {"ok": True, "data": data}
