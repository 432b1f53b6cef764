"""
Promo code routes: creation by shared secret, admin management and redemption.
"""
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import AuthorizationException, BadRequestException
from core.logging import get_logger
from core.rate_limiting import check_rate_limit
from core.security import get_current_active_user, get_current_admin_user
from db_config import get_async_db
from models.models import User
from schemas.promo import PromoCodeCreate, PromoCodeRedeem, PromoCodeUpdate
from services.promo_service import PromoCodeService, promo_to_dict

router = APIRouter(prefix="/api/promo-codes", tags=["Promo Codes"])
logger = get_logger("security")


@router.post("/create")
async def create_promo_code(payload: PromoCodeCreate, request: Request, db: AsyncSession = Depends(get_async_db)):
    """
    Create a promo code.

    Authorised by the shared admin secret rather than a session, so codes
    can be minted from scripts.
    """
    check_rate_limit(request, "admin")
    if not secrets.compare_digest(payload.admin_secret.encode(), settings.admin_secret.encode()):
        logger.warning("Promo code creation with wrong admin secret")
        raise AuthorizationException("Unauthorized")

    promo = await PromoCodeService(db).create(payload)
    return {"ok": True, "promoCode": promo_to_dict(promo)}


@router.get("")
async def list_promo_codes(
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    codes = await PromoCodeService(db).list_codes()
    return {"ok": True, "promoCodes": codes}


@router.patch("")
async def update_promo_code(
    payload: PromoCodeUpdate,
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    promo = await PromoCodeService(db).update(payload)
    return {"ok": True, "promoCode": promo_to_dict(promo)}


@router.delete("")
async def delete_promo_code(
    id: Optional[int] = Query(None),
    admin_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    if id is None:
        raise BadRequestException("Promo code ID is required")
    await PromoCodeService(db).delete(id)
    return {"ok": True}


@router.post("/redeem")
async def redeem_promo_code(
    payload: PromoCodeRedeem,
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Upgrade the caller with a promo code; each account can redeem a code once."""
    check_rate_limit(request, "auth", current_user.id)
    level = await PromoCodeService(db).redeem(payload.code, current_user)
    return {
        "ok": True,
        "subscriptionLevel": level.value,
        "message": f"Successfully upgraded to {level.value} tier!",
    }
