"""
Subscription status and self-service level changes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException
from core.logging import get_logger
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User, as_utc
from schemas.admin import SubscriptionUpdate
from services.subscription_service import UsageService, get_subscription_limits, parse_level

router = APIRouter(prefix="/api/subscription", tags=["Subscription"])
logger = get_logger("auth")


def _iso(value):
    return as_utc(value).isoformat() if value else None


@router.get("/info")
async def subscription_info(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Current level, its limits and this period's usage counters."""
    usage = await UsageService(db).get_usage_stats(current_user.id)
    return {
        "ok": True,
        "subscription": {
            "level": current_user.subscription_level.value,
            "start": _iso(current_user.subscription_start),
            "end": _iso(current_user.subscription_end),
            "billingPeriod": current_user.billing_period,
            "paymentStatus": current_user.payment_status,
            "promoCodeUsed": current_user.promo_code_used,
        },
        "limits": get_subscription_limits(current_user.subscription_level).to_dict(),
        "usage": {
            "coursesCreated": usage["courses_created"],
            "lessonsGenerated": usage["lessons_generated"],
            "apiCalls": usage["api_calls"],
        },
    }


@router.post("/update")
async def update_subscription(
    payload: SubscriptionUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    level = parse_level(payload.subscription_level)
    if level is None:
        raise BadRequestException("Invalid subscription level")

    current_user.subscription_level = level
    await db.commit()
    logger.info("Subscription level changed", user_id=current_user.id, level=level.value)
    return {"ok": True, "subscriptionLevel": level.value}
