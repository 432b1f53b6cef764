"""
Promo code management and redemption.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import select, func, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException, ResourceNotFoundException
from core.logging import get_logger
from models.models import (
    PromoCode, PromoCodeRedemption, SubscriptionLevelEnum, User, as_utc, utcnow
)
from schemas.promo import PromoCodeCreate, PromoCodeUpdate
from services.subscription_service import parse_level

logger = get_logger("app")


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def optional_positive_int(value: Any) -> Optional[int]:
    """Admin forms send "", 0 or None for "no limit"; all map to None."""
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise BadRequestException(f"Invalid number: {value}")
    return number if number > 0 else None


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        raise BadRequestException(f"Invalid date: {value}")


def subscription_end_for(promo: PromoCode, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    When a redemption made at ``now`` lapses.

    The earlier of ``now + validity_days`` and the code's own ``expires_at``;
    None (unlimited) when neither is set.
    """
    now = now or utcnow()
    validity_end = None
    if promo.validity_days and promo.validity_days > 0:
        validity_end = now + timedelta(days=promo.validity_days)
    expires_at = as_utc(promo.expires_at)

    if validity_end and expires_at:
        return min(validity_end, expires_at)
    return validity_end or expires_at


def promo_to_dict(promo: PromoCode) -> Dict[str, Any]:
    return {
        "id": promo.id,
        "code": promo.code,
        "description": promo.description,
        "subscriptionLevel": promo.subscription_level.value,
        "expiresAt": as_utc(promo.expires_at).isoformat() if promo.expires_at else None,
        "validityDays": promo.validity_days,
        "maxUses": promo.max_uses,
        "currentUses": promo.current_uses or 0,
        "createdAt": as_utc(promo.created_at).isoformat() if promo.created_at else None,
    }


class PromoCodeService:
    """
    Service for creating, editing and redeeming promo codes.

    Redemption methods flush but never commit; the caller decides whether
    the redemption joins a larger transaction (signup) or stands alone.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[PromoCode]:
        result = await self.db.execute(select(PromoCode).where(PromoCode.code == normalize_code(code)))
        return result.scalar_one_or_none()

    async def create(self, payload: PromoCodeCreate) -> PromoCode:
        code = normalize_code(payload.code)
        if not code:
            raise BadRequestException("Code is required")

        level = parse_level(payload.subscription_level or "Tester")
        if level is None:
            raise BadRequestException("Invalid subscription level")

        if await self.get_by_code(code):
            raise BadRequestException("Code already exists")

        promo = PromoCode(
            code=code,
            description=(payload.description or "").strip() or None,
            subscription_level=level,
            expires_at=parse_datetime(payload.expires_at),
            validity_days=optional_positive_int(payload.validity_days),
            max_uses=optional_positive_int(payload.max_uses),
            current_uses=0,
        )
        self.db.add(promo)
        await self.db.commit()
        await self.db.refresh(promo)
        logger.info("Promo code created", code=code, level=level.value)
        return promo

    async def list_codes(self) -> List[Dict[str, Any]]:
        """All codes, newest first, each with its redemptions and redeemers."""
        result = await self.db.execute(select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()))
        promos = result.scalars().all()

        redemptions = await self.db.execute(
            select(PromoCodeRedemption, User.username, User.email)
            .join(User, User.id == PromoCodeRedemption.user_id)
            .order_by(PromoCodeRedemption.redeemed_at)
        )
        by_code: Dict[int, List[Dict[str, Any]]] = {}
        for redemption, username, email in redemptions.all():
            by_code.setdefault(redemption.promo_code_id, []).append({
                "id": redemption.id,
                "userId": redemption.user_id,
                "redeemedAt": as_utc(redemption.redeemed_at).isoformat() if redemption.redeemed_at else None,
                "user": {"username": username, "email": email},
            })

        codes = []
        for promo in promos:
            item = promo_to_dict(promo)
            item["redemptions"] = by_code.get(promo.id, [])
            codes.append(item)
        return codes

    async def update(self, payload: PromoCodeUpdate) -> PromoCode:
        promo = await self.db.get(PromoCode, payload.id)
        if promo is None:
            raise ResourceNotFoundException("Promo code not found")

        fields = payload.model_fields_set
        if "code" in fields and payload.code:
            code = normalize_code(payload.code)
            if code != promo.code and await self.get_by_code(code):
                raise BadRequestException("Code already exists")
            promo.code = code

        if "subscription_level" in fields and payload.subscription_level:
            level = parse_level(payload.subscription_level)
            if level is None:
                raise BadRequestException("Invalid subscription level")
            promo.subscription_level = level

        if "description" in fields:
            promo.description = (payload.description or "").strip() or None
        if "expires_at" in fields:
            promo.expires_at = parse_datetime(payload.expires_at)
        if "validity_days" in fields:
            promo.validity_days = optional_positive_int(payload.validity_days)
        if "max_uses" in fields:
            promo.max_uses = optional_positive_int(payload.max_uses)

        await self.db.commit()
        await self.db.refresh(promo)
        logger.info("Promo code updated", promo_code_id=promo.id, fields=sorted(fields - {"id"}))
        return promo

    async def delete(self, promo_id: int) -> None:
        promo = await self.db.get(PromoCode, promo_id)
        if promo is None:
            raise ResourceNotFoundException("Promo code not found")
        await self.db.execute(delete(PromoCodeRedemption).where(PromoCodeRedemption.promo_code_id == promo_id))
        await self.db.delete(promo)
        await self.db.commit()
        logger.info("Promo code deleted", promo_code_id=promo_id)

    async def validate_for_user(
        self,
        code: str,
        user_id: Optional[int],
        already_redeemed_message: str = "You have already redeemed this code",
    ) -> PromoCode:
        """Return the redeemable code or raise 400 with the reason it is not."""
        promo = await self.get_by_code(code)
        if promo is None:
            raise BadRequestException("Invalid promo code")

        if promo.expires_at and as_utc(promo.expires_at) < utcnow():
            raise BadRequestException("This promo code has expired")

        if promo.max_uses and (promo.current_uses or 0) >= promo.max_uses:
            raise BadRequestException("This promo code has reached its usage limit")

        if user_id is not None:
            existing = await self.db.execute(
                select(func.count()).select_from(PromoCodeRedemption).where(
                    PromoCodeRedemption.promo_code_id == promo.id,
                    PromoCodeRedemption.user_id == user_id,
                )
            )
            if existing.scalar_one():
                raise BadRequestException(already_redeemed_message)
        return promo

    async def apply_code(self, promo: PromoCode, user: User) -> SubscriptionLevelEnum:
        """Record the redemption, bump the counter and upgrade ``user``."""
        now = utcnow()
        claim = (
            update(PromoCode)
            .where(PromoCode.id == promo.id)
            .values(current_uses=func.coalesce(PromoCode.current_uses, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        if promo.max_uses:
            claim = claim.where(func.coalesce(PromoCode.current_uses, 0) < promo.max_uses)
        result = await self.db.execute(claim)
        if result.rowcount == 0:
            # Another redemption took the last use since validation
            raise BadRequestException("This promo code has reached its usage limit")
        await self.db.refresh(promo, ["current_uses"])

        self.db.add(PromoCodeRedemption(promo_code_id=promo.id, user_id=user.id, redeemed_at=now))

        user.subscription_level = promo.subscription_level
        user.promo_code_used = promo.code
        user.subscription_start = now
        user.subscription_end = subscription_end_for(promo, now)
        await self.db.flush()

        logger.info(
            "Promo code applied",
            user_id=user.id,
            code=promo.code,
            level=promo.subscription_level.value,
            subscription_end=user.subscription_end.isoformat() if user.subscription_end else None,
        )
        return promo.subscription_level

    async def redeem(self, code: str, user: User) -> SubscriptionLevelEnum:
        code = normalize_code(code)
        if not code:
            raise BadRequestException("Code is required")
        promo = await self.validate_for_user(code, user.id)
        level = await self.apply_code(promo, user)
        await self.db.commit()
        return level
