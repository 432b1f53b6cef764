"""
Subscription tiers, their limits, and per-user usage counters.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Tuple, Union
from pydantic.alias_generators import to_camel
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging import get_logger
from core.security import has_premium_access
from models.models import Subject, SubscriptionLevelEnum, UsageStats, utcnow

logger = get_logger("database")

USAGE_FIELDS = ("courses_created", "lessons_generated", "api_calls")


@dataclass(frozen=True)
class SubscriptionLimits:
    """``None`` means unlimited."""

    max_courses: Optional[int]
    max_lessons_per_course: Optional[int]
    max_api_calls_per_month: Optional[int]
    can_use_advanced_features: bool
    can_export_pdf: bool
    can_use_quick_learn: bool

    def to_dict(self) -> Dict[str, Union[int, bool, None]]:
        return {to_camel(key): value for key, value in asdict(self).items()}


_UNLIMITED = SubscriptionLimits(
    max_courses=None,
    max_lessons_per_course=None,
    max_api_calls_per_month=None,
    can_use_advanced_features=True,
    can_export_pdf=True,
    can_use_quick_learn=True,
)

SUBSCRIPTION_LIMITS: Dict[SubscriptionLevelEnum, SubscriptionLimits] = {
    SubscriptionLevelEnum.Free: SubscriptionLimits(
        max_courses=3,
        max_lessons_per_course=10,
        max_api_calls_per_month=100,
        can_use_advanced_features=False,
        can_export_pdf=False,
        can_use_quick_learn=False,
    ),
    SubscriptionLevelEnum.Paid: _UNLIMITED,
    SubscriptionLevelEnum.Tester: _UNLIMITED,
}


def parse_level(value) -> Optional[SubscriptionLevelEnum]:
    """Map "Free"/"Paid"/"Tester" (or the enum itself) to the enum; None if invalid."""
    if isinstance(value, SubscriptionLevelEnum):
        return value
    try:
        return SubscriptionLevelEnum(value)
    except ValueError:
        return None


def get_subscription_limits(level) -> SubscriptionLimits:
    return SUBSCRIPTION_LIMITS.get(parse_level(level), SUBSCRIPTION_LIMITS[SubscriptionLevelEnum.Free])


def can_create_course(level, current_course_count: int) -> Tuple[bool, Optional[str]]:
    limits = get_subscription_limits(level)
    if limits.max_courses is not None and current_course_count >= limits.max_courses:
        return False, (
            f"Free plan limited to {limits.max_courses} courses. Upgrade to create unlimited courses."
        )
    return True, None


def can_generate_lesson(level, current_lesson_count: int) -> Tuple[bool, Optional[str]]:
    limits = get_subscription_limits(level)
    if limits.max_lessons_per_course is not None and current_lesson_count >= limits.max_lessons_per_course:
        return False, (
            f"Free plan limited to {limits.max_lessons_per_course} lessons per course. "
            "Upgrade for unlimited lessons."
        )
    return True, None


def can_use_feature(level, feature: str) -> bool:
    return bool(getattr(get_subscription_limits(level), feature))


class UsageService:
    """
    Service for reading and updating a user's usage counters.

    Changes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, user_id: int) -> Optional[UsageStats]:
        result = await self.db.execute(select(UsageStats).where(UsageStats.user_id == user_id))
        return result.scalar_one_or_none()

    async def increment_usage(self, user_id: int, field: str) -> UsageStats:
        if field not in USAGE_FIELDS:
            raise ValueError(f"Unknown usage counter: {field}")

        stats = await self._get_row(user_id)
        if stats is None:
            stats = UsageStats(user_id=user_id, courses_created=0, lessons_generated=0, api_calls=0)
            self.db.add(stats)
            await self.db.flush()

        column = getattr(UsageStats, field)
        await self.db.execute(
            update(UsageStats)
            .where(UsageStats.id == stats.id)
            .values({field: func.coalesce(column, 0) + 1})
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(stats, [field])
        logger.debug("Usage incremented", user_id=user_id, counter=field)
        return stats

    async def get_usage_stats(self, user_id: int) -> Dict[str, int]:
        stats = await self._get_row(user_id)
        if stats is None:
            return {field: 0 for field in USAGE_FIELDS}
        return {field: getattr(stats, field) or 0 for field in USAGE_FIELDS}

    async def reset_monthly_usage(self, user_id: int) -> None:
        stats = await self._get_row(user_id)
        if stats is None:
            return
        for field in USAGE_FIELDS:
            setattr(stats, field, 0)
        stats.last_reset_at = utcnow()
        await self.db.flush()
        logger.info("Monthly usage reset", user_id=user_id)

    async def count_courses(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Subject).where(Subject.user_id == user_id)
        )
        return result.scalar_one()


async def record_api_call(db: AsyncSession, user_id: int, lesson: bool = False) -> None:
    """Count one successful LLM call, plus a generated lesson when ``lesson``."""
    usage = UsageService(db)
    await usage.increment_usage(user_id, "api_calls")
    if lesson:
        await usage.increment_usage(user_id, "lessons_generated")
    await db.commit()


__all__ = [
    "SubscriptionLimits", "SUBSCRIPTION_LIMITS", "USAGE_FIELDS", "UsageService",
    "can_create_course", "can_generate_lesson", "can_use_feature", "get_subscription_limits",
    "has_premium_access", "parse_level", "record_api_call",
]
