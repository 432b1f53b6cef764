"""
Admin operations: subscription resets, user management and the tester data overview.
"""
from typing import Any, Dict, List
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestException, ResourceNotFoundException
from core.logging import get_logger
from models.models import (
    ExamSnipeHistory, PromoCode, PromoCodeRedemption, Subject, SubjectData, SubscriptionLevelEnum, User,
    USER_OWNED_MODELS, as_utc,
)
from schemas.admin import AdminUserUpdate
from services.promo_service import PromoCodeService, normalize_code
from services.subscription_service import parse_level

logger = get_logger("security")


def _iso(value):
    return as_utc(value).isoformat() if value else None


def _list_len(value) -> int:
    return len(value) if isinstance(value, list) else 0


def collect_lessons(slug: str, course_name: str, data: Dict[str, Any], updated_at) -> List[Dict[str, Any]]:
    """Lesson titles stored under ``nodes[topic].lessons`` and ``generatedLessons``."""
    lessons = []
    fallback_time = _iso(updated_at)

    def add(topic, lesson, generated=False):
        title = lesson.get("title") or "Untitled"
        marker = "-generated" if generated else ""
        lessons.append({
            "id": f"{slug}-{topic}{marker}-{lesson.get('title') or 'unknown'}",
            "courseSlug": slug,
            "courseName": course_name,
            "topicName": topic,
            "lessonTitle": title,
            "createdAt": lesson.get("createdAt") or fallback_time,
        })

    nodes = data.get("nodes") if isinstance(data, dict) else None
    if isinstance(nodes, dict):
        for topic, node in nodes.items():
            if isinstance(node, dict) and isinstance(node.get("lessons"), list):
                for lesson in node["lessons"]:
                    if isinstance(lesson, dict):
                        add(topic, lesson)

    generated = data.get("generatedLessons") if isinstance(data, dict) else None
    if isinstance(generated, dict):
        for topic, topic_lessons in generated.items():
            items = topic_lessons if isinstance(topic_lessons, list) else (
                list(topic_lessons.values()) if isinstance(topic_lessons, dict) else []
            )
            for lesson in items:
                if isinstance(lesson, dict):
                    add(topic, lesson, generated=True)
    return lessons


class AdminService:
    """
    Service for admin-only account and subscription management.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reset_subscriptions(self) -> Dict[str, Any]:
        """Move every user to Free and delete every promo code."""
        before = {}
        for level in SubscriptionLevelEnum:
            result = await self.db.execute(
                select(func.count()).select_from(User).where(User.subscription_level == level)
            )
            before[level.value.lower()] = result.scalar_one()

        users = await self.db.execute(
            update(User).values(
                subscription_level=SubscriptionLevelEnum.Free,
                subscription_start=None,
                subscription_end=None,
                billing_period=None,
                payment_status=None,
                promo_code_used=None,
            )
        )
        await self.db.execute(delete(PromoCodeRedemption))
        promos = await self.db.execute(delete(PromoCode))
        await self.db.commit()

        users_updated = users.rowcount or 0
        promo_codes_deleted = promos.rowcount or 0
        logger.warning("Subscriptions reset", users_updated=users_updated, promo_codes_deleted=promo_codes_deleted)
        return {
            "message": "All subscriptions reset and promo codes deleted",
            "usersUpdated": users_updated,
            "promoCodesDeleted": promo_codes_deleted,
            "beforeReset": before,
            "summary": (
                f"Reset {users_updated} users ({before['paid']} Paid, {before['tester']} Tester) "
                f"to Free and deleted {promo_codes_deleted} promo codes"
            ),
        }

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
        return list(result.scalars().all())

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundException("User not found")
        return user

    async def update_user(self, payload: AdminUserUpdate) -> User:
        user = await self._get_user(payload.user_id)
        fields = payload.model_fields_set

        if payload.subscription_level:
            level = parse_level(payload.subscription_level)
            if level is None:
                raise BadRequestException("Invalid subscription level")
            user.subscription_level = level
        if payload.subscription_start is not None:
            user.subscription_start = payload.subscription_start
        if "subscription_end" in fields:
            user.subscription_end = payload.subscription_end

        await self.db.commit()
        await self.db.refresh(user)
        logger.info("User subscription updated by admin", user_id=user.id, level=user.subscription_level.value)
        return user

    async def apply_promo_code(self, user_id: int, code: str) -> str:
        code = normalize_code(code)
        if not user_id or not code:
            raise BadRequestException("User ID and code are required")

        user = await self._get_user(user_id)
        promo_service = PromoCodeService(self.db)
        promo = await promo_service.validate_for_user(
            code, user.id, already_redeemed_message="User has already redeemed this code"
        )
        await promo_service.apply_code(promo, user)
        await self.db.commit()
        return f"Successfully applied code {code} to user"

    async def delete_user(self, user_id: int, acting_user: User) -> str:
        """Delete a user and every row they own; admins cannot delete themselves."""
        if user_id == acting_user.id:
            raise BadRequestException("You cannot delete your own account")

        user = await self._get_user(user_id)
        username = user.username

        # Explicit deletes so nothing depends on the database honouring ON DELETE
        for model in USER_OWNED_MODELS:
            await self.db.execute(delete(model).where(model.user_id == user_id))
        await self.db.execute(delete(User).where(User.id == user_id))
        await self.db.commit()

        logger.warning("User deleted by admin", deleted_user_id=user_id, username=username,
                       admin_id=acting_user.id)
        return f"User {username} and all their data have been permanently deleted"

    async def data_overview(self, user_id: int) -> Dict[str, Any]:
        """Everything stored for ``user_id``: courses, snipes, lessons and per-course counts."""
        subjects = (await self.db.execute(
            select(Subject).where(Subject.user_id == user_id).order_by(Subject.created_at.desc())
        )).scalars().all()
        snipes = (await self.db.execute(
            select(ExamSnipeHistory)
            .where(ExamSnipeHistory.user_id == user_id)
            .order_by(ExamSnipeHistory.created_at.desc())
        )).scalars().all()
        data_rows = (await self.db.execute(
            select(SubjectData).where(SubjectData.user_id == user_id)
        )).scalars().all()

        names = {subject.slug: subject.name for subject in subjects}
        lessons: List[Dict[str, Any]] = []
        summaries = []
        for row in data_rows:
            data = row.data if isinstance(row.data, dict) else {}
            lessons.extend(collect_lessons(row.slug, names.get(row.slug, row.slug), data, row.updated_at))
            counts = {
                "surgeLogCount": _list_len(data.get("surgeLog")),
                "practiceLogCount": _list_len(data.get("practiceLogs")),
                "reviewScheduleCount": len(data.get("reviewSchedules") or {}) if isinstance(data.get("reviewSchedules"), dict) else 0,
                "fileCount": _list_len(data.get("files")),
            }
            summaries.append({
                "id": row.id,
                "slug": row.slug,
                "updatedAt": _iso(row.updated_at),
                "hasSurgeLogs": counts["surgeLogCount"] > 0,
                "hasPracticeLogs": counts["practiceLogCount"] > 0,
                "hasReviewSchedules": counts["reviewScheduleCount"] > 0,
                "hasFiles": counts["fileCount"] > 0,
                **counts,
            })

        return {
            "courses": [
                {"id": s.id, "name": s.name, "slug": s.slug, "createdAt": _iso(s.created_at)} for s in subjects
            ],
            "examSnipes": [
                {
                    "id": e.id,
                    "courseName": e.course_name,
                    "slug": e.slug,
                    "subjectSlug": e.subject_slug,
                    "fileNames": e.file_names or [],
                    "createdAt": _iso(e.created_at),
                }
                for e in snipes
            ],
            "lessons": lessons,
            "subjectData": summaries,
        }
