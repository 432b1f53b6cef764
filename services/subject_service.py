"""
Subjects (courses) and their stored data blobs.
"""
import copy
from typing import Any, Dict, List, Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import AuthorizationException, ResourceNotFoundException
from core.logging import get_logger
from models.models import ExamSnipeHistory, Subject, SubjectData, User
from services.subject_merge import merge_subject_data
from services.subscription_service import UsageService, can_create_course

logger = get_logger("app")


def slim_subject_data(data: Dict[str, Any], max_chars: Optional[int] = None) -> Dict[str, Any]:
    """
    Copy of ``data`` small enough to store.

    Inline file contents are dropped (names and ids stay), ``combinedText``
    is capped and ``rawLessonJson`` is cleared on every lesson.
    """
    max_chars = settings.stored_text_max_chars if max_chars is None else max_chars
    slim = copy.deepcopy(data or {})

    files = slim.get("files")
    if isinstance(files, list):
        slim["files"] = [
            {key: value for key, value in item.items() if key != "data"} if isinstance(item, dict) else item
            for item in files
        ]

    combined = slim.get("combinedText")
    if isinstance(combined, str) and len(combined) > max_chars:
        slim["combinedText"] = combined[:max_chars]

    nodes = slim.get("nodes")
    if isinstance(nodes, dict):
        for node in nodes.values():
            if not isinstance(node, dict):
                continue
            if "rawLessonJson" in node:
                node["rawLessonJson"] = []
            for lesson in node.get("lessons") or []:
                if isinstance(lesson, dict) and "rawLessonJson" in lesson:
                    lesson["rawLessonJson"] = None
    return slim


class SubjectService:
    """
    Service for a user's subjects and their data.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_subjects(self, user_id: int) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Subject, SubjectData.shared_by_username)
            .outerjoin(
                SubjectData,
                (SubjectData.user_id == Subject.user_id) & (SubjectData.slug == Subject.slug),
            )
            .where(Subject.user_id == user_id)
            .order_by(Subject.created_at.desc(), Subject.id.desc())
        )
        return [
            {"slug": subject.slug, "name": subject.name, "created_at": subject.created_at,
             "shared_by_username": shared_by}
            for subject, shared_by in result.all()
        ]

    async def get_subject(self, user_id: int, slug: str) -> Optional[Subject]:
        result = await self.db.execute(select(Subject).where(Subject.user_id == user_id, Subject.slug == slug))
        return result.scalar_one_or_none()

    async def upsert_subject(self, user: User, slug: str, name: str) -> Subject:
        """Create or rename; creating counts against the Free course limit."""
        subject = await self.get_subject(user.id, slug)
        if subject is not None:
            subject.name = name
            await self.db.commit()
            return subject

        usage = UsageService(self.db)
        allowed, reason = can_create_course(user.subscription_level, await usage.count_courses(user.id))
        if not allowed:
            logger.info("Course limit reached", user_id=user.id, level=user.subscription_level.value)
            raise AuthorizationException(reason)

        subject = Subject(user_id=user.id, slug=slug, name=name)
        self.db.add(subject)
        await usage.increment_usage(user.id, "courses_created")
        await self.db.commit()
        await self.db.refresh(subject)
        logger.info("Subject created", user_id=user.id, slug=slug)
        return subject

    async def rename_subject(self, user_id: int, slug: str, name: str) -> Subject:
        subject = await self.get_subject(user_id, slug)
        if subject is None:
            raise ResourceNotFoundException("Subject not found")
        subject.name = name
        await self.db.commit()
        return subject

    async def delete_subject(self, user_id: int, slug: str) -> None:
        """Drop the subject's exam history, then its data, then the subject row."""
        await self.db.execute(
            delete(ExamSnipeHistory).where(
                ExamSnipeHistory.user_id == user_id, ExamSnipeHistory.subject_slug == slug
            )
        )
        await self.db.execute(delete(SubjectData).where(SubjectData.user_id == user_id, SubjectData.slug == slug))
        deleted = await self.db.execute(delete(Subject).where(Subject.user_id == user_id, Subject.slug == slug))
        await self.db.commit()
        # Orphaned history and data are still cleared when the subject row is gone
        if not deleted.rowcount:
            raise ResourceNotFoundException("Subject not found")
        logger.info("Subject deleted", user_id=user_id, slug=slug)

    async def delete_subject_data(self, user_id: int, slug: str) -> None:
        deleted = await self.db.execute(
            delete(SubjectData).where(SubjectData.user_id == user_id, SubjectData.slug == slug)
        )
        await self.db.commit()
        if not deleted.rowcount:
            raise ResourceNotFoundException("Subject data not found")

    async def get_data_row(self, user_id: int, slug: str) -> Optional[SubjectData]:
        result = await self.db.execute(
            select(SubjectData).where(SubjectData.user_id == user_id, SubjectData.slug == slug)
        )
        return result.scalar_one_or_none()

    async def get_data(self, user_id: int, slug: str) -> Optional[Dict[str, Any]]:
        row = await self.get_data_row(user_id, slug)
        return row.data if row else None

    async def save_data(self, user_id: int, slug: str, data: Dict[str, Any], commit: bool = True) -> Dict[str, Any]:
        slim = slim_subject_data(data)
        row = await self.get_data_row(user_id, slug)
        if row is None:
            self.db.add(SubjectData(user_id=user_id, slug=slug, data=slim))
        else:
            row.data = slim
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        return slim

    async def sync_data(self, user_id: int, slug: str, local: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the client's copy into the stored one and keep the result."""
        server = await self.get_data(user_id, slug) or {}
        merged = merge_subject_data(server, local)
        stored = await self.save_data(user_id, slug, merged)
        logger.debug("Subject data synced", user_id=user_id, slug=slug)
        return stored
