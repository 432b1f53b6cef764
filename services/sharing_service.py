"""
Course sharing: public snapshots of a course and copying them into another account.
"""
import re
import copy
import secrets
import time
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import ResourceNotFoundException
from core.logging import get_logger
from models.models import (
    ExamSnipeHistory, SharedCourse, Subject, SubjectData, User, as_utc
)

logger = get_logger("app")

_UNSAFE_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")

MAX_SLUG_LENGTH = 64

# Per-user progress that stays with the sharer
PRIVATE_KEYS = ("surgeLog", "practiceLogs")


def to_safe_slug(value: str) -> str:
    """Lowercase, strip everything but ``[a-z0-9 -]``, dash-join words."""
    slug = _UNSAFE_CHARS.sub("", (value or "").lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


def shared_slug(value: str, fallback: str, suffix: str) -> str:
    """``{safe(value) or fallback}-shared-{suffix}``, capped at 64 characters."""
    base = to_safe_slug(value) or fallback
    return f"{base}-shared-{suffix}"[:MAX_SLUG_LENGTH]


def new_share_suffix() -> str:
    """Millisecond timestamp plus 6 random hex characters."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def rewrite_slug_references(tree: Any, mapping: Mapping[str, str]) -> Any:
    """
    Return a copy of a JSON tree with every string equal to an old slug replaced.

    Only whole-string matches are rewritten, and new slugs are never keys of
    ``mapping``, so applying the same mapping twice changes nothing further.
    """
    if isinstance(tree, dict):
        return {key: rewrite_slug_references(value, mapping) for key, value in tree.items()}
    if isinstance(tree, list):
        return [rewrite_slug_references(item, mapping) for item in tree]
    if isinstance(tree, str):
        return mapping.get(tree, tree)
    return tree


def share_base_url(request_url: str) -> str:
    """Configured public URL, else the request origin with 0.0.0.0 shown as localhost."""
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    parts = urlsplit(request_url)
    host = parts.netloc
    if "0.0.0.0" in host:
        host = "localhost" + (f":{parts.port}" if parts.port else "")
    return f"{parts.scheme}://{host}"


class SharingService:
    """
    Service for creating, reading and saving shared course snapshots.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_share(self, user: User, slug: str, request_url: str) -> Tuple[str, str]:
        """Snapshot ``slug`` for ``user``; returns ``(share_id, share_url)``."""
        data_row = await self.db.execute(
            select(SubjectData).where(SubjectData.user_id == user.id, SubjectData.slug == slug)
        )
        subject_data = data_row.scalar_one_or_none()
        if subject_data is None:
            raise ResourceNotFoundException("Course not found")

        subject_row = await self.db.execute(
            select(Subject).where(Subject.user_id == user.id, Subject.slug == slug)
        )
        subject = subject_row.scalar_one_or_none()
        if subject is None:
            raise ResourceNotFoundException("Subject not found")

        snipes = await self.db.execute(
            select(ExamSnipeHistory)
            .where(ExamSnipeHistory.user_id == user.id, ExamSnipeHistory.subject_slug == slug)
            .order_by(ExamSnipeHistory.created_at.desc())
        )

        snapshot = {
            key: copy.deepcopy(value)
            for key, value in (subject_data.data or {}).items()
            if key not in PRIVATE_KEYS
        }
        snapshot["examSnipes"] = [
            {
                "slug": snipe.slug,
                "courseName": snipe.course_name,
                "fileNames": snipe.file_names or [],
                "results": snipe.results or {},
                "createdAt": as_utc(snipe.created_at).isoformat() if snipe.created_at else None,
            }
            for snipe in snipes.scalars().all()
        ]

        share_id = secrets.token_hex(16)
        self.db.add(SharedCourse(
            share_id=share_id,
            user_id=user.id,
            course_slug=slug,
            course_name=subject.name,
            course_data=snapshot,
        ))
        await self.db.commit()

        share_url = f"{share_base_url(request_url)}/share/{share_id}"
        logger.info("Course shared", user_id=user.id, slug=slug, share_id=share_id,
                    exam_snipes=len(snapshot["examSnipes"]))
        return share_id, share_url

    async def _get_shared(self, share_id: str) -> Tuple[SharedCourse, str]:
        result = await self.db.execute(
            select(SharedCourse, User.username)
            .join(User, User.id == SharedCourse.user_id)
            .where(SharedCourse.share_id == share_id)
        )
        row = result.first()
        if row is None:
            raise ResourceNotFoundException("Shared course not found")
        return row[0], row[1]

    async def get_shared(self, share_id: str) -> Dict[str, Any]:
        shared, sharer = await self._get_shared(share_id)
        return {
            "shareId": shared.share_id,
            "courseName": shared.course_name,
            "courseData": shared.course_data,
            "sharedBy": sharer,
            "createdAt": as_utc(shared.created_at).isoformat() if shared.created_at else None,
        }

    async def save_shared(self, user: User, share_id: str) -> Tuple[str, str]:
        """
        Copy a shared course into ``user``'s account.

        Returns ``(new_slug, name)``. The course and each bundled exam snipe
        get fresh slugs, and references to the old slugs inside the copied
        data are rewritten to the new ones.
        """
        shared, sharer = await self._get_shared(share_id)
        suffix = new_share_suffix()
        name = shared.course_name
        new_slug = shared_slug(shared.course_slug or "course", "course", suffix)

        course_data = copy.deepcopy(shared.course_data or {})
        exam_snipes = course_data.pop("examSnipes", None) or []
        course_data["subject"] = name

        slug_map: Dict[str, str] = {}
        if shared.course_slug:
            slug_map[shared.course_slug] = new_slug
        planned = []
        for snipe in exam_snipes:
            if not isinstance(snipe, dict):
                continue
            old = str(snipe.get("slug") or "exam")
            new = shared_slug(old, "exam", suffix)
            if snipe.get("slug"):
                slug_map[old] = new
            planned.append((new, snipe))

        course_data = rewrite_slug_references(course_data, slug_map)

        await self._upsert_subject(user.id, new_slug, name)
        await self._upsert_subject_data(user.id, new_slug, course_data, sharer)
        await self.db.commit()

        for snipe_slug, snipe in planned:
            try:
                await self._upsert_exam_snipe(
                    user.id,
                    snipe_slug,
                    course_name=snipe.get("courseName") or name,
                    file_names=snipe.get("fileNames") or [],
                    results=rewrite_slug_references(snipe.get("results") or {}, slug_map),
                    subject_slug=new_slug,
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to copy shared exam snipe", share_id=share_id, slug=snipe_slug, error=str(e))

        logger.info("Shared course saved", user_id=user.id, share_id=share_id, slug=new_slug,
                    exam_snipes=len(planned))
        return new_slug, name

    async def _upsert_subject(self, user_id: int, slug: str, name: str) -> Subject:
        result = await self.db.execute(select(Subject).where(Subject.user_id == user_id, Subject.slug == slug))
        subject = result.scalar_one_or_none()
        if subject is None:
            subject = Subject(user_id=user_id, slug=slug, name=name)
            self.db.add(subject)
        else:
            subject.name = name
        await self.db.flush()
        return subject

    async def _upsert_subject_data(
        self, user_id: int, slug: str, data: Dict[str, Any], shared_by: Optional[str]
    ) -> SubjectData:
        result = await self.db.execute(
            select(SubjectData).where(SubjectData.user_id == user_id, SubjectData.slug == slug)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = SubjectData(user_id=user_id, slug=slug, data=data, shared_by_username=shared_by)
            self.db.add(row)
        else:
            row.data = data
            row.shared_by_username = shared_by
        await self.db.flush()
        return row

    async def _upsert_exam_snipe(self, user_id: int, slug: str, **fields) -> ExamSnipeHistory:
        result = await self.db.execute(
            select(ExamSnipeHistory).where(ExamSnipeHistory.user_id == user_id, ExamSnipeHistory.slug == slug)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = ExamSnipeHistory(user_id=user_id, slug=slug, **fields)
            self.db.add(row)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
        await self.db.flush()
        return row
