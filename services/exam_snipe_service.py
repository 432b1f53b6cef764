"""
Exam Snipe: rank recurring exam concepts by points per study hour, and keep a
per-user history of past analyses.
"""
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import AIServiceException, BadRequestException, ResourceNotFoundException
from core.logging import get_logger
from models.models import ExamSnipeHistory, as_utc
from schemas.sharing import ExamHistorySave
from services.ai_manager import AIManager, parse_json_response
from services.prompts import load_prompt
from services.text_extraction import extract_text_async

logger = get_logger("llm")


def _points_per_hour(concept: Dict[str, Any]) -> float:
    try:
        return float(concept.get("pointsPerHour") or 0)
    except (TypeError, ValueError):
        return 0.0


def rank_concepts(concepts: Any) -> List[Dict[str, Any]]:
    """Concepts sorted by ``pointsPerHour`` descending; non-numeric values rank as 0."""
    if not isinstance(concepts, list):
        return []
    items = [c for c in concepts if isinstance(c, dict)]
    return sorted(items, key=_points_per_hour, reverse=True)


def history_record(row: ExamSnipeHistory) -> Dict[str, Any]:
    return {
        "id": row.id,
        "courseName": row.course_name,
        "slug": row.slug,
        "subjectSlug": row.subject_slug,
        "createdAt": as_utc(row.created_at).isoformat() if row.created_at else None,
        "fileNames": [str(name) for name in row.file_names] if isinstance(row.file_names, list) else [],
        "results": row.results,
    }


async def extract_exam_texts(files: List[Tuple[str, str, bytes]]) -> List[Tuple[str, str]]:
    """Text per exam; unreadable files become a one-line placeholder."""
    texts = []
    for filename, content_type, content in files:
        kind = "DOCX" if filename.lower().endswith(".docx") else "PDF"
        try:
            text = await extract_text_async(filename, content, content_type)
        except Exception as e:
            logger.warning("Exam text extraction raised", file_name=filename, error=str(e))
            texts.append((filename, f"Error processing {filename}: {e}"))
            continue
        if not text.strip():
            text = f"{kind}: {filename} - Text extraction failed (no readable text)."
        texts.append((filename, text))
    return texts


class ExamSnipeService:
    """
    Service for exam analysis and the exam snipe history.
    """

    def __init__(self, db: AsyncSession, ai_manager: Optional[AIManager] = None):
        self.db = db
        self.ai_manager = ai_manager

    async def analyze(self, files: List[Tuple[str, str, bytes]]) -> Dict[str, Any]:
        if not files:
            raise BadRequestException("No exam files provided")

        texts = await extract_exam_texts(files)
        combined = "".join(
            f"=== EXAM {index}: {name} ===\n{text}\n\n" for index, (name, text) in enumerate(texts, start=1)
        )
        logger.info("Analyzing exams", exam_count=len(texts), combined_chars=len(combined))

        raw = await self.ai_manager.chat_text(
            [
                {"role": "system", "content": load_prompt("exam_snipe/system_instruction")},
                {
                    "role": "user",
                    "content": (
                        f"Analyze these {len(texts)} exam PDF(s) and return a JSON list of concepts "
                        f"ranked by Points/Hour.\n\n{combined}"
                    ),
                },
            ],
            model=settings.openai_lesson_model,
            temperature=0.3,
            max_tokens=4000,
        )
        parsed = parse_json_response(raw)
        if not isinstance(parsed, dict):
            logger.warning("Exam analysis reply was not JSON", raw_preview=(raw or "")[:200])
            raise AIServiceException(detail="No valid JSON found in response", status_code=500)

        return {
            "totalExams": len(texts),
            "gradeInfo": parsed.get("gradeInfo") or None,
            "patternAnalysis": parsed.get("patternAnalysis") or None,
            "concepts": rank_concepts(parsed.get("concepts")),
        }

    async def list_history(self, user_id: int) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ExamSnipeHistory)
            .where(ExamSnipeHistory.user_id == user_id)
            .order_by(ExamSnipeHistory.created_at.desc(), ExamSnipeHistory.id.desc())
            .limit(settings.exam_history_limit)
        )
        return [history_record(row) for row in result.scalars().all()]

    async def _get(self, user_id: int, slug: str) -> Optional[ExamSnipeHistory]:
        result = await self.db.execute(
            select(ExamSnipeHistory).where(ExamSnipeHistory.user_id == user_id, ExamSnipeHistory.slug == slug)
        )
        return result.scalar_one_or_none()

    async def save_history(self, user_id: int, payload: ExamHistorySave) -> Dict[str, Any]:
        slug = payload.slug.strip()
        course_name = payload.course_name.strip()
        if not slug or not course_name:
            raise BadRequestException("Missing courseName or slug")

        file_names = [str(name) for name in payload.file_names]
        row = await self._get(user_id, slug)
        if row is None:
            row = ExamSnipeHistory(
                user_id=user_id,
                slug=slug,
                course_name=course_name,
                subject_slug=payload.subject_slug,
                file_names=file_names,
                results=payload.results,
            )
            self.db.add(row)
        else:
            row.course_name = course_name
            row.file_names = file_names
            row.results = payload.results
            if payload.subject_slug is not None:
                row.subject_slug = payload.subject_slug
        await self.db.flush()

        pruned = await self._prune(user_id)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info("Exam snipe saved", user_id=user_id, slug=slug, pruned=pruned)
        return history_record(row)

    async def _prune(self, user_id: int) -> int:
        """Delete the oldest entries beyond the history limit."""
        limit = settings.exam_history_limit
        count = (await self.db.execute(
            select(func.count()).select_from(ExamSnipeHistory).where(ExamSnipeHistory.user_id == user_id)
        )).scalar_one()
        if count <= limit:
            return 0

        oldest = await self.db.execute(
            select(ExamSnipeHistory.id)
            .where(ExamSnipeHistory.user_id == user_id)
            .order_by(ExamSnipeHistory.created_at.asc(), ExamSnipeHistory.id.asc())
            .limit(count - limit)
        )
        ids = list(oldest.scalars().all())
        await self.db.execute(delete(ExamSnipeHistory).where(ExamSnipeHistory.id.in_(ids)))
        return len(ids)

    async def rename_history(self, user_id: int, slug: str, course_name: str) -> Dict[str, Any]:
        slug, course_name = slug.strip(), course_name.strip()
        if not slug or not course_name:
            raise BadRequestException("Missing slug or courseName")

        row = await self._get(user_id, slug)
        if row is None:
            raise ResourceNotFoundException("Record not found")

        row.course_name = course_name
        if isinstance(row.results, dict):
            row.results = {**row.results, "courseName": course_name}
        await self.db.commit()
        await self.db.refresh(row)
        return history_record(row)

    async def delete_history(self, user_id: int, slug: Optional[str]) -> None:
        slug = (slug or "").strip()
        if not slug:
            raise BadRequestException("Missing slug parameter")
        row = await self._get(user_id, slug)
        if row is None:
            raise ResourceNotFoundException("Record not found")
        await self.db.delete(row)
        await self.db.commit()
