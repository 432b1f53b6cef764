"""
Practice routes: flashcards, quizzes, practice problems, Surge quizzes and
spoken lessons.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from core.rate_limiting import check_rate_limit
from core.security import get_optional_user, require_premium_user
from db_config import get_async_db
from models.models import User
from schemas.generation import (
    CheckQuizRequest, FlashcardRequest, LessonFlashcardRequest, McQuizRequest, PracticeProblemsRequest,
    SurgeQuizCheckRequest, SurgeQuizRequest, TextToSpeechRequest,
)
from services.ai_manager import AIManager, get_ai_manager
from services.flashcard_service import FlashcardService
from services.quiz_service import QuizService
from services.subscription_service import record_api_call

router = APIRouter(prefix="/api", tags=["Quizzes"])


def _limit(request: Request, user: Optional[User]) -> None:
    check_rate_limit(request, "llm", user.id if user else None)


async def _track(db: AsyncSession, user: Optional[User]) -> None:
    if user is not None:
        await record_api_call(db, user.id)


@router.post("/generate-flashcards")
async def generate_flashcards(
    payload: FlashcardRequest,
    request: Request,
    current_user: User = Depends(require_premium_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """
    Generate flashcards from arbitrary study content.

    - **content**: at least 50 characters
    - **count**: clamped to 1-100
    """
    _limit(request, current_user)
    cards, raw = await FlashcardService(ai_manager).from_content(payload)
    await _track(db, current_user)
    return {"ok": True, "flashcards": cards, "raw": raw}


@router.post("/lesson-flashcards")
async def lesson_flashcards(
    payload: LessonFlashcardRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    _limit(request, current_user)
    cards, raw = await FlashcardService(ai_manager).from_lesson(payload)
    await _track(db, current_user)
    return {"ok": True, "flashcards": cards, "raw": raw}


@router.post("/generate-mc-quiz")
async def generate_mc_quiz(
    payload: McQuizRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    _limit(request, current_user)
    questions = await QuizService(ai_manager).mc_quiz(payload)
    await _track(db, current_user)
    return {"ok": True, "questions": questions}


@router.post("/check-quiz")
async def check_quiz(
    payload: CheckQuizRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """Grade free-text answers against the lesson; results are keyed by answer index."""
    _limit(request, current_user)
    results = await QuizService(ai_manager).check_quiz(payload)
    await _track(db, current_user)
    return {"ok": True, "results": results}


@router.post("/generate-practice-problems")
async def generate_practice_problems(
    payload: PracticeProblemsRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    _limit(request, current_user)
    problems = await QuizService(ai_manager).practice_problems(payload)
    await _track(db, current_user)
    return {"ok": True, "problems": problems}


@router.post("/surge-quiz")
async def surge_quiz(
    payload: SurgeQuizRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    _limit(request, current_user)
    result = await QuizService(ai_manager).surge_quiz(payload)
    await _track(db, current_user)
    return result


@router.post("/surge-quiz-check")
async def surge_quiz_check(
    payload: SurgeQuizCheckRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    _limit(request, current_user)
    result = await QuizService(ai_manager).surge_check(payload)
    await _track(db, current_user)
    return result


@router.post("/text-to-speech")
async def text_to_speech(
    payload: TextToSpeechRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """Read a lesson aloud; markdown, code and math are dropped first. Returns MP3 audio."""
    _limit(request, current_user)
    audio = await QuizService(ai_manager).text_to_speech(payload.text)
    await _track(db, current_user)
    return Response(content=audio, media_type="audio/mpeg", headers={"Cache-Control": "no-cache"})
