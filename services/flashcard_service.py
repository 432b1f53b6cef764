"""
Flashcard generation from arbitrary content or a single lesson.
"""
from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.exceptions import BadRequestException
from core.logging import get_logger
from schemas.generation import FlashcardRequest, LessonFlashcardRequest
from services.ai_manager import AIManager, parse_json_response
from services.lesson_format import strip_lesson_metadata
from services.prompts import load_prompt

logger = get_logger("llm")

MIN_CONTENT_CHARS = 50
LESSON_CARD_COUNTS = (3, 5, 7, 9)


def clamp_card_count(value: Any, default: int = 5) -> int:
    try:
        count = int(float(value))
    except (TypeError, ValueError):
        count = default
    return max(1, min(100, count))


def lesson_card_count(value: Optional[int]) -> int:
    return value if value in LESSON_CARD_COUNTS else 5


def valid_flashcards(data: Any) -> List[Dict[str, Any]]:
    """Cards that have both a prompt and an answer."""
    cards = data.get("flashcards") if isinstance(data, dict) else None
    if not isinstance(cards, list):
        return []
    return [card for card in cards if isinstance(card, dict) and card.get("prompt") and card.get("answer")]


def _system_prompt(name: str, language_name: str) -> str:
    prompt = load_prompt(name)
    return f"{prompt}\nWrite in {language_name}." if language_name else prompt


def _join(parts: List[str]) -> str:
    return "\n\n".join(part for part in parts if part)


class FlashcardService:
    """
    Service for generating flashcards with the lesson model.
    """

    def __init__(self, ai_manager: AIManager):
        self.ai_manager = ai_manager

    async def _generate(self, system: str, user: str) -> Tuple[List[Dict[str, Any]], str]:
        raw = await self.ai_manager.chat_text(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            model=settings.openai_lesson_model,
            temperature=0.6,
            max_tokens=2000,
            response_format={"type": "json_object"},
        )
        raw = raw or "{}"
        cards = valid_flashcards(parse_json_response(raw))
        logger.info("Flashcards generated", card_count=len(cards))
        return cards, raw

    async def from_content(self, request: FlashcardRequest) -> Tuple[List[Dict[str, Any]], str]:
        content = request.content or ""
        if len(content.strip()) < MIN_CONTENT_CHARS:
            raise BadRequestException("Content is required and must be at least 50 characters")

        count = clamp_card_count(request.count)
        user = _join([
            f"Subject: {request.subject}" if request.subject else "",
            f"Topic: {request.topic}" if request.topic else "",
            f"Course context: {request.course_context}" if request.course_context else "",
            f"Create exactly {count} flashcards from the content below.",
            "Content:",
            strip_lesson_metadata(content),
        ])
        return await self._generate(_system_prompt("flashcards/content_instruction", request.language_name), user)

    async def from_lesson(self, request: LessonFlashcardRequest) -> Tuple[List[Dict[str, Any]], str]:
        if not request.lesson_body:
            raise BadRequestException("Missing lesson content")

        count = lesson_card_count(request.count)
        user = _join([
            f"Subject: {request.subject}" if request.subject else "",
            f"Topic: {request.topic}" if request.topic else "",
            f"Lesson title: {request.lesson_title}" if request.lesson_title else "",
            f"Course context: {request.course_context}" if request.course_context else "",
            f"Create exactly {count} flashcards from the lesson below.",
            request.lesson_body,
        ])
        return await self._generate(_system_prompt("flashcards/lesson_instruction", request.language_name), user)
