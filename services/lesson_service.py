"""
Prompt assembly for streamed lesson generation.
"""
from typing import AsyncIterator, Dict, List

from core.config import settings
from core.exceptions import BadRequestException
from core.logging import get_logger
from schemas.generation import LessonMeta, LessonStreamRequest
from services.ai_manager import AIManager
from services.prompts import load_prompt

logger = get_logger("llm")

QUICK_LEARN_SUBJECTS = ("Quick Learn", "quicklearn")
RULE = "=" * 50

FINAL_RULE = (
    "FINAL RULE:\n"
    "- If the prose is under 3000 words when finished, extend explanations or add more depth until "
    "requirements are satisfied."
)
SIMPLIFY_SYSTEM = (
    "If mode is simplify, keep scope identical but rewrite explanations to be easier, without changing "
    "the quiz meaning."
)
SIMPLIFY_INSTRUCTION = (
    "Instruction: Rewrite the CURRENT section at an easier level. Keep the SAME scope, do not add new "
    "concepts. You may rewrite questions to match simpler wording but keep the same meaning and answer mapping."
)


def is_quick_learn(subject: str) -> bool:
    return subject in QUICK_LEARN_SUBJECTS


def target_lesson(request: LessonStreamRequest) -> LessonMeta:
    """The lesson being written; Quick Learn defaults to a single lesson named after the topic."""
    metas = request.lessons_meta
    if not metas and is_quick_learn(request.subject):
        metas = [LessonMeta(type="Quick Learn", title=request.topic)]
    if request.lesson_index < len(metas):
        return metas[request.lesson_index]
    return LessonMeta(type="Full Lesson", title=f"Lesson {request.lesson_index + 1}")


def build_system_prompt(language_name: str, mode: str) -> str:
    parts = [
        load_prompt("lesson/system_instruction"),
        "",
        "LANGUAGE:",
        f"- Write all metadata and prose in {language_name or 'English'}.",
        "",
        FINAL_RULE,
    ]
    if mode == "simplify":
        parts.extend(["", SIMPLIFY_SYSTEM])
    return "\n".join(parts)


def build_lesson_context(request: LessonStreamRequest) -> str:
    target = target_lesson(request)
    topic = request.topic

    if is_quick_learn(request.subject):
        parts = [
            RULE,
            f"TOPIC TO TEACH: {topic}",
            RULE,
            "This is a standalone Quick Learn lesson. Teach this topic comprehensively without requiring course context.",
            f"Target lesson: {target.type} — {target.title}",
            f"Write the entire lesson in {request.language_name}." if request.language_name else "",
        ]
        return "\n\n".join(part for part in parts if part)

    previous = " | ".join(f"{l.title}: {(l.body or '')[:300]}" for l in request.previous_lessons)
    planned = "; ".join(f"L{i + 1} {m.type} — {m.title}" for i, m in enumerate(request.other_lessons_meta))
    generated = " | ".join(f"{l.title}: {(l.body or '')[:200]}" for l in request.generated_lessons)

    parts = [
        RULE,
        f"TOPIC TO TEACH: {topic}",
        RULE,
        f"Subject: {request.subject}" if request.subject else "",
        f"Course summary: {request.course_context}" if request.course_context else "",
        f'Topic summary for "{topic}": {request.topic_summary}' if request.topic_summary else "",
        (f'Course topics (for context only; focus on "{topic}"): {", ".join(request.course_topics)}'
         if request.course_topics else ""),
        f"Target lesson: {target.type} — {target.title}",
        "Relevant material (truncated):",
        request.combined_text,
        f"Previous lessons recap (for continuity; avoid repeats): {previous}" if previous else "",
        f"Planned other lessons (avoid overlap): {planned}" if planned else "",
        f"Already generated lessons (avoid repeating): {generated}" if generated else "",
        SIMPLIFY_INSTRUCTION if request.mode == "simplify" else "",
    ]
    return "\n\n".join(part for part in parts if part)


class LessonService:
    """
    Service for streaming a single lesson from the lesson model.
    """

    def __init__(self, ai_manager: AIManager):
        self.ai_manager = ai_manager

    def build_messages(self, request: LessonStreamRequest) -> List[Dict[str, str]]:
        if not request.topic:
            raise BadRequestException("Missing topic")
        if not is_quick_learn(request.subject) and not request.lessons_meta:
            raise BadRequestException("Missing lessonsMeta")
        return [
            {"role": "system", "content": build_system_prompt(request.language_name, request.mode)},
            {"role": "user", "content": build_lesson_context(request)},
        ]

    def stream_lesson(self, request: LessonStreamRequest) -> AsyncIterator[str]:
        """
        Validate the request and return the lesson's text deltas.

        Validation and client setup happen here, before the response starts,
        so those failures still produce a normal JSON error.
        """
        messages = self.build_messages(request)
        self.ai_manager.ensure_configured()
        logger.info(
            "Streaming lesson",
            topic=request.topic,
            lesson_index=request.lesson_index,
            quick_learn=is_quick_learn(request.subject),
        )
        return self.ai_manager.stream_chat(
            messages,
            model=settings.openai_lesson_model,
            temperature=0.5,
            max_tokens=12000,
        )
