"""
Quizzes: lesson multiple choice, free-text answer checking, the two-stage
Surge quiz and spoken lessons.
"""
import json
import re
from typing import Any, Dict, List

from core.config import settings
from core.exceptions import AIServiceException, BadRequestException
from core.logging import get_logger
from schemas.generation import (
    CheckQuizRequest, McQuizRequest, PracticeProblemsRequest, SurgeQuizCheckRequest, SurgeQuizRequest,
)
from services.ai_manager import AIManager, parse_json_response
from services.lesson_format import extract_practice_problems
from services.prompts import load_prompt, render_prompt

logger = get_logger("llm")

MC_QUESTION_LIMIT = 4
MC_OPTION_COUNT = 4
TTS_MAX_CHARS = 4096
TTS_MIN_CHARS = 10
PRACTICE_PROBLEM_LIMIT = 4
PRACTICE_LESSON_CHARS = 8000

CHECK_FALLBACK_EXPLANATION = "Unable to check answer. Please try again."
CONTEXT_MARKER = "COURSE CONTEXT - CRITICAL"
LESSON_HEADER = "====================\nCURRENT LESSON CONTENT (use for quiz questions)\n====================\n"
PREVIOUS_MC_HEADER = "PREVIOUS MC QUESTIONS (DO NOT duplicate - go deeper)"

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]*`")
_DISPLAY_MATH = re.compile(r"\$\$[\s\S]*?\$\$")
_INLINE_MATH = re.compile(r"\$[^$]*\$")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKUP = re.compile(r"[#*_~`]")
_BLANK_LINES = re.compile(r"\n{3,}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def is_valid_mc_question(question: Any) -> bool:
    if not isinstance(question, dict) or not question.get("question"):
        return False
    options = question.get("options")
    answer = question.get("correctAnswer")
    return (
        isinstance(options, list)
        and len(options) == MC_OPTION_COUNT
        and isinstance(answer, int)
        and not isinstance(answer, bool)
        and 0 <= answer < MC_OPTION_COUNT
    )


def looks_like_quiz_json(raw: str) -> bool:
    text = raw.strip()
    return text.startswith("{") and any(key in text for key in ('"mc"', '"short"', '"questions"'))


def looks_like_lesson(raw: str) -> bool:
    text = raw.strip()
    return text.startswith("#") or "##" in text or (len(text) > 500 and '"question"' not in text)


def clamp_grade(value: Any) -> int:
    try:
        grade = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(10, grade))


def clean_tts_text(text: str) -> str:
    """Strip markdown, code and math so only speakable prose remains."""
    text = _CODE_BLOCK.sub("", text or "")
    text = _INLINE_CODE.sub("", text)
    text = _DISPLAY_MATH.sub("", text)
    text = _INLINE_MATH.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _MARKUP.sub("", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def find_practice_problems(raw: str) -> List[Any]:
    """
    The problem list in a model reply.

    Accepts a bare array, a ``problems`` or ``practiceProblems`` key, or the
    first array-valued key; otherwise a bracketed array anywhere in the
    text, then ``:::practice-problem`` containers in lesson markdown.
    """
    data = parse_json_response(raw)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("problems", "practiceProblems"):
            if isinstance(data.get(key), list):
                return data[key]
        found = next((value for value in data.values() if isinstance(value, list)), None)
        if found is not None:
            return found

    match = _JSON_ARRAY.search(raw or "")
    if match:
        try:
            found = json.loads(match.group(0))
        except ValueError:
            found = None
        if isinstance(found, list):
            return found
    problems, _ = extract_practice_problems(raw)
    return [{"question": p["problem"], "solution": p["solution"]} for p in problems]


def sanitize_practice_problems(problems: List[Any]) -> List[Dict[str, Any]]:
    """First four objects, trimmed; those missing a question or a solution are dropped."""
    sanitized = []
    for problem in [p for p in problems if isinstance(p, dict)][:PRACTICE_PROBLEM_LIMIT]:
        concepts = problem.get("keyConcepts")
        item = {
            "question": str(problem.get("question") or "").strip(),
            "solution": str(problem.get("solution") or "").strip(),
            "keyConcepts": [str(c).strip() for c in concepts if str(c).strip()] if isinstance(concepts, list) else [],
        }
        if item["question"] and item["solution"]:
            sanitized.append(item)
    return sanitized


def _messages(system: str, user: str) -> List[Dict[str, str]]:
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


class QuizService:
    """
    Service for quiz generation and grading.
    """

    def __init__(self, ai_manager: AIManager):
        self.ai_manager = ai_manager

    async def mc_quiz(self, request: McQuizRequest) -> List[Dict[str, Any]]:
        if not request.lesson_content.strip():
            raise BadRequestException("Lesson content is required")

        system = load_prompt("quiz/mc_instruction")
        if request.language_name:
            system += f"\n- Write ALL questions and options in {request.language_name}"
        user = "\n".join(part for part in [
            f"Subject: {request.subject}",
            f"Topic: {request.topic}",
            f"Course Context: {request.course_context}" if request.course_context else "",
            request.lesson_content[:15000],
        ] if part)

        raw = await self.ai_manager.chat_text(
            _messages(system, user),
            model=settings.openai_lesson_model,
            temperature=0.9,
            response_format={"type": "json_object"},
        )
        data = parse_json_response(raw)
        questions = data.get("questions") if isinstance(data, dict) else None
        if not isinstance(questions, list):
            raise AIServiceException(detail="Failed to generate quiz questions", status_code=500)

        valid = [q for q in questions if is_valid_mc_question(q)]
        if not valid:
            logger.warning("Quiz questions failed validation", question_count=len(questions))
            raise AIServiceException(detail="Generated questions were invalid", status_code=500)
        return valid[:MC_QUESTION_LIMIT]

    async def check_quiz(self, request: CheckQuizRequest) -> Dict[str, Any]:
        """Per-answer ``{correct, explanation}`` keyed by the answer's index as a string."""
        if not request.answers:
            raise BadRequestException("No answers provided")

        answers_text = "\n\n".join(
            f'Question {i + 1}: "{a.question}"\nUser Answer: "{a.user_answer}"'
            for i, a in enumerate(request.answers)
        )
        user = (
            f"Subject: {request.subject}\nTopic: {request.topic}\n\n"
            f"Lesson Content:\n{request.lesson_content[:2000]}\n\n"
            f"Course Context:\n{request.course_context[:1000]}\n\n"
            f"Answers to check:\n{answers_text}\n\n"
            "Please evaluate each answer and return the JSON results."
        )
        raw = await self.ai_manager.chat_text(
            _messages(load_prompt("quiz/check_instruction"), user),
            model=settings.openai_fast_model,
            temperature=0.1,
            max_tokens=2000,
            response_format={"type": "json_object"},
        )
        data = parse_json_response(raw or "{}")
        if not isinstance(data, dict):
            logger.warning("Quiz check reply was not JSON", raw_preview=(raw or "")[:200])
            return {
                str(i): {"correct": False, "explanation": CHECK_FALLBACK_EXPLANATION}
                for i in range(len(request.answers))
            }
        results = data.get("results")
        return results if isinstance(results, dict) else {}

    def _surge_context(self, request: SurgeQuizRequest, stage: str) -> str:
        context = request.context[:50000]
        marker = context.find(CONTEXT_MARKER)
        if marker >= 0:
            context = context[marker:]
        parts = [context]
        if request.lesson_content.strip():
            parts.append(LESSON_HEADER + request.lesson_content[:20000])
        if stage == "harder" and request.mc_questions.strip():
            parts.append(f"{PREVIOUS_MC_HEADER}:\n{request.mc_questions}")
        if request.debug_instruction:
            parts.append(f"DEBUG FOCUS: {request.debug_instruction}")
        return "\n\n".join(parts)

    async def surge_quiz(self, request: SurgeQuizRequest) -> Dict[str, Any]:
        """
        Raw quiz JSON for one Surge stage.

        ``mc`` asks for multiple choice questions on the current lesson;
        ``harder`` asks for deeper short-answer questions that do not repeat
        the multiple choice ones. Replies that read like a lesson rather than
        quiz JSON are rejected so the client can retry.
        """
        stage = "harder" if request.stage == "harder" else "mc"
        if not request.course_name or not request.topic_name or not request.context:
            raise BadRequestException("Missing courseName, topicName, or context")

        system = render_prompt(f"surge/{stage}_instruction", course=request.course_name, topic=request.topic_name)
        raw = await self.ai_manager.chat_text(
            _messages(system, self._surge_context(request, stage)),
            model=settings.openai_fast_model,
            temperature=0.7 if stage == "harder" else 0.5,
            max_tokens=1200 if stage == "harder" else 1000,
        )
        if not raw:
            raise AIServiceException(detail="Quiz generation returned empty content")
        if looks_like_lesson(raw) and not looks_like_quiz_json(raw):
            logger.warning("Surge quiz returned lesson content", stage=stage, raw_preview=raw[:200])
            raise AIServiceException(
                detail="Quiz generation returned lesson content instead of quiz JSON. Please try again."
            )
        logger.info("Surge quiz generated", stage=stage, topic=request.topic_name)
        return {"ok": True, "raw": raw, "stage": stage}

    async def surge_check(self, request: SurgeQuizCheckRequest) -> Dict[str, Any]:
        if not request.question or not request.answer or not request.model_answer:
            raise BadRequestException("Missing required fields")

        user = "\n\n".join(part for part in [
            f'Question: "{request.question}"',
            f'Model Answer: "{request.model_answer}"',
            f'Original Explanation: "{request.explanation}"' if request.explanation else "",
            f'Student Answer: "{request.answer}"',
            f"Topic: {request.topic}" if request.topic else "",
            f"Lesson Context:\n{request.lesson_content[:5000]}" if request.lesson_content else "",
        ] if part)

        data = await self.ai_manager.chat_json(
            _messages(load_prompt("surge/check_instruction"), user),
            model=settings.openai_fast_model,
            temperature=0.4,
        )
        if not isinstance(data, dict):
            data = {}
        return {
            "success": True,
            "grade": clamp_grade(data.get("grade", 0)),
            "assessment": data.get("assessment") or "",
            "whatsGood": data.get("whatsGood") or "",
            "whatsBad": data.get("whatsBad") or "",
            "enhancedExplanation": data.get("enhancedExplanation") or request.model_answer,
        }

    async def text_to_speech(self, text: str) -> bytes:
        if not (text or "").strip():
            raise BadRequestException("Missing text")
        cleaned = clean_tts_text(text)
        if len(cleaned) < TTS_MIN_CHARS:
            raise BadRequestException("Text too short after cleaning")
        return await self.ai_manager.text_to_speech(cleaned[:TTS_MAX_CHARS])

    async def practice_problems(self, request: PracticeProblemsRequest) -> List[Dict[str, Any]]:
        """Four worked problems of rising difficulty drawn from one lesson."""
        lesson = request.lesson_body or ""
        if not lesson.strip():
            raise BadRequestException("Missing lesson body")

        system = load_prompt("practice/system_instruction")
        language = request.language_name or "English"
        if language != "English":
            system += f"\n- Write all questions and solutions in {language}."
        excerpt = lesson[:PRACTICE_LESSON_CHARS]
        if len(lesson) > PRACTICE_LESSON_CHARS:
            excerpt += "\n\n[... lesson continues ...]"
        where = f" in {request.subject}" if request.subject else ""
        user = (
            f'Generate 4 practice problems based on this lesson about "{request.topic}"{where}:\n\n'
            f"{excerpt}\n\n"
            'Return ONLY the JSON object with a "problems" array containing 4 practice problems. '
            "No markdown, no code blocks, just the JSON object."
        )

        raw = await self.ai_manager.chat_text(
            _messages(system, user),
            model=settings.openai_fast_model,
            temperature=0.7,
            max_tokens=2000,
            response_format={"type": "json_object"},
        )
        problems = sanitize_practice_problems(find_practice_problems(raw))
        if not problems:
            logger.warning("No valid practice problems", raw_preview=(raw or "")[:200])
            raise AIServiceException(
                detail="Failed to generate practice problems - no valid problems found", status_code=500
            )
        logger.info("Practice problems generated", topic=request.topic, problem_count=len(problems))
        return problems
