"""
Course-level generation: topic extraction, language detection, course naming and summaries.
"""
import json
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError

from core.config import settings
from core.exceptions import AIServiceException, BadRequestException
from core.logging import get_logger
from schemas.generation import MainTopics, NodePlanRequest, TopicSuggestRequest, TopicSuggestion
from services.ai_manager import AIManager, parse_json_response
from services.prompts import load_prompt
from services.text_extraction import combine_documents

logger = get_logger("llm")

DEFAULT_LANGUAGE = {"code": "en", "name": "English"}
MIN_MATERIAL_CHARS = 50
MAX_NAME_WORDS = 6

TOPICS_IMPORTANT = (
    "IMPORTANT: Generate 6-12 comprehensive topics. If the material above is minimal, use the subject name "
    "to generate well-structured topics that would typically be covered in this course."
)
TOPICS_NO_MATERIAL = (
    "No course material was provided. Generate 6-12 comprehensive, well-structured topics that would "
    "typically be covered in a course about this subject. Use your knowledge of the subject area to create "
    "a logical and complete topic structure."
)
TOPICS_RETRY = (
    "CRITICAL: You must generate AT LEAST 6 topics (ideally 8-12). Previous attempt returned fewer than 6. "
    "Generate a comprehensive set of 6-12 well-structured topics for this subject."
)
TOPIC_SUGGEST_REMINDER = (
    "CRITICAL: Return STRICT JSON only with ALL required fields: { name: string; overview: string; "
    "insertPath: string[] }. The 'name' field is MANDATORY and must never be empty."
)

TOPIC_PLAN_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "overview_child": {"type": "string"},
        "lessonsMeta": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {"type": {"type": "string"}, "title": {"type": "string"}},
                "required": ["type", "title"],
            },
        },
    },
    "required": ["overview_child", "lessonsMeta"],
}


def normalize_topics(topics: Any) -> List[Dict[str, Any]]:
    """Coerce model topics to ``{name, summary, coverage}`` with coverage an int in 0..100."""
    if not isinstance(topics, list):
        return []
    normalized = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        try:
            coverage = float(topic.get("coverage") or 0)
        except (TypeError, ValueError):
            coverage = 0.0
        normalized.append({
            "name": str(topic.get("name") or "Topic"),
            "summary": str(topic.get("summary") or ""),
            "coverage": max(0, min(100, int(coverage + 0.5) if coverage >= 0 else 0)),
        })
    return normalized


def clean_course_name(raw: str) -> str:
    """First line of the reply, outer quotes removed, at most six words."""
    first_line = (raw or "").strip().split("\n")[0]
    name = first_line.strip().strip('"').strip()
    return " ".join(name.split()[:MAX_NAME_WORDS])


def strip_code_fence(content: str) -> str:
    content = (content or "").strip()
    if content.startswith("```"):
        content = content[3:]
        if content[:4].lower() == "json":
            content = content[4:]
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3]
        content = content.strip()
    return content


class CourseService:
    """
    Service for course-level LLM calls.
    """

    def __init__(self, ai_manager: AIManager):
        self.ai_manager = ai_manager

    async def detect_language(self, sample: str) -> Dict[str, str]:
        """ISO code and name of the sample's language; English when unsure or on failure."""
        try:
            data = await self.ai_manager.chat_json(
                [
                    {"role": "system", "content": load_prompt("course/language_instruction")},
                    {"role": "user", "content": (sample or "")[:4000]},
                ],
                model=settings.openai_fast_model,
                temperature=0,
                max_tokens=50,
            )
        except AIServiceException as e:
            logger.warning("Language detection failed, defaulting to English", error=e.detail)
            return dict(DEFAULT_LANGUAGE)
        if not isinstance(data, dict):
            return dict(DEFAULT_LANGUAGE)
        return {"code": str(data.get("code") or "en"), "name": str(data.get("name") or "English")}

    async def _request_topics(self, system: str, user: str) -> Optional[Dict[str, Any]]:
        raw = await self.ai_manager.chat_text(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            model=settings.openai_fast_model,
            temperature=0.2,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "MainTopics", "schema": MainTopics.model_json_schema(), "strict": True},
            },
        )
        parsed = parse_json_response(raw)
        if not isinstance(parsed, dict):
            logger.warning("Topic extraction returned unparseable JSON", raw_preview=(raw or "")[:200])
            return None
        try:
            return MainTopics.model_validate(parsed).model_dump()
        except ValidationError:
            return {"subject": parsed.get("subject"), "topics": parsed.get("topics")}

    async def extract_topics(self, subject: str, combined: str, language_name: str) -> Dict[str, Any]:
        """
        Main topics for a course.

        Uses the material when there is enough of it, otherwise the subject
        name alone. A reply with fewer than the minimum topic count gets one
        regeneration, kept only if it reaches the minimum.
        """
        system = f"{load_prompt('topics/system_instruction')}\n- Write summaries in {language_name}."
        has_material = bool(combined) and len(combined.strip()) >= MIN_MATERIAL_CHARS

        if has_material:
            user = "\n\n".join([f"Subject: {subject}", "Material (truncated):", combined, "", TOPICS_IMPORTANT])
        else:
            user = "\n\n".join([f"Subject: {subject}", "", TOPICS_NO_MATERIAL])

        result = await self._request_topics(system, user) or {}
        data = {"subject": result.get("subject") or subject, "topics": normalize_topics(result.get("topics"))}

        minimum = settings.min_course_topics
        if len(data["topics"]) < minimum:
            logger.info("Too few topics, regenerating", subject=subject, topic_count=len(data["topics"]))
            retry_user = "\n\n".join([
                f"Subject: {subject}",
                f"Material: {combined[:50000]}" if has_material
                else "No material provided - generate topics based on subject knowledge.",
                "",
                TOPICS_RETRY,
            ])
            try:
                retry = await self._request_topics(system, retry_user) or {}
            except AIServiceException as e:
                logger.warning("Topic regeneration failed", error=e.detail)
                retry = {}
            retry_topics = normalize_topics(retry.get("topics"))
            if len(retry_topics) >= minimum:
                data = {"subject": retry.get("subject") or subject, "topics": retry_topics}
        return data

    async def course_context(self, combined: str, language_name: str) -> str:
        """Plain-text 3-6 sentence summary; "" if the call fails."""
        system = f"{load_prompt('course/context_instruction')}\nWrite in {language_name}. No lists. Plain text only."
        try:
            return await self.ai_manager.chat_text(
                [{"role": "system", "content": system}, {"role": "user", "content": combined[:200_000]}],
                model=settings.openai_fast_model,
                temperature=0.3,
                max_tokens=220,
            )
        except AIServiceException as e:
            logger.warning("Course context generation failed", error=e.detail)
            return ""

    async def extract(self, subject: str, documents: List[Tuple[str, str]]) -> Dict[str, Any]:
        """Full extraction response for ``documents`` given as ``(name, text)`` pairs."""
        documents = [(name, text) for name, text in documents if text and text.strip()]
        combined = combine_documents(documents, settings.extract_text_max_chars)

        language = await self.detect_language(combined or "\n".join(name for name, _ in documents))
        data = await self.extract_topics(subject, combined, language["name"])
        context = await self.course_context(combined, language["name"])

        logger.info(
            "Course extracted",
            subject=subject,
            file_count=len(documents),
            topic_count=len(data["topics"]),
            language=language["code"],
        )
        return {
            "ok": True,
            "data": data,
            "combinedText": combined,
            "files": [{"name": name} for name, _ in documents],
            "course_context": context,
            "detected_language_code": language["code"],
            "detected_language_name": language["name"],
        }

    async def detect_name(self, text: str, fallback_title: Optional[str] = None) -> str:
        trimmed = (text or "").strip()
        name = ""
        if trimmed:
            prompt = load_prompt("course/detect_name")
            if fallback_title:
                prompt += f"\n- Improve this working title if needed: {fallback_title}"
            prompt += f"\n\nContext to analyze:\n{trimmed[:8000]}\n\nCourse Title:"
            raw = await self.ai_manager.chat_text(
                [{"role": "user", "content": prompt}],
                model=settings.openai_fast_model,
                temperature=0.4,
                max_tokens=32,
            )
            name = clean_course_name(raw)

        name = name or (fallback_title or "").strip()
        if not name:
            raise AIServiceException(detail="Failed to generate course name", status_code=500)
        return name

    async def quick_summary(self, context: str) -> str:
        context = (context or "").strip()
        if not context:
            raise BadRequestException("Missing context")
        prompt = f"{load_prompt('course/quick_summary')}\n\nCourse Context:\n{context[:8000]}\n\nInsights:"
        summary = await self.ai_manager.chat_text(
            [{"role": "user", "content": prompt}],
            model=settings.openai_fast_model,
            temperature=0.3,
            max_tokens=96,
        )
        if not summary:
            raise AIServiceException(detail="Failed to generate summary", status_code=500)
        return summary

    async def suggest_topic(self, payload: TopicSuggestRequest) -> Dict[str, Any]:
        """A new node for the topic tree: ``{name, overview, insertPath}``."""
        tree = payload.tree or {"subject": payload.subject, "topics": []}
        text = "\n\n".join(part for part in [
            f"Subject: {payload.subject}",
            f"Course summary: {payload.course_context}" if payload.course_context else "",
            "Existing topic tree (names only):",
            json.dumps(tree.get("topics") or []),
            "Prompt for new topic (user text):",
            payload.prompt,
            "Relevant material (truncated):",
            payload.combined_text[:120000],
        ] if part)

        content: List[Dict[str, Any]] = [{"type": "text", "text": text}]
        content.extend({"type": "file", "file": {"file_id": file_id}} for file_id in payload.file_ids[:3])

        raw = await self.ai_manager.chat_text(
            [
                {"role": "system", "content": f"{load_prompt('course/topic_suggest')}\n\n{TOPIC_SUGGEST_REMINDER}"},
                {"role": "user", "content": content},
            ],
            model=settings.openai_fast_model,
            temperature=0.3,
            max_tokens=700,
        )
        cleaned = strip_code_fence(raw or "{}")
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning("Topic suggestion was not JSON", raw_preview=cleaned[:200])
            raise AIServiceException(detail=f"Failed to parse topic suggestion: {e.msg}", status_code=500)

        if not isinstance(data, dict):
            data = {}
        for field, expected in (("name", str), ("overview", str), ("insertPath", list)):
            value = data.get(field)
            if not isinstance(value, expected) or (expected is str and not value):
                raise AIServiceException(
                    detail=f"Invalid response format: missing or invalid '{field}' field", status_code=500
                )
        data["insertPath"] = [str(part) for part in data["insertPath"]]
        return TopicSuggestion.model_validate(data).model_dump(by_alias=True)

    async def plan_node(self, payload: NodePlanRequest) -> Dict[str, Any]:
        """
        Lesson plan for one topic: ``{overview_child, lessonsMeta}``.

        An unparseable reply yields an empty plan rather than an error; the
        client falls back to a single full lesson.
        """
        if not payload.topic:
            raise BadRequestException("Missing topic")

        system = load_prompt("node/plan_instruction")
        if payload.language_name:
            system += (
                f"\n- CRITICAL LANGUAGE RULE: You MUST write the overview_child and ALL lesson titles in "
                f"{payload.language_name}, translating from the source material if needed."
            )
        user = "\n\n".join(part for part in [
            f"Subject: {payload.subject or '(unspecified)'}",
            f"Topic: {payload.topic}",
            f"Course summary: {payload.course_context}" if payload.course_context else "",
            f"Course topics: {', '.join(payload.course_topics)}" if payload.course_topics else "",
            "Relevant material (truncated):",
            payload.combined_text,
        ] if part)

        raw = await self.ai_manager.chat_text(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            model=settings.openai_fast_model,
            temperature=0.7,
            max_tokens=900,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "TopicPlan", "schema": TOPIC_PLAN_SCHEMA, "strict": True},
            },
        )
        data = parse_json_response(raw or "{}")
        if not isinstance(data, dict):
            logger.warning("Topic plan was not JSON", topic=payload.topic, raw_preview=(raw or "")[:200])
            return {}
        logger.info("Topic planned", topic=payload.topic, lesson_count=len(data.get("lessonsMeta") or []))
        return data
