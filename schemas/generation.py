"""
Request and response schemas for the AI generation endpoints.

Request fields mirror the browser client's camelCase names; missing text
fields default to "" and each endpoint decides what is required.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class TopicMeta(BaseModel):
    name: str
    summary: str
    coverage: float

    class Config:
        extra = "forbid"


class MainTopics(BaseModel):
    """Structured output for topic extraction."""
    subject: str
    topics: List[TopicMeta]

    class Config:
        extra = "forbid"


class LessonMeta(BaseModel):
    type: str = "Full Lesson"
    title: str = ""


class LessonRef(BaseModel):
    title: str = ""
    body: Optional[str] = ""


class LessonStreamRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    course_context: str = ""
    combined_text: str = Field("", validation_alias=_alias("combinedText", "combined_text"))
    topic_summary: str = Field("", validation_alias=_alias("topicSummary", "topic_summary"))
    lessons_meta: List[LessonMeta] = Field(default_factory=list, validation_alias=_alias("lessonsMeta", "lessons_meta"))
    lesson_index: int = Field(0, ge=0, validation_alias=_alias("lessonIndex", "lesson_index"))
    previous_lessons: List[LessonRef] = Field(
        default_factory=list, validation_alias=_alias("previousLessons", "previous_lessons")
    )
    generated_lessons: List[LessonRef] = Field(
        default_factory=list, validation_alias=_alias("generatedLessons", "generated_lessons")
    )
    other_lessons_meta: List[LessonMeta] = Field(
        default_factory=list, validation_alias=_alias("otherLessonsMeta", "other_lessons_meta")
    )
    course_topics: List[str] = Field(default_factory=list, validation_alias=_alias("courseTopics", "course_topics"))
    language_name: str = Field("", validation_alias=_alias("languageName", "language_name"))
    mode: str = ""

    @field_validator("course_topics")
    @classmethod
    def cap_topics(cls, value: List[str]) -> List[str]:
        return value[:200]


class FlashcardRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    content: str = ""
    course_context: str = Field("", validation_alias=_alias("courseContext", "course_context"))
    language_name: str = Field("", validation_alias=_alias("languageName", "language_name"))
    count: float = 5


class LessonFlashcardRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    lesson_title: str = Field("", validation_alias=_alias("lessonTitle", "lesson_title"))
    lesson_body: str = Field("", validation_alias=_alias("lessonBody", "lesson_body"))
    course_context: str = Field("", validation_alias=_alias("courseContext", "course_context"))
    language_name: str = Field("", validation_alias=_alias("languageName", "language_name"))
    count: Optional[int] = None


class Flashcard(BaseModel):
    prompt: str
    answer: str


class McQuizRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    lesson_content: str = Field("", validation_alias=_alias("lessonContent", "lesson_content"))
    course_context: str = Field("", validation_alias=_alias("courseContext", "course_context"))
    language_name: str = Field("", validation_alias=_alias("languageName", "language_name"))


class QuizAnswer(BaseModel):
    question: str = ""
    user_answer: str = Field("", validation_alias=_alias("userAnswer", "user_answer"))


class CheckQuizRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    lesson_content: str = Field("", validation_alias=_alias("lessonContent", "lesson_content"))
    course_context: str = Field("", validation_alias=_alias("courseContext", "course_context"))
    answers: List[QuizAnswer] = Field(default_factory=list)


class TopicSuggestRequest(BaseModel):
    subject: str = ""
    prompt: str = ""
    course_context: str = ""
    combined_text: str = Field("", validation_alias=_alias("combinedText", "combined_text"))
    tree: Optional[Dict[str, Any]] = None
    file_ids: List[str] = Field(default_factory=list, validation_alias=_alias("fileIds", "file_ids"))


class TopicSuggestion(BaseModel):
    name: str = Field(..., min_length=1)
    overview: str = Field(..., min_length=1)
    insert_path: List[str] = Field(..., alias="insertPath")

    class Config:
        populate_by_name = True


class DetectNameRequest(BaseModel):
    context: str = ""
    fallback_title: Optional[str] = Field(None, validation_alias=_alias("fallbackTitle", "fallback_title"))


class QuickSummaryRequest(BaseModel):
    context: str = ""


class SurgeQuizRequest(BaseModel):
    stage: str = "mc"
    course_name: str = Field("", validation_alias=_alias("courseName", "course_name"))
    topic_name: str = Field("", validation_alias=_alias("topicName", "topic_name"))
    context: str = ""
    lesson_content: str = Field("", validation_alias=_alias("lessonContent", "lesson_content"))
    mc_questions: str = Field("", validation_alias=_alias("mcQuestions", "mc_questions"))
    debug_instruction: Optional[str] = Field(None, validation_alias=_alias("debugInstruction", "debug_instruction"))


class SurgeQuizCheckRequest(BaseModel):
    question: str = ""
    answer: str = ""
    model_answer: str = Field("", validation_alias=_alias("modelAnswer", "model_answer"))
    explanation: str = ""
    topic: str = ""
    lesson_content: str = Field("", validation_alias=_alias("lessonContent", "lesson_content"))

    model_config = {"protected_namespaces": ()}


class TextToSpeechRequest(BaseModel):
    text: str = ""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"] = "user"
    content: str = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    context: str = ""
    path: str = ""

    @field_validator("context")
    @classmethod
    def cap_context(cls, value: str) -> str:
        return value[:12000]


class PracticeProblemsRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    lesson_body: str = Field("", validation_alias=_alias("lessonBody", "lesson_body"))
    language_name: str = Field("English", validation_alias=_alias("languageName", "language_name"))


class NodePlanRequest(BaseModel):
    subject: str = ""
    topic: str = ""
    combined_text: str = Field("", validation_alias=_alias("combinedText", "combined_text"))
    course_context: str = ""
    course_topics: List[str] = Field(default_factory=list, validation_alias=_alias("courseTopics", "course_topics"))
    language_name: str = Field("", validation_alias=_alias("languageName", "language_name"))

    @field_validator("course_topics")
    @classmethod
    def cap_topics(cls, value: List[str]) -> List[str]:
        return value[:200]
