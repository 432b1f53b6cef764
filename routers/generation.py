"""
Course generation routes: material extraction, topic planning, lesson
streaming, course naming and summaries, topic suggestions, tutor chat and
file uploads.
"""
import json
from typing import AsyncIterator, List, Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from core.exceptions import AIServiceException, BadRequestException
from core.file_utils import read_upload, read_uploads
from core.logging import get_logger
from core.rate_limiting import check_rate_limit
from core.security import get_optional_user, require_premium_user
from db_config import AsyncSessionLocal, get_async_db
from models.models import User
from schemas.generation import (
    ChatRequest, DetectNameRequest, LessonStreamRequest, NodePlanRequest, QuickSummaryRequest,
    TopicSuggestRequest,
)
from services.ai_manager import AIManager, get_ai_manager
from services.chat_service import ChatService
from services.course_service import CourseService
from services.lesson_service import LessonService
from services.sse import SSE_HEADERS, text_event_stream
from services.subscription_service import record_api_call
from services.text_extraction import extract_text_async

router = APIRouter(prefix="/api", tags=["Generation"])
logger = get_logger("llm")


async def _track(db: AsyncSession, user: Optional[User], lesson: bool = False) -> None:
    if user is not None:
        await record_api_call(db, user.id, lesson=lesson)


async def _count_when_finished(
    deltas: AsyncIterator[str], user: Optional[User], lesson: bool = False
) -> AsyncIterator[str]:
    """Pass deltas through and count the call once the stream completes."""
    async for delta in deltas:
        yield delta
    if user is None:
        return
    # The request session is closed once streaming starts
    async with AsyncSessionLocal() as session:
        await record_api_call(session, user.id, lesson=lesson)


@router.post("/extract")
async def extract_course(
    request: Request,
    subject: str = Form("Subject"),
    files: Optional[List[UploadFile]] = File(None),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """
    Turn uploaded course material into a topic outline.

    - **subject**: course name, used alone when the material is thin
    - **files**: PDF, DOCX, text or markdown documents
    """
    check_rate_limit(request, "file_upload", current_user.id if current_user else None)
    ai_manager.ensure_configured()

    documents = []
    for filename, content_type, content in await read_uploads(files or []):
        documents.append((filename, await extract_text_async(filename, content, content_type)))

    result = await CourseService(ai_manager).extract(subject or "Subject", documents)
    await _track(db, current_user)
    return result


@router.post("/node-plan")
async def plan_node(
    payload: NodePlanRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """Plan the lessons for one topic; the plan is empty if the model reply was unusable."""
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    data = await CourseService(ai_manager).plan_node(payload)
    await _track(db, current_user)
    return {"ok": True, "data": data}


@router.post("/node-lesson/stream")
async def stream_node_lesson(
    payload: LessonStreamRequest,
    request: Request,
    current_user: User = Depends(require_premium_user),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """
    Stream one lesson as server-sent events.

    Frames are ``{"type": "text", "content"}`` followed by a final
    ``{"type": "done"}`` or ``{"type": "error", "error"}``.
    """
    check_rate_limit(request, "llm", current_user.id)
    deltas = LessonService(ai_manager).stream_lesson(payload)
    return StreamingResponse(
        text_event_stream(_count_when_finished(deltas, current_user, lesson=True)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/topic-suggest")
async def suggest_topic(
    payload: TopicSuggestRequest,
    request: Request,
    current_user: User = Depends(require_premium_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    check_rate_limit(request, "llm", current_user.id)
    data = await CourseService(ai_manager).suggest_topic(payload)
    await _track(db, current_user)
    return {"ok": True, "data": data}


async def _detect_name_input(request: Request) -> DetectNameRequest:
    """Read ``{context, fallbackTitle}`` from JSON, or build the context from uploaded files."""
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            body = await request.json()
            payload = DetectNameRequest.model_validate(body if isinstance(body, dict) else {})
        except (json.JSONDecodeError, ValidationError):
            raise BadRequestException("Invalid JSON body")
        if not payload.context:
            raise BadRequestException("Missing context")
        return payload

    if "multipart/form-data" in content_type:
        form = await request.form()
        uploads = [item for item in form.getlist("files") if isinstance(item, StarletteUploadFile)]
        if not uploads:
            raise BadRequestException("No files provided")

        sections = []
        names = []
        for upload in uploads:
            filename, upload_type, content = await read_upload(upload)
            names.append(filename)
            text = await extract_text_async(filename, content, upload_type)
            if text.strip():
                sections.append(f"--- {filename} ---\n{text}\n\n")
        fallback = form.get("fallbackTitle")
        return DetectNameRequest(
            context="".join(sections) or "\n".join(names),
            fallback_title=fallback if isinstance(fallback, str) else None,
        )

    raise BadRequestException("Unsupported content type")


@router.post("/course-detect-name")
async def detect_course_name(
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    payload = await _detect_name_input(request)
    name = await CourseService(ai_manager).detect_name(payload.context, payload.fallback_title)
    await _track(db, current_user)
    return {"ok": True, "name": name}


@router.post("/course-quick-summary")
async def course_quick_summary(
    payload: QuickSummaryRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    summary = await CourseService(ai_manager).quick_summary(payload.context)
    await _track(db, current_user)
    return {"ok": True, "summary": summary}


@router.post("/upload-course-files")
async def upload_course_files(
    request: Request,
    files: Optional[List[UploadFile]] = File(None),
    current_user: Optional[User] = Depends(get_optional_user),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """Upload files to OpenAI file storage; files that fail to upload are skipped."""
    check_rate_limit(request, "file_upload", current_user.id if current_user else None)
    ai_manager.ensure_configured()

    file_ids = []
    for filename, _, content in await read_uploads(files or []):
        try:
            file_ids.append(await ai_manager.upload_file(filename, content))
        except AIServiceException as e:
            logger.warning("Course file upload skipped", file_name=filename, error=e.detail)
    return {"ok": True, "fileIds": file_ids}


@router.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """
    One assistant reply to the conversation so far.

    - **messages**: prior ``{role, content}`` turns, oldest first
    - **context**: page text the reply may draw on, capped at 12000 characters
    - **path**: the page the student is on
    """
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    content = await ChatService(ai_manager).reply(payload)
    await _track(db, current_user)
    return {"ok": True, "content": content}


@router.post("/chat/stream")
async def chat_stream(
    payload: ChatRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    ai_manager: AIManager = Depends(get_ai_manager),
):
    """Stream the tutor's reply with the same frames as lesson streaming."""
    check_rate_limit(request, "llm", current_user.id if current_user else None)
    deltas = ChatService(ai_manager).stream(payload)
    return StreamingResponse(
        text_event_stream(_count_when_finished(deltas, current_user)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
